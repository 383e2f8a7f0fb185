"""Escrow Settlement Service - Order model."""

import secrets
import time
from datetime import datetime
from decimal import Decimal
from enum import Enum

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from src.models.columns import enum_column
from src.utils.helpers import utc_now


class OrderStatus(str, Enum):
    """Order status.

    State transitions:
    - pending -> paid -> confirmed -> delivered -> completed
    - cancelled from any state before completed
    - refunded when the escrow is refunded outside a cancellation
    """

    PENDING = "pending"  # Created, awaiting payment
    PAID = "paid"  # Buyer debited, funds in escrow
    CONFIRMED = "confirmed"  # Seller accepted
    DELIVERED = "delivered"  # Handed over
    COMPLETED = "completed"  # Escrow released to seller
    CANCELLED = "cancelled"  # Cancelled, escrow (if any) refunded
    REFUNDED = "refunded"  # Escrow refunded by dispute resolution


class PaymentStep(str, Enum):
    """Persisted progress marker of the payment workflow."""

    NOT_STARTED = "not_started"
    DEBITED = "debited"  # Buyer debited, escrow not yet created
    ESCROWED = "escrowed"  # Escrow created, order paid
    COMPENSATED = "compensated"  # Debit returned after escrow failure


# Transitions a buyer or seller may request through update_order_status.
# PAID, COMPLETED (via release) and REFUNDED are also entered by the
# payment and escrow services.
ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset(
        {OrderStatus.CONFIRMED, OrderStatus.DELIVERED, OrderStatus.COMPLETED, OrderStatus.CANCELLED}
    ),
    OrderStatus.CONFIRMED: frozenset(
        {OrderStatus.DELIVERED, OrderStatus.COMPLETED, OrderStatus.CANCELLED}
    ),
    OrderStatus.DELIVERED: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

# Statuses a participant may request directly.
REQUESTABLE_STATUSES = frozenset(
    {OrderStatus.CONFIRMED, OrderStatus.DELIVERED, OrderStatus.COMPLETED, OrderStatus.CANCELLED}
)

STATUS_TIMESTAMP_FIELDS: dict[OrderStatus, str] = {
    OrderStatus.PAID: "paid_at",
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.COMPLETED: "completed_at",
    OrderStatus.CANCELLED: "cancelled_at",
}


def generate_order_no() -> str:
    """Generate a unique order number.

    Format: ORD + timestamp_ms + random_hex(8)
    Example: ORD1702345678000AB12CD34
    """
    timestamp = int(time.time() * 1000)
    random_suffix = secrets.token_hex(4).upper()
    return f"ORD{timestamp}{random_suffix}"


class Order(SQLModel, table=True):
    """Marketplace purchase order.

    Attributes:
        id: Auto-increment primary key
        order_no: System-generated unique order number
        buyer_id / seller_id: Parties, fixed at creation
        book_listing_id: Listing being bought

        # Commercial terms (fixed at creation, never recomputed)
        quantity: Units bought
        total_amount: price * quantity, debited from the buyer
        platform_fee: Marketplace cut of total_amount
        seller_amount: total_amount - platform_fee, held in escrow

        # Payment
        status: Order status
        payment_step: Payment workflow marker
        escrow_id: Escrow created by payment (attached once)
        purchase_transaction_id: Buyer's purchase ledger record

        # Timestamps (each written once, never cleared)
        paid_at / confirmed_at / delivered_at / completed_at / cancelled_at
    """

    __tablename__ = "orders"

    id: int | None = Field(default=None, primary_key=True)
    order_no: str = Field(max_length=64, unique=True, index=True)

    buyer_id: int = Field(foreign_key="users.id", index=True)
    seller_id: int = Field(foreign_key="users.id", index=True)
    book_listing_id: int = Field(foreign_key="book_listings.id", index=True)

    quantity: int = Field(default=1)
    total_amount: Decimal = Field(sa_column=sa.Column(sa.DECIMAL(12, 2), nullable=False))
    platform_fee: Decimal = Field(
        default=Decimal("0"),
        sa_column=sa.Column(sa.DECIMAL(12, 2), nullable=False, default=Decimal("0")),
    )
    seller_amount: Decimal = Field(sa_column=sa.Column(sa.DECIMAL(12, 2), nullable=False))

    status: OrderStatus = Field(
        default=OrderStatus.PENDING,
        sa_column=enum_column(OrderStatus, OrderStatus.PENDING),
    )
    payment_step: PaymentStep = Field(
        default=PaymentStep.NOT_STARTED,
        sa_column=enum_column(PaymentStep, PaymentStep.NOT_STARTED),
    )
    escrow_id: int | None = Field(default=None, foreign_key="escrow_accounts.id", index=True)
    purchase_transaction_id: int | None = Field(default=None, foreign_key="transactions.id")

    # Delivery
    delivery_method: str | None = Field(default=None, max_length=50)
    delivery_address: str | None = Field(default=None, max_length=500)
    tracking_number: str | None = Field(default=None, max_length=100)

    # Notes
    buyer_notes: str | None = Field(default=None, max_length=1000)
    seller_notes: str | None = Field(default=None, max_length=1000)
    cancellation_reason: str | None = Field(default=None, max_length=500)

    # Timestamps
    paid_at: datetime | None = Field(default=None)
    confirmed_at: datetime | None = Field(default=None)
    delivered_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)
    cancelled_at: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def is_party(self, user_id: int) -> bool:
        """True if user is the buyer or the seller."""
        return user_id in (self.buyer_id, self.seller_id)
