"""Escrow Settlement Service - Escrow account model."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from src.models.columns import enum_column
from src.utils.helpers import utc_now


class EscrowStatus(str, Enum):
    """Escrow status.

    State transitions:
    - active -> released | refunded | disputed
    - disputed -> released (forced) | refunded
    - released, refunded are terminal
    """

    ACTIVE = "active"  # Holding funds until release_at
    DISPUTED = "disputed"  # Frozen pending manual resolution
    RELEASED = "released"  # Paid out to seller
    REFUNDED = "refunded"  # Returned to buyer


ESCROW_TRANSITIONS: dict[EscrowStatus, frozenset[EscrowStatus]] = {
    EscrowStatus.ACTIVE: frozenset(
        {EscrowStatus.RELEASED, EscrowStatus.REFUNDED, EscrowStatus.DISPUTED}
    ),
    EscrowStatus.DISPUTED: frozenset({EscrowStatus.RELEASED, EscrowStatus.REFUNDED}),
    EscrowStatus.RELEASED: frozenset(),
    EscrowStatus.REFUNDED: frozenset(),
}


class EscrowAccount(SQLModel, table=True):
    """Funds held between buyer and seller pending release conditions.

    Attributes:
        id: Auto-increment primary key
        order_id: Order whose payment created this escrow
        book_listing_id / buyer_id / seller_id: Sale the funds belong to

        amount: Exact value held (the seller's portion of the order)
        platform_fee: Informational; the fee is collected at purchase
        status: Escrow status
        hold_period_days: Hold period applied at creation
        release_at: Earliest automatic release time, computed once

        released_at / refunded_at: Terminal transition times
        dispute_reason: Set when disputed, kept after resolution
        dispute_resolved_at: When a disputed escrow was released or refunded
    """

    __tablename__ = "escrow_accounts"

    id: int | None = Field(default=None, primary_key=True)
    order_id: int | None = Field(default=None, index=True)
    book_listing_id: int = Field(foreign_key="book_listings.id", index=True)
    buyer_id: int = Field(foreign_key="users.id", index=True)
    seller_id: int = Field(foreign_key="users.id", index=True)

    amount: Decimal = Field(sa_column=sa.Column(sa.DECIMAL(12, 2), nullable=False))
    platform_fee: Decimal = Field(
        default=Decimal("0"),
        sa_column=sa.Column(sa.DECIMAL(12, 2), nullable=False, default=Decimal("0")),
    )
    currency: str = Field(default="KES", max_length=10)

    status: EscrowStatus = Field(
        default=EscrowStatus.ACTIVE,
        sa_column=enum_column(EscrowStatus, EscrowStatus.ACTIVE),
    )
    hold_period_days: int = Field(default=7)
    release_at: datetime = Field(index=True)

    released_at: datetime | None = Field(default=None)
    refunded_at: datetime | None = Field(default=None)
    dispute_reason: str | None = Field(default=None, max_length=1000)
    dispute_resolved_at: datetime | None = Field(default=None)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def is_party(self, user_id: int) -> bool:
        """True if user is the buyer or the seller."""
        return user_id in (self.buyer_id, self.seller_id)
