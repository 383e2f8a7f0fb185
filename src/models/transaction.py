"""Escrow Settlement Service - Transaction record model."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from src.models.columns import enum_column
from src.utils.helpers import utc_now


class TransactionType(str, Enum):
    """Business transaction types."""

    PURCHASE = "purchase"  # Buyer paid for an order
    ESCROW_HOLD = "escrow_hold"  # Funds placed in escrow (bookkeeping only)
    ESCROW_RELEASE = "escrow_release"  # Escrow paid out to seller
    REFUND = "refund"  # Escrow or failed payment returned to buyer
    WITHDRAWAL = "withdrawal"  # Wallet cash-out
    TOPUP = "topup"  # Wallet funded
    SALE = "sale"  # Seller-side sale record
    ADJUSTMENT = "adjustment"  # Manual admin adjustment


class TransactionStatus(str, Enum):
    """Transaction processing status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Transaction(SQLModel, table=True):
    """Transaction record - immutable log of every money event.

    A transaction describes WHY money moved. Balance changes themselves
    are WalletEntry rows that reference the transaction they realise;
    bookkeeping records such as escrow_hold have no wallet entry.

    Attributes:
        id: Auto-increment primary key
        user_id: User the record belongs to
        tx_type: Type of transaction
        status: Processing status
        amount: Absolute amount (always positive)
        book_listing_id / order_id / escrow_id: Related entities (if any)
        description: Human-readable description
        details: Free-form JSON, stored in the "metadata" column
    """

    __tablename__ = "transactions"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)

    tx_type: TransactionType = Field(sa_column=enum_column(TransactionType, name="type"))
    status: TransactionStatus = Field(
        default=TransactionStatus.COMPLETED,
        sa_column=enum_column(TransactionStatus, TransactionStatus.COMPLETED),
    )
    amount: Decimal = Field(sa_column=sa.Column(sa.DECIMAL(12, 2), nullable=False))
    currency: str = Field(default="KES", max_length=10)

    book_listing_id: int | None = Field(default=None, index=True)
    order_id: int | None = Field(default=None, index=True)
    escrow_id: int | None = Field(default=None, index=True)

    description: str | None = Field(default=None, max_length=512)
    details: dict[str, Any] | None = Field(
        default=None, sa_column=sa.Column("metadata", sa.JSON, nullable=True)
    )

    created_at: datetime = Field(default_factory=utc_now, index=True)
    completed_at: datetime | None = Field(default=None)
