"""Escrow Settlement Service - Wallet entry model.

Every change of users.wallet_balance writes exactly one WalletEntry in
the same database transaction, so the cached balance can always be
rebuilt from the entries.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from src.models.columns import enum_column
from src.utils.helpers import utc_now


class WalletEntryDirection(str, Enum):
    """Fund flow direction."""

    CREDIT = "credit"  # Increase balance
    DEBIT = "debit"  # Decrease balance


class WalletEntry(SQLModel, table=True):
    """Wallet entry - immutable record of one balance change.

    Attributes:
        id: Auto-increment primary key
        user_id: Wallet owner
        direction: Credit or debit
        amount: Absolute change amount
        balance_after: Balance right after this change
        transaction_id: Transaction this entry realises
        description: Human-readable description
    """

    __tablename__ = "wallet_transactions"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    direction: WalletEntryDirection = Field(sa_column=enum_column(WalletEntryDirection))
    amount: Decimal = Field(sa_column=sa.Column(sa.DECIMAL(12, 2), nullable=False))
    balance_after: Decimal = Field(sa_column=sa.Column(sa.DECIMAL(12, 2), nullable=False))
    transaction_id: int = Field(foreign_key="transactions.id", index=True)
    description: str | None = Field(default=None, max_length=512)

    created_at: datetime = Field(default_factory=utc_now, index=True)
