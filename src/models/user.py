"""Escrow Settlement Service - User model."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from src.models.columns import enum_column
from src.utils.helpers import utc_now


class UserRole(str, Enum):
    """User roles for access control."""

    USER = "user"
    ADMIN = "admin"


class User(SQLModel, table=True):
    """User model - synced from Clerk, owner of one wallet.

    Attributes:
        id: Auto-increment primary key
        clerk_id: Unique Clerk user ID (indexed)
        email: User email address (indexed)
        role: User role for RBAC
        is_active: Account status

        wallet_balance: Cached wallet balance. Only ever changed by the
            ledger service together with a WalletEntry row, so it can be
            reconciled against the entry log at any time.
        currency: Wallet currency code
    """

    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    clerk_id: str = Field(max_length=255, unique=True, index=True)
    email: str = Field(max_length=255, index=True)
    username: str | None = Field(default=None, max_length=255)
    role: UserRole = Field(default=UserRole.USER, sa_column=enum_column(UserRole, UserRole.USER))
    is_active: bool = Field(default=True)

    wallet_balance: Decimal = Field(
        default=Decimal("0"),
        sa_column=sa.Column(sa.DECIMAL(12, 2), nullable=False, default=Decimal("0")),
    )
    currency: str = Field(default="KES", max_length=10)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
