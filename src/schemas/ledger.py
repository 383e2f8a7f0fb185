"""Ledger schemas - Request/Response DTOs for wallet and transaction records."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from src.models.ledger import WalletEntryDirection
from src.models.transaction import TransactionStatus, TransactionType
from src.schemas.common import ActionResponse

# =============================================================================
# Transaction Schemas
# =============================================================================


class TransactionResponse(BaseModel):
    """Transaction record response."""

    id: int
    user_id: int
    tx_type: TransactionType
    status: TransactionStatus
    amount: Decimal
    currency: str

    book_listing_id: int | None = None
    order_id: int | None = None
    escrow_id: int | None = None

    description: str | None = None
    details: dict[str, Any] | None = None

    created_at: datetime
    completed_at: datetime | None = None

    class Config:
        from_attributes = True


# =============================================================================
# Wallet Schemas
# =============================================================================


class WalletEntryResponse(BaseModel):
    """Wallet entry response."""

    id: int
    user_id: int
    direction: WalletEntryDirection
    amount: Decimal
    balance_after: Decimal
    transaction_id: int
    description: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class BalanceResponse(BaseModel):
    """Wallet balance response."""

    user_id: int
    balance: Decimal
    currency: str


class TopupRequest(BaseModel):
    """Request to manually credit a user's wallet."""

    amount: Decimal = Field(gt=0, decimal_places=2, description="Amount to credit")
    remark: str = Field(min_length=1, max_length=500, description="Reason for top-up")


class BalanceReconciliation(BaseModel):
    """Cached wallet balance compared with the wallet entry log."""

    user_id: int
    cached_balance: Decimal
    entry_balance: Decimal  # sum(credits) - sum(debits)
    difference: Decimal
    entry_count: int
    consistent: bool


class TopupResponse(ActionResponse):
    """Top-up result with the new balance."""

    transaction: TransactionResponse
    balance: Decimal
