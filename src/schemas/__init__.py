"""Schemas module - Pydantic DTOs for request/response."""

from src.schemas.common import ActionResponse
from src.schemas.escrow import (
    DisputeRequest,
    EscrowActionResponse,
    EscrowResponse,
    RefundRequest,
    SweepResultResponse,
)
from src.schemas.ledger import (
    BalanceReconciliation,
    BalanceResponse,
    TopupRequest,
    TopupResponse,
    TransactionResponse,
    WalletEntryResponse,
)
from src.schemas.order import (
    OrderActionResponse,
    OrderCreate,
    OrderResponse,
    OrderStatusUpdate,
)
from src.schemas.user import UserProfileResponse

__all__: list[str] = [
    "ActionResponse",
    # Ledger
    "TransactionResponse",
    "WalletEntryResponse",
    "BalanceResponse",
    "TopupRequest",
    "TopupResponse",
    "BalanceReconciliation",
    # Escrow
    "EscrowResponse",
    "EscrowActionResponse",
    "DisputeRequest",
    "RefundRequest",
    "SweepResultResponse",
    # Order
    "OrderCreate",
    "OrderStatusUpdate",
    "OrderResponse",
    "OrderActionResponse",
    # User
    "UserProfileResponse",
]
