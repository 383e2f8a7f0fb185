"""Wallet API - Balance, history, escrow and order endpoints.

Service errors are translated to {"success": false, "message": ...}
by the application exception handler.
"""

from typing import Literal

from fastapi import APIRouter, Query

from src.api.deps import CurrentUser, Escrows, Ledger, Orders
from src.core.config import get_settings
from src.schemas.escrow import DisputeRequest, EscrowActionResponse, EscrowResponse
from src.schemas.ledger import BalanceResponse, TransactionResponse, WalletEntryResponse
from src.schemas.order import (
    OrderActionResponse,
    OrderCreate,
    OrderResponse,
    OrderStatusUpdate,
)

router = APIRouter(prefix="/wallet", tags=["Wallet"])


# =============================================================================
# Balance & History
# =============================================================================


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(user: CurrentUser, ledger: Ledger) -> BalanceResponse:
    """Get current wallet balance."""
    balance = await ledger.get_balance(user.id)
    return BalanceResponse(user_id=user.id, balance=balance, currency=user.currency)


@router.get("/transactions", response_model=list[WalletEntryResponse])
async def get_wallet_history(
    user: CurrentUser,
    ledger: Ledger,
    limit: int = Query(50, ge=1, le=200),
) -> list[WalletEntryResponse]:
    """Balance movements (credits and debits) of the wallet."""
    entries = await ledger.list_wallet_entries(user.id, limit)
    return [WalletEntryResponse.model_validate(e) for e in entries]


@router.get("/all-transactions", response_model=list[TransactionResponse])
async def get_all_transactions(
    user: CurrentUser,
    ledger: Ledger,
    limit: int = Query(50, ge=1, le=200),
) -> list[TransactionResponse]:
    """All transaction records, including escrow bookkeeping."""
    records = await ledger.list_transactions(user.id, limit)
    return [TransactionResponse.model_validate(r) for r in records]


# =============================================================================
# Escrow
# =============================================================================


@router.get("/escrow", response_model=list[EscrowResponse])
async def get_user_escrows(
    user: CurrentUser,
    escrows: Escrows,
    role: Literal["buyer", "seller"] = Query("buyer"),
) -> list[EscrowResponse]:
    """Escrow accounts where the user is the buyer or the seller."""
    items = await escrows.get_user_escrows(user.id, role)
    return [EscrowResponse.model_validate(e) for e in items]


@router.post("/escrow/dispute", response_model=EscrowActionResponse)
async def create_dispute(
    data: DisputeRequest,
    user: CurrentUser,
    escrows: Escrows,
) -> EscrowActionResponse:
    """Raise a dispute, freezing automatic release of the escrow."""
    escrow = await escrows.create_dispute(data.escrow_id, data.reason, user_id=user.id)
    return EscrowActionResponse(
        success=True,
        message="Dispute created successfully. Our team will review it shortly.",
        escrow=EscrowResponse.model_validate(escrow),
    )


# =============================================================================
# Orders
# =============================================================================


@router.post("/orders", response_model=OrderActionResponse, status_code=201)
async def create_order(
    data: OrderCreate,
    user: CurrentUser,
    orders: Orders,
) -> OrderActionResponse:
    """Create an order for a book listing."""
    order = await orders.create_order(
        buyer_id=user.id,
        book_listing_id=data.book_listing_id,
        quantity=data.quantity,
        delivery_method=data.delivery_method,
        delivery_address=data.delivery_address,
        buyer_notes=data.buyer_notes,
    )
    return OrderActionResponse(
        success=True,
        message="Order created successfully",
        order=OrderResponse.model_validate(order),
    )


@router.post("/orders/{order_id}/pay", response_model=OrderActionResponse)
async def pay_order(order_id: int, user: CurrentUser, orders: Orders) -> OrderActionResponse:
    """Pay an order from the wallet. Funds are held in escrow."""
    order = await orders.process_payment(order_id, user.id)
    days = get_settings().escrow_hold_period_days
    return OrderActionResponse(
        success=True,
        message=f"Payment successful. Funds held in escrow for {days} days.",
        order=OrderResponse.model_validate(order),
    )


@router.put("/orders/{order_id}/status", response_model=OrderActionResponse)
async def update_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    user: CurrentUser,
    orders: Orders,
) -> OrderActionResponse:
    """Update order status as buyer or seller."""
    order = await orders.update_order_status(
        order_id,
        user.id,
        data.status,
        tracking_number=data.tracking_number,
        notes=data.notes,
        cancellation_reason=data.cancellation_reason,
    )
    return OrderActionResponse(
        success=True,
        message=f"Order status updated to {order.status.value}",
        order=OrderResponse.model_validate(order),
    )


@router.get("/orders", response_model=list[OrderResponse])
async def get_user_orders(
    user: CurrentUser,
    orders: Orders,
    role: Literal["buyer", "seller"] = Query("buyer"),
) -> list[OrderResponse]:
    """Orders where the user is the buyer or the seller."""
    items = await orders.get_user_orders(user.id, role)
    return [OrderResponse.model_validate(o) for o in items]


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(order_id: int, user: CurrentUser, orders: Orders) -> OrderResponse:
    """Get a single order."""
    order = await orders.get_order(order_id, user.id)
    return OrderResponse.model_validate(order)
