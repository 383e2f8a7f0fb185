"""Escrow Settlement Service - Admin API endpoints.

Operator-only endpoints for dispute resolution and wallet maintenance.
"""

import logging
from typing import Annotated

import redis.asyncio as redis
from fastapi import APIRouter, Depends

from src.api.deps import AdminUser, Escrows, Ledger, Orders
from src.core.redis import get_redis
from src.schemas.common import ActionResponse
from src.schemas.escrow import (
    EscrowActionResponse,
    EscrowResponse,
    RefundRequest,
    SweepResultResponse,
)
from src.schemas.ledger import (
    BalanceReconciliation,
    TopupRequest,
    TopupResponse,
    TransactionResponse,
)
from src.services.release_scheduler import trigger_escrow_release

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


def get_sweep_redis() -> redis.Redis | None:
    """Redis client guarding the release sweep."""
    return get_redis()


# ============ Escrow Resolution ============


@router.post("/escrows/{escrow_id}/release", response_model=EscrowActionResponse)
async def release_escrow(escrow_id: int, admin: AdminUser, escrows: Escrows):
    """Release escrow to the seller, resolving a dispute if there is one."""
    escrow = await escrows.release_escrow(escrow_id, force=True)
    logger.info(f"[admin] Escrow {escrow_id} released by admin {admin.id}")
    return EscrowActionResponse(
        success=True,
        message="Escrow funds released successfully",
        escrow=EscrowResponse.model_validate(escrow),
    )


@router.post("/escrows/{escrow_id}/refund", response_model=EscrowActionResponse)
async def refund_escrow(
    escrow_id: int,
    data: RefundRequest,
    admin: AdminUser,
    escrows: Escrows,
):
    """Refund escrow to the buyer."""
    escrow = await escrows.refund_escrow(escrow_id, reason=data.reason)
    logger.info(f"[admin] Escrow {escrow_id} refunded by admin {admin.id}")
    return EscrowActionResponse(
        success=True,
        message="Escrow refunded successfully",
        escrow=EscrowResponse.model_validate(escrow),
    )


@router.post("/escrows/release-sweep", response_model=SweepResultResponse)
async def run_release_sweep(
    admin: AdminUser,
    redis_client: Annotated[redis.Redis | None, Depends(get_sweep_redis)],
):
    """Run the automatic release sweep now."""
    logger.info(f"[admin] Release sweep triggered by admin {admin.id}")
    result = await trigger_escrow_release(redis_client)
    if result.skipped:
        message = "Another release sweep is already running"
    else:
        message = f"Released: {result.released}, Failed: {result.failed}"
    return SweepResultResponse(
        success=not result.skipped,
        message=message,
        released=result.released,
        failed=result.failed,
        skipped=result.skipped,
    )


@router.post("/payments/recover", response_model=ActionResponse)
async def recover_stalled_payments(admin: AdminUser, orders: Orders):
    """Compensate payments stuck between debit and escrow creation."""
    recovered = await orders.recover_stalled_payments()
    return ActionResponse(success=True, message=f"Recovered {recovered} stalled payments")


# ============ Wallet Maintenance ============


@router.post("/wallets/{user_id}/topup", response_model=TopupResponse)
async def topup_wallet(
    user_id: int,
    data: TopupRequest,
    admin: AdminUser,
    ledger: Ledger,
):
    """Manually credit a user's wallet."""
    record = await ledger.topup(admin, user_id, data.amount, data.remark)
    balance = await ledger.get_balance(user_id)
    return TopupResponse(
        success=True,
        message="Wallet topped up successfully",
        transaction=TransactionResponse.model_validate(record),
        balance=balance,
    )


@router.get("/wallets/{user_id}/reconcile", response_model=BalanceReconciliation)
async def reconcile_wallet(user_id: int, admin: AdminUser, ledger: Ledger):
    """Compare a cached wallet balance with its wallet entries."""
    return await ledger.reconcile(user_id)
