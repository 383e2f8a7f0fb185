"""Escrow settlement tasks.

- escrow.release_matured: hourly release sweep (beat)
- escrow.trigger_release: the same sweep, on demand
- escrow.recover_stalled_payments: compensate half-finished payments (beat)
"""

import asyncio
import logging

from src.core.exceptions import EscrowLedgerError
from src.core.redis import create_redis
from src.db.engine import close_db, get_session
from src.services.order_service import OrderService
from src.services.release_scheduler import trigger_escrow_release
from src.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run async coroutine in sync context for Celery."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _failure(e: Exception) -> dict:
    if isinstance(e, EscrowLedgerError):
        return {"success": False, "message": e.message, "retryable": e.retryable}
    return {"success": False, "message": str(e), "retryable": False}


@celery_app.task(name="escrow.release_matured")
def release_matured_escrows() -> dict:
    """Release every active escrow whose hold period has passed."""
    return run_async(_run_release_sweep())


@celery_app.task(name="escrow.trigger_release")
def trigger_release() -> dict:
    """Manual entry point for the release sweep."""
    logger.info("[release_sweep] Manual trigger")
    return run_async(_run_release_sweep())


async def _run_release_sweep() -> dict:
    redis_client = create_redis()
    try:
        result = await trigger_escrow_release(redis_client)
        return {
            "success": True,
            "released": result.released,
            "failed": result.failed,
            "skipped": result.skipped,
        }
    except Exception as e:
        logger.exception(f"[release_sweep] Sweep aborted: {e}")
        return _failure(e)
    finally:
        await redis_client.aclose()
        await close_db()


@celery_app.task(name="escrow.recover_stalled_payments")
def recover_stalled_payments() -> dict:
    """Credit back buyers whose payment stopped between debit and escrow."""
    return run_async(_recover_stalled_payments())


async def _recover_stalled_payments() -> dict:
    try:
        async with get_session() as db:
            recovered = await OrderService(db).recover_stalled_payments()
        return {"success": True, "recovered": recovered}
    except Exception as e:
        logger.exception(f"[payment] Stalled payment recovery error: {e}")
        return _failure(e)
    finally:
        await close_db()
