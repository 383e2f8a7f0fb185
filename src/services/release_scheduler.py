"""Release Scheduler - Hourly sweep of matured escrows.

A sweep selects active escrows whose release_at has passed and releases
them one at a time, each in its own session and database transaction.
One failed release is logged and counted; it never stops the sweep.

Overlapping sweeps (duplicate beat schedules, several workers) are
prevented by a non-blocking Redis lock. A sweep that does overlap a
manual release or refund is still safe: each release claims its escrow
with a conditional update, so the loser just counts as failed.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

import redis.asyncio as redis
from redis.exceptions import LockError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import get_settings
from src.core.exceptions import EscrowLedgerError
from src.db.engine import async_session_factory
from src.services.escrow_service import EscrowService
from src.utils.helpers import utc_now

logger = logging.getLogger(__name__)

SWEEP_LOCK_NAME = "escrow:release-sweep"


@dataclass
class SweepResult:
    """Outcome of one sweep."""

    released: int = 0
    failed: int = 0
    skipped: bool = False  # Another sweep held the lock
    failed_ids: list[int] = field(default_factory=list)


class EscrowReleaseScheduler:
    """Releases matured escrows.

    Args:
        session_factory: Callable returning a new AsyncSession context
        redis_client: Redis client for the sweep lock; None runs unlocked
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        redis_client: redis.Redis | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._redis = redis_client

    async def run_sweep(self, now: datetime | None = None) -> SweepResult:
        """Run one sweep, unless another sweep currently holds the lock."""
        now = now or utc_now()

        if self._redis is None:
            return await self._sweep(now)

        lock = self._redis.lock(
            SWEEP_LOCK_NAME,
            timeout=get_settings().release_sweep_lock_seconds,
            blocking=False,
        )
        if not await lock.acquire():
            logger.info("[release_sweep] Another sweep is running, skipping")
            return SweepResult(skipped=True)

        try:
            return await self._sweep(now)
        finally:
            try:
                await lock.release()
            except LockError:
                logger.warning("[release_sweep] Sweep lock expired before release")

    async def _sweep(self, now: datetime) -> SweepResult:
        async with self._session_factory() as db:
            ready = await EscrowService(db).get_escrows_ready_for_release(now)
            escrow_ids = [escrow.id for escrow in ready]

        logger.info(f"[release_sweep] Processing {len(escrow_ids)} escrows for automatic release")

        result = SweepResult()
        for escrow_id in escrow_ids:
            async with self._session_factory() as db:
                try:
                    await EscrowService(db).release_escrow(escrow_id, now=now)
                except EscrowLedgerError as e:
                    result.failed += 1
                    result.failed_ids.append(escrow_id)
                    if e.retryable:
                        logger.warning(
                            f"[release_sweep] Escrow {escrow_id} left for next sweep: {e.message}"
                        )
                    else:
                        logger.error(
                            f"[release_sweep] Failed to auto-release escrow {escrow_id}: "
                            f"{e.message}"
                        )
                except Exception:
                    result.failed += 1
                    result.failed_ids.append(escrow_id)
                    logger.exception(f"[release_sweep] Error releasing escrow {escrow_id}")
                else:
                    result.released += 1

        logger.info(
            f"[release_sweep] Auto-release complete. "
            f"Released: {result.released}, Failed: {result.failed}"
        )
        return result


async def trigger_escrow_release(
    redis_client: redis.Redis | None = None,
    now: datetime | None = None,
) -> SweepResult:
    """Run a sweep immediately, through the same path as the scheduled one."""
    scheduler = EscrowReleaseScheduler(async_session_factory, redis_client)
    return await scheduler.run_sweep(now)
