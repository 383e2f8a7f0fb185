"""Tests for the automatic escrow release sweep."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from src.core.exceptions import LedgerError
from src.db.engine import async_session_factory
from src.models.escrow import EscrowStatus
from src.models.order import OrderStatus
from src.services import release_scheduler
from src.services.escrow_service import EscrowService
from src.services.order_service import OrderService
from src.services.release_scheduler import (
    SWEEP_LOCK_NAME,
    EscrowReleaseScheduler,
    trigger_escrow_release,
)
from tests.conftest import (
    BUYER_FUNDS,
    FakeRedis,
    balance_of,
    load_escrow,
    load_order,
    make_listing,
)


async def _pay_for_new_listing(buyer, seller, price: str = "100.00"):
    listing = await make_listing(seller, price=Decimal(price))
    async with async_session_factory() as session:
        service = OrderService(session)
        order = await service.create_order(buyer.id, listing.id)
        return await service.process_payment(order.id, buyer.id)


def _after_hold(escrow) -> datetime:
    return escrow.release_at + timedelta(minutes=1)


@pytest.mark.asyncio
async def test_sweep_releases_matured_escrow(seller, paid_order):
    escrow = await load_escrow(paid_order.escrow_id)

    result = await EscrowReleaseScheduler(async_session_factory).run_sweep(_after_hold(escrow))

    assert result.released == 1
    assert result.failed == 0
    assert not result.skipped
    assert (await load_escrow(escrow.id)).status == EscrowStatus.RELEASED
    assert (await load_order(paid_order.id)).status == OrderStatus.COMPLETED
    assert await balance_of(seller.id) == Decimal("950.00")


@pytest.mark.asyncio
async def test_sweep_leaves_unmatured_escrow(seller, paid_order):
    result = await EscrowReleaseScheduler(async_session_factory).run_sweep()

    assert result.released == 0
    assert (await load_escrow(paid_order.escrow_id)).status == EscrowStatus.ACTIVE
    assert await balance_of(seller.id) == Decimal("0")


@pytest.mark.asyncio
async def test_sweep_runs_are_idempotent(seller, paid_order):
    scheduler = EscrowReleaseScheduler(async_session_factory)
    when = _after_hold(await load_escrow(paid_order.escrow_id))

    first = await scheduler.run_sweep(when)
    second = await scheduler.run_sweep(when)

    assert first.released == 1
    assert second.released == 0
    assert await balance_of(seller.id) == Decimal("950.00")


@pytest.mark.asyncio
async def test_sweep_skips_disputed_escrow(buyer, seller):
    disputed = await _pay_for_new_listing(buyer, seller)
    matured = await _pay_for_new_listing(buyer, seller)
    async with async_session_factory() as session:
        await EscrowService(session).create_dispute(disputed.escrow_id, "Missing pages")

    when = _after_hold(await load_escrow(matured.escrow_id))
    result = await EscrowReleaseScheduler(async_session_factory).run_sweep(when)

    assert result.released == 1
    assert (await load_escrow(disputed.escrow_id)).status == EscrowStatus.DISPUTED
    assert (await load_escrow(matured.escrow_id)).status == EscrowStatus.RELEASED
    assert await balance_of(seller.id) == Decimal("95.00")


@pytest.mark.asyncio
async def test_sweep_continues_after_failure(monkeypatch, caplog, buyer, seller):
    orders = [await _pay_for_new_listing(buyer, seller) for _ in range(3)]
    broken_id = orders[1].escrow_id

    class PartiallyFailingEscrowService(EscrowService):
        async def release_escrow(self, escrow_id, force=False, now=None):
            if escrow_id == broken_id:
                raise LedgerError("Ledger unavailable")
            return await super().release_escrow(escrow_id, force, now)

    monkeypatch.setattr(release_scheduler, "EscrowService", PartiallyFailingEscrowService)

    when = _after_hold(await load_escrow(orders[-1].escrow_id))
    result = await EscrowReleaseScheduler(async_session_factory).run_sweep(when)

    assert result.released == 2
    assert result.failed == 1
    assert result.failed_ids == [broken_id]
    assert (await load_escrow(broken_id)).status == EscrowStatus.ACTIVE
    assert await balance_of(seller.id) == Decimal("190.00")
    # Ledger failures are retryable, the escrow waits for the next sweep
    assert f"Escrow {broken_id} left for next sweep" in caplog.text


@pytest.mark.asyncio
async def test_sweep_skipped_while_lock_held(seller, paid_order):
    redis_client = FakeRedis(held=True)
    when = _after_hold(await load_escrow(paid_order.escrow_id))

    result = await EscrowReleaseScheduler(async_session_factory, redis_client).run_sweep(when)

    assert result.skipped
    assert result.released == 0
    assert redis_client.lock_calls[0][0] == SWEEP_LOCK_NAME
    assert redis_client.lock_calls[0][2] is False
    assert not redis_client.lock_obj.released
    assert (await load_escrow(paid_order.escrow_id)).status == EscrowStatus.ACTIVE


@pytest.mark.asyncio
async def test_sweep_releases_lock_when_done(seller, paid_order):
    redis_client = FakeRedis()
    when = _after_hold(await load_escrow(paid_order.escrow_id))

    result = await EscrowReleaseScheduler(async_session_factory, redis_client).run_sweep(when)

    assert result.released == 1
    assert redis_client.lock_obj.released


@pytest.mark.asyncio
async def test_trigger_release_uses_shared_sweep(seller, paid_order):
    when = _after_hold(await load_escrow(paid_order.escrow_id))

    result = await trigger_escrow_release(now=when)

    assert result.released == 1
    assert await balance_of(seller.id) == Decimal("950.00")


@pytest.mark.asyncio
async def test_dispute_then_refund_is_never_swept(buyer, seller, paid_order):
    async with async_session_factory() as session:
        service = EscrowService(session)
        await service.create_dispute(paid_order.escrow_id, "Counterfeit", user_id=buyer.id)
        await service.refund_escrow(paid_order.escrow_id, reason="Counterfeit confirmed")

    when = _after_hold(await load_escrow(paid_order.escrow_id))
    result = await EscrowReleaseScheduler(async_session_factory).run_sweep(when)

    assert result.released == 0
    assert await balance_of(seller.id) == Decimal("0")
    assert await balance_of(buyer.id) == BUYER_FUNDS - Decimal("1000.00") + Decimal("950.00")
    assert (await load_order(paid_order.id)).status == OrderStatus.REFUNDED
