"""Tests for the Celery task bodies and beat schedule."""

from datetime import timedelta

import pytest
from celery.schedules import crontab

from src.core.exceptions import OperationTimeoutError
from src.models.escrow import EscrowStatus
from src.models.order import PaymentStep
from src.models.transaction import TransactionType
from src.services.ledger_service import LedgerService
from src.tasks import escrow as escrow_tasks
from src.tasks.celery_app import celery_app
from src.utils.helpers import utc_now
from tests.conftest import FakeRedis, load_escrow, load_order


@pytest.mark.asyncio
async def test_beat_runs_release_sweep_hourly():
    schedule = celery_app.conf.beat_schedule

    assert schedule["release-matured-escrows"]["task"] == "escrow.release_matured"
    assert schedule["release-matured-escrows"]["schedule"] == crontab(minute=0)
    assert schedule["recover-stalled-payments"]["task"] == "escrow.recover_stalled_payments"


@pytest.mark.asyncio
async def test_release_task_sweeps_and_closes_redis(monkeypatch, paid_order):
    redis_client = FakeRedis()
    monkeypatch.setattr(escrow_tasks, "create_redis", lambda: redis_client)

    result = await escrow_tasks._run_release_sweep()

    # Hold period has not passed yet
    assert result == {"success": True, "released": 0, "failed": 0, "skipped": False}
    assert redis_client.lock_obj.released
    assert redis_client.closed
    assert (await load_escrow(paid_order.escrow_id)).status == EscrowStatus.ACTIVE


@pytest.mark.asyncio
async def test_release_task_reports_skip(monkeypatch):
    redis_client = FakeRedis(held=True)
    monkeypatch.setattr(escrow_tasks, "create_redis", lambda: redis_client)

    result = await escrow_tasks._run_release_sweep()

    assert result["skipped"] is True
    assert redis_client.closed


@pytest.mark.asyncio
async def test_recovery_task_compensates(db, buyer, pending_order):
    ledger = LedgerService(db)
    purchase = await ledger.create_transaction(
        buyer.id, TransactionType.PURCHASE, pending_order.total_amount, order_id=pending_order.id
    )
    await ledger.debit_wallet(buyer.id, pending_order.total_amount, purchase.id)
    pending_order.payment_step = PaymentStep.DEBITED
    pending_order.updated_at = utc_now() - timedelta(hours=2)
    db.add(pending_order)
    await db.commit()

    result = await escrow_tasks._recover_stalled_payments()

    assert result == {"success": True, "recovered": 1}
    assert (await load_order(pending_order.id)).payment_step == PaymentStep.COMPENSATED


@pytest.mark.asyncio
async def test_release_task_reports_failure_instead_of_raising(monkeypatch):
    redis_client = FakeRedis()
    monkeypatch.setattr(escrow_tasks, "create_redis", lambda: redis_client)

    async def timed_out_sweep(client):
        raise OperationTimeoutError("Escrow release timed out", {"escrow_id": 7})

    monkeypatch.setattr(escrow_tasks, "trigger_escrow_release", timed_out_sweep)

    result = await escrow_tasks._run_release_sweep()

    assert result == {
        "success": False,
        "message": "Escrow release timed out",
        "retryable": True,
    }
    assert redis_client.closed


@pytest.mark.asyncio
async def test_recovery_task_reports_unexpected_error(monkeypatch):
    async def broken_recovery(self, older_than=None, now=None):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(escrow_tasks.OrderService, "recover_stalled_payments", broken_recovery)

    result = await escrow_tasks._recover_stalled_payments()

    assert result == {"success": False, "message": "connection reset", "retryable": False}
