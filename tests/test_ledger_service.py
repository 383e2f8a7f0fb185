"""Tests for the wallet ledger."""

from decimal import Decimal

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from src.core.exceptions import (
    InsufficientBalanceError,
    LedgerError,
    NotFoundError,
    ValidationError,
)
from src.models.ledger import WalletEntry, WalletEntryDirection
from src.models.transaction import Transaction, TransactionStatus, TransactionType
from src.models.user import User
from src.services.ledger_service import LedgerService
from tests.conftest import balance_of, make_user


@pytest.mark.asyncio
async def test_get_balance_unknown_user(db):
    with pytest.raises(NotFoundError, match="User not found"):
        await LedgerService(db).get_balance(999)


@pytest.mark.asyncio
async def test_topup_credits_wallet_and_records_entry(db, admin):
    user = await make_user("user_topup")
    ledger = LedgerService(db)

    record = await ledger.topup(admin, user.id, Decimal("250.00"), "Manual deposit")

    assert record.tx_type == TransactionType.TOPUP
    assert record.status == TransactionStatus.COMPLETED
    assert record.completed_at is not None
    assert record.details == {"operator_id": admin.id}
    assert await balance_of(user.id) == Decimal("250.00")

    entries = await ledger.list_wallet_entries(user.id)
    assert len(entries) == 1
    assert entries[0].direction == WalletEntryDirection.CREDIT
    assert entries[0].balance_after == Decimal("250.00")
    assert entries[0].transaction_id == record.id


@pytest.mark.asyncio
async def test_debit_exact_balance(db):
    user = await make_user("user_exact", funds=Decimal("100.00"))
    ledger = LedgerService(db)

    record = await ledger.create_transaction(user.id, TransactionType.PURCHASE, Decimal("100.00"))
    entry = await ledger.debit_wallet(user.id, Decimal("100.00"), record.id)
    await db.commit()

    assert entry.balance_after == Decimal("0.00")
    assert await balance_of(user.id) == Decimal("0.00")


@pytest.mark.asyncio
async def test_debit_insufficient_balance_changes_nothing(db):
    user = await make_user("user_poor", funds=Decimal("40.00"))
    ledger = LedgerService(db)
    record = await ledger.create_transaction(user.id, TransactionType.PURCHASE, Decimal("50.00"))

    with pytest.raises(InsufficientBalanceError) as exc_info:
        await ledger.debit_wallet(user.id, Decimal("50.00"), record.id)
    await db.rollback()

    assert exc_info.value.details == {"required": "50.00", "available": "40.00"}
    assert await balance_of(user.id) == Decimal("40.00")
    entries = await ledger.list_wallet_entries(user.id)
    assert [e.direction for e in entries] == [WalletEntryDirection.CREDIT]


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5.00")])
async def test_non_positive_amounts_rejected(db, amount):
    user = await make_user("user_amounts", funds=Decimal("10.00"))
    ledger = LedgerService(db)

    with pytest.raises(ValidationError):
        await ledger.create_transaction(user.id, TransactionType.ADJUSTMENT, amount)
    with pytest.raises(ValidationError):
        await ledger.debit_wallet(user.id, amount, transaction_id=1)
    with pytest.raises(ValidationError):
        await ledger.credit_wallet(user.id, amount, transaction_id=1)

    assert await balance_of(user.id) == Decimal("10.00")


@pytest.mark.asyncio
async def test_credit_unknown_user(db):
    ledger = LedgerService(db)
    record = await ledger.create_transaction(999, TransactionType.ADJUSTMENT, Decimal("1.00"))

    with pytest.raises(NotFoundError):
        await ledger.credit_wallet(999, Decimal("1.00"), record.id)


@pytest.mark.asyncio
async def test_uncommitted_changes_roll_back_together(db):
    user = await make_user("user_rollback", funds=Decimal("100.00"))
    ledger = LedgerService(db)

    record = await ledger.create_transaction(user.id, TransactionType.PURCHASE, Decimal("30.00"))
    await ledger.debit_wallet(user.id, Decimal("30.00"), record.id)
    await db.rollback()

    assert await balance_of(user.id) == Decimal("100.00")
    result = await db.execute(
        select(Transaction).where(Transaction.tx_type == TransactionType.PURCHASE)
    )
    assert result.scalars().all() == []
    result = await db.execute(select(WalletEntry).where(WalletEntry.user_id == user.id))
    assert len(result.scalars().all()) == 1


@pytest.mark.asyncio
async def test_reconcile_consistent_after_movements(db):
    user = await make_user("user_recon", funds=Decimal("500.00"))
    ledger = LedgerService(db)

    debit = await ledger.create_transaction(user.id, TransactionType.PURCHASE, Decimal("120.50"))
    await ledger.debit_wallet(user.id, Decimal("120.50"), debit.id)
    credit = await ledger.create_transaction(user.id, TransactionType.REFUND, Decimal("20.50"))
    await ledger.credit_wallet(user.id, Decimal("20.50"), credit.id)
    await db.commit()

    report = await ledger.reconcile(user.id)

    assert report.consistent
    assert report.cached_balance == Decimal("400.00")
    assert report.entry_balance == Decimal("400.00")
    assert report.entry_count == 3


@pytest.mark.asyncio
async def test_reconcile_detects_drift(db):
    user = await make_user("user_drift", funds=Decimal("100.00"))
    await db.execute(
        update(User).where(User.id == user.id).values(wallet_balance=Decimal("150.00"))
    )
    await db.commit()

    report = await LedgerService(db).reconcile(user.id)

    assert not report.consistent
    assert report.difference == Decimal("50.00")


@pytest.mark.asyncio
async def test_list_transactions_newest_first(db):
    user = await make_user("user_history", funds=Decimal("10.00"))
    ledger = LedgerService(db)
    await ledger.create_transaction(user.id, TransactionType.ADJUSTMENT, Decimal("1.00"))
    await db.commit()

    records = await ledger.list_transactions(user.id)

    assert [r.tx_type for r in records] == [TransactionType.ADJUSTMENT, TransactionType.TOPUP]


@pytest.mark.asyncio
async def test_failed_entry_write_raises_retryable_ledger_error(db, monkeypatch):
    user = await make_user("user_disk_full", funds=Decimal("10.00"))
    ledger = LedgerService(db)
    record = await ledger.create_transaction(user.id, TransactionType.ADJUSTMENT, Decimal("5.00"))

    async def failing_flush(*args, **kwargs):
        raise OperationalError("INSERT INTO wallet_transactions", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "flush", failing_flush)

    with pytest.raises(LedgerError, match="Failed to write wallet entry") as exc_info:
        await ledger.credit_wallet(user.id, Decimal("5.00"), record.id)
    await db.rollback()

    assert exc_info.value.retryable
    assert exc_info.value.details == {"user_id": user.id}
    assert await balance_of(user.id) == Decimal("10.00")
