"""Ledger Service - Wallet balances, transaction records and wallet entries.

Balance changes are single conditional UPDATE statements, so two
concurrent debits can never both pass the balance check. None of the
WalletLedger methods commit: the caller owns the unit of work, and the
transaction record, the balance change and the wallet entry commit or
roll back together.
"""

import logging
from decimal import Decimal
from typing import Any, Protocol

from sqlalchemy import case, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from src.core.config import get_settings
from src.core.exceptions import (
    InsufficientBalanceError,
    LedgerError,
    NotFoundError,
    ValidationError,
)
from src.models.ledger import WalletEntry, WalletEntryDirection
from src.models.transaction import Transaction, TransactionStatus, TransactionType
from src.models.user import User
from src.schemas.ledger import BalanceReconciliation
from src.utils.amount import quantize_money
from src.utils.helpers import utc_now

logger = logging.getLogger(__name__)


class WalletLedger(Protocol):
    """Wallet operations consumed by the escrow and order services."""

    async def get_balance(self, user_id: int) -> Decimal: ...

    async def create_transaction(
        self,
        user_id: int,
        tx_type: TransactionType,
        amount: Decimal,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        description: str | None = None,
        book_listing_id: int | None = None,
        order_id: int | None = None,
        escrow_id: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Transaction: ...

    async def debit_wallet(
        self, user_id: int, amount: Decimal, transaction_id: int, description: str | None = None
    ) -> WalletEntry: ...

    async def credit_wallet(
        self, user_id: int, amount: Decimal, transaction_id: int, description: str | None = None
    ) -> WalletEntry: ...


def _require_positive(amount: Decimal) -> None:
    if amount <= 0:
        raise ValidationError("Amount must be positive", {"amount": str(amount)})


class LedgerService:
    """SQL implementation of WalletLedger, plus admin and reporting helpers."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # Balances
    # =========================================================================

    async def get_balance(self, user_id: int) -> Decimal:
        """Current wallet balance, read from the database row.

        Raises:
            NotFoundError: Unknown user
        """
        result = await self.db.execute(select(User.wallet_balance).where(User.id == user_id))
        balance = result.scalar_one_or_none()
        if balance is None:
            raise NotFoundError("User not found", {"user_id": user_id})
        return balance

    # =========================================================================
    # Transaction records
    # =========================================================================

    async def create_transaction(
        self,
        user_id: int,
        tx_type: TransactionType,
        amount: Decimal,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        description: str | None = None,
        book_listing_id: int | None = None,
        order_id: int | None = None,
        escrow_id: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Transaction:
        """Record a money event. Flushed so the id is available, not committed."""
        _require_positive(amount)
        now = utc_now()
        record = Transaction(
            user_id=user_id,
            tx_type=tx_type,
            status=status,
            amount=amount,
            currency=get_settings().currency,
            book_listing_id=book_listing_id,
            order_id=order_id,
            escrow_id=escrow_id,
            description=description,
            details=metadata,
            created_at=now,
            completed_at=now if status == TransactionStatus.COMPLETED else None,
        )
        self.db.add(record)
        await self._flush("transaction record", user_id)
        return record

    # =========================================================================
    # Balance changes
    # =========================================================================

    async def debit_wallet(
        self,
        user_id: int,
        amount: Decimal,
        transaction_id: int,
        description: str | None = None,
    ) -> WalletEntry:
        """Decrease a wallet balance if it covers the amount.

        The balance check and the decrement are one statement, so
        the balance can never go negative.

        Raises:
            ValidationError: Non-positive amount
            NotFoundError: Unknown user
            InsufficientBalanceError: Balance lower than amount
        """
        _require_positive(amount)
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id, User.wallet_balance >= amount)
            .values(wallet_balance=User.wallet_balance - amount, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            available = await self.get_balance(user_id)
            raise InsufficientBalanceError(required=amount, available=available)

        return await self._write_entry(
            user_id, WalletEntryDirection.DEBIT, amount, transaction_id, description
        )

    async def credit_wallet(
        self,
        user_id: int,
        amount: Decimal,
        transaction_id: int,
        description: str | None = None,
    ) -> WalletEntry:
        """Increase a wallet balance.

        Raises:
            ValidationError: Non-positive amount
            NotFoundError: Unknown user
        """
        _require_positive(amount)
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(wallet_balance=User.wallet_balance + amount, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError("User not found", {"user_id": user_id})

        return await self._write_entry(
            user_id, WalletEntryDirection.CREDIT, amount, transaction_id, description
        )

    async def _write_entry(
        self,
        user_id: int,
        direction: WalletEntryDirection,
        amount: Decimal,
        transaction_id: int,
        description: str | None,
    ) -> WalletEntry:
        entry = WalletEntry(
            user_id=user_id,
            direction=direction,
            amount=amount,
            balance_after=await self.get_balance(user_id),
            transaction_id=transaction_id,
            description=description,
        )
        self.db.add(entry)
        await self._flush("wallet entry", user_id)
        return entry

    async def _flush(self, record: str, user_id: int) -> None:
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"[ledger] Failed to write {record} for user {user_id}: {e}")
            raise LedgerError(f"Failed to write {record}", {"user_id": user_id}) from e

    # =========================================================================
    # Admin operations
    # =========================================================================

    async def topup(
        self,
        operator: User,
        user_id: int,
        amount: Decimal,
        remark: str,
    ) -> Transaction:
        """Manually credit a user's wallet (admin only).

        Unlike the WalletLedger methods this is a complete unit of work
        and commits.

        Args:
            operator: Admin user performing the operation
            user_id: Target user ID
            amount: Amount to credit (positive)
            remark: Reason for the top-up

        Returns:
            Created topup transaction
        """
        record = await self.create_transaction(
            user_id=user_id,
            tx_type=TransactionType.TOPUP,
            amount=amount,
            description=remark,
            metadata={"operator_id": operator.id},
        )
        try:
            await self.credit_wallet(user_id, amount, record.id, remark)
        except Exception:
            await self.db.rollback()
            raise

        await self.db.commit()
        logger.info(f"[ledger] Topup {amount} to user {user_id} by operator {operator.id}")
        return record

    # =========================================================================
    # Reporting
    # =========================================================================

    async def list_transactions(self, user_id: int, limit: int = 50) -> list[Transaction]:
        """Most recent transaction records of a user."""
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_wallet_entries(self, user_id: int, limit: int = 50) -> list[WalletEntry]:
        """Most recent balance movements of a user."""
        result = await self.db.execute(
            select(WalletEntry)
            .where(WalletEntry.user_id == user_id)
            .order_by(WalletEntry.created_at.desc(), WalletEntry.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def reconcile(self, user_id: int) -> BalanceReconciliation:
        """Compare the cached balance with the sum of wallet entries."""
        cached = await self.get_balance(user_id)

        signed = case(
            (WalletEntry.direction == WalletEntryDirection.CREDIT, WalletEntry.amount),
            else_=-WalletEntry.amount,
        )
        result = await self.db.execute(
            select(func.coalesce(func.sum(signed), 0), func.count(WalletEntry.id)).where(
                WalletEntry.user_id == user_id
            )
        )
        total, count = result.one()
        entry_balance = quantize_money(Decimal(str(total)))
        difference = cached - entry_balance

        if difference != 0:
            logger.warning(
                f"[ledger] Balance mismatch for user {user_id}: "
                f"cached={cached} entries={entry_balance}"
            )

        return BalanceReconciliation(
            user_id=user_id,
            cached_balance=cached,
            entry_balance=entry_balance,
            difference=difference,
            entry_count=count,
            consistent=difference == 0,
        )
