"""Escrow Service - Lifecycle of escrow accounts.

An escrow leaves `active` exactly once. Every transition is claimed with
a conditional UPDATE that only matches the status the caller observed,
so when a sweep and a manual release/refund race on the same escrow
only one of them can win; the loser sees zero affected rows and fails
with the current status.

Release and refund are one unit of work each: the status claim, the
transaction record, the wallet credit and the linked order update commit
together or not at all.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Literal, TypeVar

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from src.core.config import get_settings
from src.core.exceptions import (
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    OperationTimeoutError,
    ValidationError,
)
from src.models.escrow import ESCROW_TRANSITIONS, EscrowAccount, EscrowStatus
from src.models.order import Order, OrderStatus
from src.models.transaction import TransactionType
from src.services.ledger_service import LedgerService, WalletLedger
from src.utils.helpers import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EscrowService:
    """Service for escrow account management.

    Handles escrow creation at payment time, release to the seller,
    refund to the buyer and disputes.
    """

    def __init__(
        self,
        db: AsyncSession,
        ledger: WalletLedger | None = None,
        timeout: float | None = None,
    ) -> None:
        self.db = db
        self.ledger = ledger or LedgerService(db)
        self._timeout = timeout or get_settings().ledger_operation_timeout_seconds

    # =========================================================================
    # Creation
    # =========================================================================

    async def create_escrow(
        self,
        book_listing_id: int,
        buyer_id: int,
        seller_id: int,
        amount: Decimal,
        order_id: int | None = None,
        platform_fee: Decimal = Decimal("0"),
    ) -> EscrowAccount:
        """Open an active escrow holding the seller's portion of a sale.

        Part of the payment unit of work: flushes, never commits.

        Args:
            book_listing_id: Listing sold
            buyer_id: Buyer whose funds are held
            seller_id: Seller who receives the funds on release
            amount: Seller's portion (the platform fee is already deducted)
            order_id: Order whose payment opened the escrow
            platform_fee: Fee retained by the platform, informational

        Returns:
            The new escrow account
        """
        if amount <= 0:
            raise ValidationError("Escrow amount must be positive", {"amount": str(amount)})

        settings = get_settings()
        now = utc_now()
        escrow = EscrowAccount(
            order_id=order_id,
            book_listing_id=book_listing_id,
            buyer_id=buyer_id,
            seller_id=seller_id,
            amount=amount,
            platform_fee=platform_fee,
            currency=settings.currency,
            status=EscrowStatus.ACTIVE,
            hold_period_days=settings.escrow_hold_period_days,
            release_at=now + timedelta(days=settings.escrow_hold_period_days),
            created_at=now,
            updated_at=now,
        )
        self.db.add(escrow)
        await self.db.flush()

        # Bookkeeping only: the buyer's debit is the purchase transaction
        await self.ledger.create_transaction(
            user_id=buyer_id,
            tx_type=TransactionType.ESCROW_HOLD,
            amount=amount,
            description="Funds held in escrow for book purchase",
            book_listing_id=book_listing_id,
            order_id=order_id,
            escrow_id=escrow.id,
            metadata={
                "escrow_id": escrow.id,
                "order_id": order_id,
                "seller_amount": str(amount),
                "platform_fee": str(platform_fee),
            },
        )

        logger.info(
            f"[escrow] Created escrow {escrow.id} for {amount}. Release at: {escrow.release_at}"
        )
        return escrow

    # =========================================================================
    # Release / Refund
    # =========================================================================

    async def release_escrow(
        self,
        escrow_id: int,
        force: bool = False,
        now: datetime | None = None,
    ) -> EscrowAccount:
        """Pay the escrowed amount out to the seller.

        Args:
            escrow_id: Escrow to release
            force: Allow releasing a disputed escrow (dispute resolution)
            now: Release time, defaults to the current time

        Returns:
            The released escrow

        Raises:
            NotFoundError: Unknown escrow
            InvalidStateError: Already released or refunded, or disputed without force
            OperationTimeoutError: Rolled back after exceeding the time budget
        """
        return await self._unit_of_work(
            "release", escrow_id, lambda: self._release(escrow_id, force, now or utc_now())
        )

    async def _release(self, escrow_id: int, force: bool, now: datetime) -> EscrowAccount:
        escrow = await self._load(escrow_id)
        self._check_releasable(escrow, force)

        values = {"released_at": now}
        if escrow.status == EscrowStatus.DISPUTED:
            values["dispute_resolved_at"] = now
        if not await self._claim(escrow, EscrowStatus.RELEASED, now, **values):
            await self.db.refresh(escrow)
            self._check_releasable(escrow, force)
            raise InvalidStateError(
                "Escrow was modified concurrently", {"escrow_id": escrow_id}
            )

        record = await self.ledger.create_transaction(
            user_id=escrow.seller_id,
            tx_type=TransactionType.ESCROW_RELEASE,
            amount=escrow.amount,
            description="Escrow funds released for book sale",
            book_listing_id=escrow.book_listing_id,
            order_id=escrow.order_id,
            escrow_id=escrow.id,
            metadata={"escrow_id": escrow.id, "original_amount": str(escrow.amount)},
        )
        await self.ledger.credit_wallet(
            escrow.seller_id, escrow.amount, record.id, "Payment received for book sale"
        )

        await self.db.execute(
            update(Order)
            .where(Order.escrow_id == escrow.id)
            .values(
                status=OrderStatus.COMPLETED,
                completed_at=func.coalesce(Order.completed_at, now),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

        logger.info(
            f"[escrow] Released escrow {escrow.id}. "
            f"Amount: {escrow.amount} to seller {escrow.seller_id}"
        )
        return escrow

    async def refund_escrow(
        self,
        escrow_id: int,
        reason: str | None = None,
        order_status: Literal[OrderStatus.REFUNDED, OrderStatus.CANCELLED] = OrderStatus.REFUNDED,
        now: datetime | None = None,
        allow_disputed: bool = True,
    ) -> EscrowAccount:
        """Return the escrowed amount to the buyer.

        Args:
            escrow_id: Escrow to refund
            reason: Refund reason, recorded on the refund transaction
            order_status: Final status of the linked order; cancelled when
                the refund is driven by an order cancellation
            now: Refund time, defaults to the current time
            allow_disputed: Accept a disputed escrow (dispute resolution).
                Order cancellations pass False, so a dispute raised any
                time before the claim blocks them.

        Returns:
            The refunded escrow

        Raises:
            NotFoundError: Unknown escrow
            InvalidStateError: Already refunded or released, or disputed
                without allow_disputed
            OperationTimeoutError: Rolled back after exceeding the time budget
        """
        return await self._unit_of_work(
            "refund",
            escrow_id,
            lambda: self._refund(
                escrow_id, reason, order_status, now or utc_now(), allow_disputed
            ),
        )

    async def _refund(
        self,
        escrow_id: int,
        reason: str | None,
        order_status: OrderStatus,
        now: datetime,
        allow_disputed: bool,
    ) -> EscrowAccount:
        escrow = await self._load(escrow_id)
        self._check_refundable(escrow, allow_disputed)

        values = {"refunded_at": now}
        if escrow.status == EscrowStatus.DISPUTED:
            values["dispute_resolved_at"] = now
        if not await self._claim(escrow, EscrowStatus.REFUNDED, now, **values):
            await self.db.refresh(escrow)
            self._check_refundable(escrow, allow_disputed)
            raise InvalidStateError(
                "Escrow was modified concurrently", {"escrow_id": escrow_id}
            )

        record = await self.ledger.create_transaction(
            user_id=escrow.buyer_id,
            tx_type=TransactionType.REFUND,
            amount=escrow.amount,
            description=reason or "Escrow refund",
            book_listing_id=escrow.book_listing_id,
            order_id=escrow.order_id,
            escrow_id=escrow.id,
            metadata={"escrow_id": escrow.id, "reason": reason},
        )
        await self.ledger.credit_wallet(
            escrow.buyer_id, escrow.amount, record.id, "Refund for cancelled order"
        )

        order_values = {"status": order_status, "updated_at": now}
        if order_status == OrderStatus.CANCELLED:
            order_values["cancelled_at"] = func.coalesce(Order.cancelled_at, now)
        await self.db.execute(
            update(Order)
            .where(Order.escrow_id == escrow.id)
            .values(**order_values)
            .execution_options(synchronize_session=False)
        )

        logger.info(
            f"[escrow] Refunded escrow {escrow.id}. "
            f"Amount: {escrow.amount} to buyer {escrow.buyer_id}"
        )
        return escrow

    # =========================================================================
    # Disputes
    # =========================================================================

    async def create_dispute(
        self,
        escrow_id: int,
        reason: str,
        user_id: int | None = None,
    ) -> EscrowAccount:
        """Freeze an active escrow pending manual resolution. No money moves.

        Args:
            escrow_id: Escrow to dispute
            reason: Dispute reason, kept after resolution
            user_id: Caller; when given it must be the buyer or the seller
        """

        async def work() -> EscrowAccount:
            escrow = await self._load(escrow_id)
            if escrow is None:
                raise NotFoundError("Escrow account not found", {"escrow_id": escrow_id})
            if user_id is not None and not escrow.is_party(user_id):
                raise AuthorizationError("Unauthorized", {"escrow_id": escrow_id})
            if escrow.status != EscrowStatus.ACTIVE or not await self._claim(
                escrow, EscrowStatus.DISPUTED, utc_now(), dispute_reason=reason
            ):
                raise InvalidStateError(
                    "Can only dispute active escrow accounts", {"escrow_id": escrow_id}
                )
            logger.info(f"[escrow] Dispute created for escrow {escrow_id}")
            return escrow

        return await self._unit_of_work("dispute", escrow_id, work)

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_escrows_ready_for_release(
        self, now: datetime | None = None
    ) -> list[EscrowAccount]:
        """Active escrows whose hold period has passed, oldest first."""
        now = now or utc_now()
        result = await self.db.execute(
            select(EscrowAccount)
            .where(
                EscrowAccount.status == EscrowStatus.ACTIVE,
                EscrowAccount.release_at < now,
            )
            .order_by(EscrowAccount.release_at, EscrowAccount.id)
        )
        return list(result.scalars().all())

    async def get_escrow(self, escrow_id: int, user_id: int | None = None) -> EscrowAccount:
        """Get an escrow, optionally checking the caller is a party to it."""
        escrow = await self.db.get(EscrowAccount, escrow_id)
        if escrow is None:
            raise NotFoundError("Escrow account not found", {"escrow_id": escrow_id})
        if user_id is not None and not escrow.is_party(user_id):
            raise AuthorizationError("Unauthorized", {"escrow_id": escrow_id})
        return escrow

    async def get_user_escrows(
        self, user_id: int, role: Literal["buyer", "seller"] = "buyer"
    ) -> list[EscrowAccount]:
        """Escrows where the user is the buyer or the seller, newest first."""
        column = EscrowAccount.buyer_id if role == "buyer" else EscrowAccount.seller_id
        result = await self.db.execute(
            select(EscrowAccount)
            .where(column == user_id)
            .order_by(EscrowAccount.created_at.desc(), EscrowAccount.id.desc())
        )
        return list(result.scalars().all())

    # =========================================================================
    # Internals
    # =========================================================================

    async def _load(self, escrow_id: int) -> EscrowAccount | None:
        result = await self.db.execute(
            select(EscrowAccount)
            .where(EscrowAccount.id == escrow_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _claim(
        self,
        escrow: EscrowAccount,
        target: EscrowStatus,
        now: datetime,
        **values,
    ) -> bool:
        """Move escrow to target only if its stored status is still the observed one."""
        if target not in ESCROW_TRANSITIONS[escrow.status]:
            raise InvalidStateError(
                f"Escrow cannot move from {escrow.status.value} to {target.value}",
                {"escrow_id": escrow.id},
            )
        result = await self.db.execute(
            update(EscrowAccount)
            .where(EscrowAccount.id == escrow.id, EscrowAccount.status == escrow.status)
            .values(status=target, updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def _check_releasable(escrow: EscrowAccount | None, force: bool) -> None:
        if escrow is None:
            raise NotFoundError("Escrow account not found")
        if escrow.status == EscrowStatus.RELEASED:
            raise InvalidStateError("Escrow already released", {"escrow_id": escrow.id})
        if escrow.status == EscrowStatus.REFUNDED:
            raise InvalidStateError("Escrow already refunded", {"escrow_id": escrow.id})
        if escrow.status == EscrowStatus.DISPUTED and not force:
            raise InvalidStateError(
                "Escrow is under dispute and cannot be released", {"escrow_id": escrow.id}
            )

    @staticmethod
    def _check_refundable(escrow: EscrowAccount | None, allow_disputed: bool) -> None:
        if escrow is None:
            raise NotFoundError("Escrow account not found")
        if escrow.status == EscrowStatus.REFUNDED:
            raise InvalidStateError("Escrow already refunded", {"escrow_id": escrow.id})
        if escrow.status == EscrowStatus.RELEASED:
            raise InvalidStateError("Escrow already released", {"escrow_id": escrow.id})
        if escrow.status == EscrowStatus.DISPUTED and not allow_disputed:
            raise InvalidStateError(
                "Escrow is under dispute and awaits manual resolution", {"escrow_id": escrow.id}
            )

    async def _unit_of_work(
        self, operation: str, escrow_id: int, work: Callable[[], Awaitable[T]]
    ) -> T:
        """Run work under the time budget, then commit; roll back on any failure.

        Only the work is bounded; a timeout never interrupts the commit, so
        OperationTimeoutError always means nothing was written.
        """
        try:
            async with asyncio.timeout(self._timeout):
                result = await work()
            await self.db.commit()
        except TimeoutError as e:
            await self.db.rollback()
            logger.error(f"[escrow] {operation} of escrow {escrow_id} timed out, rolled back")
            raise OperationTimeoutError(
                f"Escrow {operation} timed out", {"escrow_id": escrow_id}
            ) from e
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(result)
        return result
