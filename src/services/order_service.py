"""Escrow Settlement Service - Order service.

Payment is a two-step workflow tracked by Order.payment_step:

1. debit: claim the order, record the purchase and debit the buyer (commit)
2. escrow: open the escrow, mark the order paid, take the listing stock (commit)

If step 2 fails the buyer is credited back in a separate commit and
the order is left pending at step `compensated`, from where payment
can be retried. Orders stuck at `debited` (worker crashed between the
two commits) are compensated by recover_stalled_payments.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Literal

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from src.core.config import get_settings
from src.core.exceptions import (
    AuthorizationError,
    EscrowCreationError,
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
    OperationTimeoutError,
    ValidationError,
)
from src.models.escrow import EscrowAccount
from src.models.listing import BookListing, ListingStatus
from src.models.order import (
    ORDER_TRANSITIONS,
    REQUESTABLE_STATUSES,
    STATUS_TIMESTAMP_FIELDS,
    Order,
    OrderStatus,
    PaymentStep,
    generate_order_no,
)
from src.models.transaction import TransactionType
from src.services.escrow_service import EscrowService
from src.services.ledger_service import LedgerService, WalletLedger
from src.utils.amount import split_order_amount
from src.utils.helpers import utc_now

logger = logging.getLogger(__name__)

PAYABLE_STEPS = (PaymentStep.NOT_STARTED, PaymentStep.COMPENSATED)


class OrderService:
    """Service for order management.

    Handles order creation, wallet payment into escrow and status updates.
    """

    def __init__(
        self,
        db: AsyncSession,
        ledger: WalletLedger | None = None,
        escrow_service: EscrowService | None = None,
    ) -> None:
        self.db = db
        self.ledger = ledger or LedgerService(db)
        self.escrow_service = escrow_service or EscrowService(db, self.ledger)
        self._timeout = get_settings().ledger_operation_timeout_seconds

    # =========================================================================
    # Creation
    # =========================================================================

    async def create_order(
        self,
        buyer_id: int,
        book_listing_id: int,
        quantity: int = 1,
        delivery_method: str | None = None,
        delivery_address: str | None = None,
        buyer_notes: str | None = None,
    ) -> Order:
        """Create a pending order for a listing.

        Amounts are fixed here and never recomputed:
        total = price * quantity, fee = platform percentage of total,
        seller_amount = total - fee.

        Raises:
            NotFoundError: Unknown listing
            ValidationError: Listing unavailable, own listing or bad quantity
        """
        listing = await self.db.get(BookListing, book_listing_id)
        if listing is None:
            raise NotFoundError("Book listing not found", {"book_listing_id": book_listing_id})
        if listing.listing_status != ListingStatus.ACTIVE:
            raise ValidationError("This book is no longer available")
        if listing.seller_id == buyer_id:
            raise ValidationError("You cannot buy your own book")
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", {"quantity": quantity})
        if listing.quantity_available < quantity:
            raise ValidationError(
                "Insufficient quantity available",
                {"available": listing.quantity_available, "requested": quantity},
            )

        total_amount, platform_fee, seller_amount = split_order_amount(
            listing.price, quantity, get_settings().platform_fee_percentage
        )

        order = Order(
            order_no=generate_order_no(),
            buyer_id=buyer_id,
            seller_id=listing.seller_id,
            book_listing_id=listing.id,
            quantity=quantity,
            total_amount=total_amount,
            platform_fee=platform_fee,
            seller_amount=seller_amount,
            status=OrderStatus.PENDING,
            payment_step=PaymentStep.NOT_STARTED,
            delivery_method=delivery_method,
            delivery_address=delivery_address,
            buyer_notes=buyer_notes,
        )
        self.db.add(order)
        await self.db.commit()
        await self.db.refresh(order)

        logger.info(f"[order] Created order {order.order_no} for {total_amount}")
        return order

    # =========================================================================
    # Payment
    # =========================================================================

    async def process_payment(self, order_id: int, buyer_id: int) -> Order:
        """Pay a pending order from the buyer's wallet into escrow.

        Returns:
            The paid order

        Raises:
            NotFoundError: Unknown order
            AuthorizationError: Caller is not the buyer
            InvalidStateError: Order already paid, cancelled or being paid
            InsufficientBalanceError: Wallet balance lower than the total
            EscrowCreationError: Escrow failed; the buyer has been credited back
            OperationTimeoutError: Debit step timed out and was rolled back
        """
        order = await self._load(order_id)
        if order is None:
            raise NotFoundError("Order not found", {"order_id": order_id})
        if order.buyer_id != buyer_id:
            raise AuthorizationError("Unauthorized", {"order_id": order_id})
        if order.status != OrderStatus.PENDING or order.payment_step not in PAYABLE_STEPS:
            raise InvalidStateError("Order already processed", {"order_id": order_id})

        amount = order.total_amount
        balance = await self.ledger.get_balance(buyer_id)
        if balance < amount:
            currency = get_settings().currency
            raise InsufficientBalanceError(
                required=amount,
                available=balance,
                message=(
                    f"Insufficient wallet balance. "
                    f"Required: {currency} {amount}, Available: {currency} {balance}"
                ),
            )

        listing = await self.db.get(BookListing, order.book_listing_id)
        if listing is None or listing.quantity_available < order.quantity:
            raise ValidationError("Insufficient quantity available", {"order_id": order_id})

        # Step 1: debit. The time budget bounds the work, never the commit.
        try:
            async with asyncio.timeout(self._timeout):
                purchase_id = await self._debit_buyer(order)
            await self.db.commit()
        except TimeoutError as e:
            await self.db.rollback()
            logger.error(f"[payment] Debit for order {order_id} timed out, rolled back")
            raise OperationTimeoutError("Payment timed out", {"order_id": order_id}) from e
        except Exception:
            await self.db.rollback()
            raise

        # Step 2: escrow
        try:
            async with asyncio.timeout(self._timeout):
                await self._open_escrow(order)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            # A commit can fail on the way back after the database applied it
            if await self._payment_step(order_id) == PaymentStep.ESCROWED:
                logger.warning(f"[payment] Order {order_id} is paid despite escrow step error: {e}")
            else:
                logger.error(f"[payment] Escrow creation failed for order {order_id}: {e}")
                compensated = await self._compensate(order_id, purchase_id)
                raise EscrowCreationError(
                    "Failed to create escrow account",
                    {"order_id": order_id, "compensated": compensated},
                ) from e

        order = await self._load(order_id)
        logger.info(
            f"[payment] Payment processed for order {order_id}. Escrow created: {order.escrow_id}"
        )
        return order

    async def _debit_buyer(self, order: Order) -> int:
        """Claim the order for payment and debit the buyer. Returns the purchase id."""
        now = utc_now()
        claim = await self.db.execute(
            update(Order)
            .where(
                Order.id == order.id,
                Order.status == OrderStatus.PENDING,
                Order.payment_step.in_(PAYABLE_STEPS),
            )
            .values(payment_step=PaymentStep.DEBITED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if claim.rowcount == 0:
            raise InvalidStateError("Order already processed", {"order_id": order.id})

        purchase = await self.ledger.create_transaction(
            user_id=order.buyer_id,
            tx_type=TransactionType.PURCHASE,
            amount=order.total_amount,
            description=f"Purchase of book: Order {order.order_no}",
            book_listing_id=order.book_listing_id,
            order_id=order.id,
            metadata={"order_id": order.id, "quantity": order.quantity},
        )
        await self.ledger.debit_wallet(
            order.buyer_id,
            order.total_amount,
            purchase.id,
            f"Payment for order {order.order_no}",
        )
        await self.db.execute(
            update(Order)
            .where(Order.id == order.id)
            .values(purchase_transaction_id=purchase.id)
            .execution_options(synchronize_session=False)
        )
        return purchase.id

    async def _open_escrow(self, order: Order) -> EscrowAccount:
        now = utc_now()
        escrow = await self.escrow_service.create_escrow(
            book_listing_id=order.book_listing_id,
            buyer_id=order.buyer_id,
            seller_id=order.seller_id,
            amount=order.seller_amount,
            order_id=order.id,
            platform_fee=order.platform_fee,
        )

        # Only an order still pending at step `debited` may be marked paid
        result = await self.db.execute(
            update(Order)
            .where(
                Order.id == order.id,
                Order.status == OrderStatus.PENDING,
                Order.payment_step == PaymentStep.DEBITED,
            )
            .values(
                status=OrderStatus.PAID,
                payment_step=PaymentStep.ESCROWED,
                escrow_id=escrow.id,
                paid_at=func.coalesce(Order.paid_at, now),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidStateError("Order changed during payment", {"order_id": order.id})

        result = await self.db.execute(
            update(BookListing)
            .where(
                BookListing.id == order.book_listing_id,
                BookListing.quantity_available >= order.quantity,
            )
            .values(
                quantity_available=BookListing.quantity_available - order.quantity,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ValidationError("Insufficient quantity available", {"order_id": order.id})

        await self.db.execute(
            update(BookListing)
            .where(
                BookListing.id == order.book_listing_id,
                BookListing.quantity_available <= 0,
                BookListing.listing_status == ListingStatus.ACTIVE,
            )
            .values(listing_status=ListingStatus.SOLD, sold_at=now)
            .execution_options(synchronize_session=False)
        )
        return escrow

    async def _compensate(self, order_id: int, purchase_transaction_id: int | None) -> bool:
        """Credit a debited buyer back and mark the order compensated.

        Runs in its own commit. The step claim makes sure each debit is
        compensated at most once, whoever gets here first.

        Returns:
            True if this call credited the buyer
        """
        try:
            async with asyncio.timeout(self._timeout):
                order = await self._load(order_id)
                if order is None:
                    return False
                claim = await self.db.execute(
                    update(Order)
                    .where(Order.id == order_id, Order.payment_step == PaymentStep.DEBITED)
                    .values(payment_step=PaymentStep.COMPENSATED, updated_at=utc_now())
                    .execution_options(synchronize_session=False)
                )
                if claim.rowcount == 0:
                    await self.db.rollback()
                    return False

                refund = await self.ledger.create_transaction(
                    user_id=order.buyer_id,
                    tx_type=TransactionType.REFUND,
                    amount=order.total_amount,
                    description="Refund due to escrow creation failure",
                    book_listing_id=order.book_listing_id,
                    order_id=order.id,
                    metadata={
                        "order_id": order.id,
                        "purchase_transaction_id": purchase_transaction_id
                        or order.purchase_transaction_id,
                    },
                )
                await self.ledger.credit_wallet(
                    order.buyer_id,
                    order.total_amount,
                    refund.id,
                    "Refund due to escrow creation failure",
                )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception(
                f"[payment] Compensation failed for order {order_id}, left for recovery"
            )
            return False

        logger.warning(f"[payment] Compensated buyer for order {order_id}")
        return True

    async def recover_stalled_payments(
        self,
        older_than: timedelta | None = None,
        now: datetime | None = None,
    ) -> int:
        """Compensate payments left at step `debited` by a crashed worker.

        Args:
            older_than: Minimum age since the debit, defaults to the
                configured stalled payment window
            now: Reference time, defaults to the current time

        Returns:
            Number of orders compensated
        """
        if older_than is None:
            older_than = timedelta(minutes=get_settings().stalled_payment_minutes)
        cutoff = (now or utc_now()) - older_than

        result = await self.db.execute(
            select(Order.id, Order.purchase_transaction_id).where(
                Order.payment_step == PaymentStep.DEBITED,
                Order.updated_at < cutoff,
            )
        )
        stalled = result.all()

        recovered = 0
        for order_id, purchase_id in stalled:
            if await self._compensate(order_id, purchase_id):
                recovered += 1

        if stalled:
            logger.info(f"[payment] Recovered {recovered}/{len(stalled)} stalled payments")
        return recovered

    # =========================================================================
    # Status updates
    # =========================================================================

    async def update_order_status(
        self,
        order_id: int,
        user_id: int,
        status: OrderStatus,
        tracking_number: str | None = None,
        notes: str | None = None,
        cancellation_reason: str | None = None,
    ) -> Order:
        """Move an order forward (or cancel it) on behalf of the buyer or seller.

        Cancelling an order holding an escrow refunds the escrow to the
        buyer in the same commit; if the refund fails, nothing changes.
        A disputed escrow is left to the operator resolving the dispute,
        so such an order cannot be cancelled.

        Raises:
            NotFoundError: Unknown order
            AuthorizationError: Caller is neither buyer nor seller
            ValidationError: Status cannot be requested directly
            InvalidStateError: Transition not allowed from the current status,
                or the escrow is under dispute
        """
        order = await self._load(order_id)
        if order is None:
            raise NotFoundError("Order not found", {"order_id": order_id})
        if not order.is_party(user_id):
            raise AuthorizationError("Unauthorized", {"order_id": order_id})
        if status not in REQUESTABLE_STATUSES:
            raise ValidationError(f"Cannot set order status to {status.value}")
        if status not in ORDER_TRANSITIONS[order.status]:
            raise InvalidStateError(
                f"Cannot change order status from {order.status.value} to {status.value}",
                {"order_id": order_id},
            )

        now = utc_now()
        if tracking_number:
            order.tracking_number = tracking_number
        if cancellation_reason:
            order.cancellation_reason = cancellation_reason
        if notes:
            if user_id == order.seller_id:
                order.seller_notes = notes
            else:
                order.buyer_notes = notes
        self.db.add(order)

        if status == OrderStatus.CANCELLED and order.escrow_id is not None:
            # refund_escrow commits the field changes above with the refund
            await self.escrow_service.refund_escrow(
                order.escrow_id,
                reason=cancellation_reason or "Order cancelled",
                order_status=OrderStatus.CANCELLED,
                now=now,
                allow_disputed=False,
            )
        else:
            try:
                await self._set_status(order, status, now)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        await self.db.refresh(order)
        logger.info(f"[order] Updated order {order_id} status to {status.value}")
        return order

    async def _set_status(self, order: Order, status: OrderStatus, now: datetime) -> None:
        values = {"status": status, "updated_at": now}
        field = STATUS_TIMESTAMP_FIELDS.get(status)
        if field:
            column = getattr(Order, field)
            values[field] = func.coalesce(column, now)

        result = await self.db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == order.status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidStateError(
                "Order status changed concurrently, please retry", {"order_id": order.id}
            )

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_order(self, order_id: int, user_id: int) -> Order:
        """Get an order visible to its buyer or seller."""
        order = await self.db.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order not found", {"order_id": order_id})
        if not order.is_party(user_id):
            raise AuthorizationError("Unauthorized", {"order_id": order_id})
        return order

    async def get_user_orders(
        self, user_id: int, role: Literal["buyer", "seller"] = "buyer"
    ) -> list[Order]:
        """Orders where the user is the buyer or the seller, newest first."""
        column = Order.buyer_id if role == "buyer" else Order.seller_id
        result = await self.db.execute(
            select(Order)
            .where(column == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        return list(result.scalars().all())

    async def _payment_step(self, order_id: int) -> PaymentStep | None:
        result = await self.db.execute(select(Order.payment_step).where(Order.id == order_id))
        return result.scalar_one_or_none()

    async def _load(self, order_id: int) -> Order | None:
        result = await self.db.execute(
            select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
