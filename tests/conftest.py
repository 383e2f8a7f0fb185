"""Shared fixtures for the escrow settlement test suite.

The application engine is created at import time from DATABASE_URL, so
the URL is pointed at a throwaway SQLite file before anything from src
is imported. Every test starts from freshly created tables.

Factories commit through their own session and return detached
objects, so a rollback in the session under test never expires them.
"""

import os
import tempfile
from decimal import Decimal
from pathlib import Path

_DB_DIR = tempfile.mkdtemp(prefix="escrow-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"

import pytest_asyncio  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import src.models  # noqa: E402, F401
from src.db.engine import async_session_factory, engine  # noqa: E402
from src.models.escrow import EscrowAccount  # noqa: E402
from src.models.listing import BookListing, ListingStatus  # noqa: E402
from src.models.order import Order  # noqa: E402
from src.models.user import User, UserRole  # noqa: E402
from src.services.escrow_service import EscrowService  # noqa: E402
from src.services.ledger_service import LedgerService  # noqa: E402
from src.services.order_service import OrderService  # noqa: E402

BOOK_PRICE = Decimal("1000.00")
BUYER_FUNDS = Decimal("2000.00")


@pytest_asyncio.fixture(autouse=True)
async def database():
    """Recreate all tables for each test."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
        await conn.run_sync(SQLModel.metadata.create_all)
    yield
    await engine.dispose()


@pytest_asyncio.fixture
async def db():
    async with async_session_factory() as session:
        yield session


async def make_user(
    clerk_id: str,
    funds: Decimal = Decimal("0"),
    role: UserRole = UserRole.USER,
) -> User:
    """Create a user, funding the wallet through the ledger so it reconciles."""
    async with async_session_factory() as session:
        user = User(clerk_id=clerk_id, email=f"{clerk_id}@example.com", role=role)
        session.add(user)
        await session.commit()
        if funds > 0:
            await LedgerService(session).topup(user, user.id, funds, "Initial funds")
        await session.refresh(user)
        return user


async def make_listing(
    seller: User,
    price: Decimal = BOOK_PRICE,
    quantity: int = 1,
    listing_status: ListingStatus = ListingStatus.ACTIVE,
) -> BookListing:
    async with async_session_factory() as session:
        listing = BookListing(
            seller_id=seller.id,
            title="Things Fall Apart",
            price=price,
            quantity_available=quantity,
            listing_status=listing_status,
        )
        session.add(listing)
        await session.commit()
        await session.refresh(listing)
        return listing


async def balance_of(user_id: int) -> Decimal:
    """Committed wallet balance, read through a fresh session."""
    async with async_session_factory() as session:
        return await LedgerService(session).get_balance(user_id)


async def load_escrow(escrow_id: int) -> EscrowAccount:
    async with async_session_factory() as session:
        return await session.get(EscrowAccount, escrow_id)


async def load_order(order_id: int) -> Order:
    async with async_session_factory() as session:
        return await session.get(Order, order_id)


@pytest_asyncio.fixture
async def buyer():
    return await make_user("user_buyer", funds=BUYER_FUNDS)


@pytest_asyncio.fixture
async def seller():
    return await make_user("user_seller")


@pytest_asyncio.fixture
async def admin():
    return await make_user("user_admin", role=UserRole.ADMIN)


@pytest_asyncio.fixture
async def listing(seller):
    return await make_listing(seller)


@pytest_asyncio.fixture
async def pending_order(buyer, listing):
    async with async_session_factory() as session:
        return await OrderService(session).create_order(buyer.id, listing.id)


@pytest_asyncio.fixture
async def paid_order(buyer, pending_order):
    """Order paid by the buyer: 1000 debited, 950 held in escrow."""
    async with async_session_factory() as session:
        return await OrderService(session).process_payment(pending_order.id, buyer.id)


class InterleavedEscrowService(EscrowService):
    """Runs a competing operation in its own session right before the status claim.

    Both callers have then seen the same status, and only the
    conditional update decides which one wins.
    """

    def __init__(self, db, competitor, ledger=None):
        super().__init__(db, ledger)
        self._competitor = competitor

    async def _claim(self, escrow, target, now, **values):
        if self._competitor is not None:
            competitor, self._competitor = self._competitor, None
            async with async_session_factory() as other:
                await competitor(EscrowService(other), escrow.id)
        return await super()._claim(escrow, target, now, **values)


class FakeLock:
    def __init__(self, held: bool):
        self.held = held
        self.released = False

    async def acquire(self):
        return not self.held

    async def release(self):
        self.released = True


class FakeRedis:
    """Minimal stand-in exposing the lock() API of redis.asyncio clients."""

    def __init__(self, held: bool = False):
        self.lock_obj = FakeLock(held)
        self.lock_calls = []
        self.closed = False

    def lock(self, name, timeout=None, blocking=True):
        self.lock_calls.append((name, timeout, blocking))
        return self.lock_obj

    async def aclose(self):
        self.closed = True
