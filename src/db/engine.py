"""Escrow Settlement Service - Async database engine and sessions.

Production runs on MySQL through aiomysql; the test suite and local
runs may point DATABASE_URL at SQLite through aiosqlite.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from src.core.config import get_settings


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine with pool settings for the backend."""
    if url.startswith("sqlite"):
        # aiosqlite connections are bound to the event loop that opened them
        return create_async_engine(url, echo=echo, poolclass=NullPool)
    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


engine = build_engine(get_settings().database_url, echo=get_settings().debug)

# Objects stay readable after commit
async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


async def init_db() -> None:
    """Create missing tables. Schema changes go through Alembic."""
    import src.models  # noqa: F401 - register tables on SQLModel.metadata

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def close_db() -> None:
    """Dispose of pooled connections."""
    await engine.dispose()


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Session for tasks and scripts: commits on success, rolls back on error.

    Usage:
        async with get_session() as db:
            recovered = await OrderService(db).recover_stalled_payments()
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request."""
    async with get_session() as session:
        yield session
