"""Redis clients for the Escrow Settlement Service.

The API process keeps one shared client for its lifetime. Celery tasks
run every invocation in a fresh event loop and use their own client.
"""

import redis.asyncio as redis

from src.core.config import get_settings

_client: redis.Redis | None = None


def create_redis() -> redis.Redis:
    """New client for the configured Redis URL. The caller closes it."""
    return redis.from_url(get_settings().redis_url, encoding="utf-8", decode_responses=True)


async def init_redis() -> None:
    """Open the shared client (application startup)."""
    global _client
    _client = create_redis()


async def close_redis() -> None:
    """Close the shared client (application shutdown)."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    """Shared client.

    Raises:
        RuntimeError: If init_redis() has not run
    """
    if _client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() during application startup.")
    return _client
