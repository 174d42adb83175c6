"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from pglms.redis_client import get_optional_redis


async def get_cache_redis() -> AsyncGenerator[object, None]:
    """Yield the Redis client, or None when caching is not configured."""
    yield get_optional_redis()
