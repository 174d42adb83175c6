"""Redis connection pool for the leaderboard cache and level-up broadcasts.

Redis is optional: with ``PGLMS_REDIS_URL`` empty no pool is created,
leaderboards are computed on every read and broadcasts are skipped.
"""

import redis.asyncio as redis

_pool: redis.Redis | None = None


async def init_redis(url: str | None) -> None:
    """Create the shared client, or leave caching disabled when ``url`` is empty."""
    global _pool  # noqa: PLW0603
    if not url:
        _pool = None
        return
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
        health_check_interval=30,
    )


async def close_redis() -> None:
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_optional_redis() -> redis.Redis | None:
    """The shared client, or None when caching is disabled."""
    return _pool
