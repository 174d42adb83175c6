"""Leaderboard warm-up arq worker: periodic snapshot rebuilds.

Rebuilds the INDIVIDUAL snapshot of every period so the first reader after
expiry does not pay for the aggregate query. Unit-scoped boards are warmed
lazily by their readers.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import redis.asyncio as aioredis
from arq import cron
from arq.connections import RedisSettings

from pglms.config import get_settings
from pglms.database import close_db, init_db, session_scope
from pglms.leaderboard.cache import LeaderboardCache, build_leaderboard_key
from pglms.leaderboard.periods import Period, get_period_window
from pglms.leaderboard.service import Scope, compute_standings

logger = logging.getLogger(__name__)


async def warm_leaderboards(ctx: dict) -> dict[str, int]:
    """Rebuild INDIVIDUAL standings for every period. Returns row counts per period."""
    cache = LeaderboardCache(ctx["cache_redis"])
    now = datetime.now(timezone.utc)
    counts: dict[str, int] = {}

    async with session_scope() as db:
        for period in Period:
            window = get_period_window(period, now)
            key = build_leaderboard_key(Scope.INDIVIDUAL.value, None, period.value, window.key)
            counts[period.value] = await cache.refresh(
                key, lambda w=window: compute_standings(db, Scope.INDIVIDUAL, None, w), now=now,
            )

    logger.info("Leaderboards warmed: %s", counts)
    return counts


async def leaderboard_startup(ctx: dict) -> None:
    """Initialize Redis + DB connections on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)
    ctx["cache_redis"] = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=10,
    )
    logger.info("Leaderboard worker started")


async def leaderboard_shutdown(ctx: dict) -> None:
    """Clean up on worker shutdown."""
    client = ctx.get("cache_redis")
    if client:
        await client.aclose()
    await close_db()
    logger.info("Leaderboard worker shut down")


def _warm_minutes() -> set[int]:
    """Cron minutes matching the snapshot TTL, at least hourly."""
    step = max(1, min(60, get_settings().leaderboard_update_interval_seconds // 60))
    return set(range(0, 60, step))


class WorkerSettings:
    """arq worker settings: ``arq pglms.leaderboard.worker.WorkerSettings``."""

    functions = [warm_leaderboards]
    cron_jobs = [cron(warm_leaderboards, minute=_warm_minutes(), run_at_startup=True)]
    on_startup = leaderboard_startup
    on_shutdown = leaderboard_shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    max_jobs = 2
    job_timeout = 300
