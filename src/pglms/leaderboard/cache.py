"""Redis snapshot cache for computed standings.

One JSON snapshot per (scope, unit, period window). Snapshots are fresh for
``leaderboard_update_interval_seconds``; after that the next reader rebuilds
under a ``SET NX`` lock. If the rebuild fails the last good snapshot is
served with ``stale=True`` and its age, so staleness is always reported.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from pglms.config import get_settings
from pglms.exceptions import StorageUnavailableError

logger = structlog.get_logger()

KEY_PREFIX = "leaderboard"

Rows = list[dict[str, Any]]
Compute = Callable[[], Awaitable[Rows]]


def build_leaderboard_key(scope: str, unit: str | None, period: str, window_key: str) -> str:
    """Redis key for a standings snapshot, e.g. 'leaderboard:BRANCH:north:WEEKLY:2026-W42'."""
    return f"{KEY_PREFIX}:{scope}:{unit or '*'}:{period}:{window_key}"


def _meta(computed_at: datetime, now: datetime, ttl: int) -> dict[str, Any]:
    age = max((now - computed_at).total_seconds(), 0.0)
    return {"computed_at": computed_at, "age_seconds": round(age, 3), "stale": age >= ttl}


class LeaderboardCache:
    """Shared-read, exclusively-rewritten standings snapshots."""

    def __init__(
        self,
        redis: Any,
        ttl_seconds: int | None = None,
        lock_seconds: int | None = None,
        retention_seconds: int | None = None,
    ) -> None:
        settings = get_settings()
        self.redis = redis
        self.ttl = ttl_seconds or settings.leaderboard_update_interval_seconds
        self.lock_seconds = lock_seconds or settings.leaderboard_lock_seconds
        self.retention = max(retention_seconds or settings.leaderboard_snapshot_retention_seconds, self.ttl)

    async def _read(self, key: str) -> dict[str, Any] | None:
        raw = await self.redis.get(key)
        if not raw:
            return None
        snapshot = json.loads(raw)
        snapshot["computed_at"] = datetime.fromisoformat(snapshot["computed_at"])
        return snapshot

    async def _write(self, key: str, rows: Rows, computed_at: datetime) -> None:
        payload = json.dumps({"computed_at": computed_at.isoformat(), "rows": rows})
        await self.redis.set(key, payload, ex=self.retention)

    async def _acquire(self, lock_key: str) -> bool:
        try:
            return bool(await self.redis.set(lock_key, "1", nx=True, ex=self.lock_seconds))
        except RedisError:
            logger.warning("leaderboard_cache_lock_failed", key=lock_key, exc_info=True)
            return False

    async def _release(self, lock_key: str) -> None:
        try:
            await self.redis.delete(lock_key)
        except RedisError:
            logger.warning("leaderboard_cache_unlock_failed", key=lock_key, exc_info=True)

    def _fallback(
        self, key: str, snapshot: dict[str, Any] | None, now: datetime, exc: Exception,
    ) -> tuple[Rows, dict[str, Any]]:
        """Serve the last good snapshot after a failed recompute, flagged stale."""
        if snapshot is None:
            logger.error("leaderboard_recompute_failed", key=key, error=str(exc))
            raise StorageUnavailableError("Leaderboard is temporarily unavailable") from exc
        meta = _meta(snapshot["computed_at"], now, self.ttl)
        meta["stale"] = True
        logger.warning(
            "leaderboard_serving_stale",
            key=key,
            age_seconds=meta["age_seconds"],
            error=str(exc),
        )
        return snapshot["rows"], meta

    async def get_or_compute(
        self,
        key: str,
        compute: Compute,
        now: datetime | None = None,
    ) -> tuple[Rows, dict[str, Any]]:
        """Return (rows, cache metadata), rebuilding the snapshot when it has expired."""
        now = now or datetime.now(timezone.utc)

        if self.redis is None:
            try:
                rows = await compute()
            except SQLAlchemyError as exc:
                return self._fallback(key, None, now, exc)
            return rows, _meta(now, now, self.ttl)

        snapshot = None
        try:
            snapshot = await self._read(key)
        except (RedisError, ValueError, KeyError):
            logger.warning("leaderboard_cache_read_failed", key=key, exc_info=True)

        if snapshot is not None:
            meta = _meta(snapshot["computed_at"], now, self.ttl)
            if not meta["stale"]:
                return snapshot["rows"], meta

        lock_key = f"{key}:lock"
        acquired = await self._acquire(lock_key)
        if not acquired and snapshot is not None:
            # Another reader holds the rebuild lock.
            return snapshot["rows"], _meta(snapshot["computed_at"], now, self.ttl)

        try:
            try:
                rows = await compute()
            except (SQLAlchemyError, StorageUnavailableError) as exc:
                return self._fallback(key, snapshot, now, exc)
            if acquired:
                try:
                    await self._write(key, rows, now)
                except RedisError:
                    logger.warning("leaderboard_cache_write_failed", key=key, exc_info=True)
        finally:
            if acquired:
                await self._release(lock_key)

        return rows, _meta(now, now, self.ttl)

    async def refresh(self, key: str, compute: Compute, now: datetime | None = None) -> int:
        """Rebuild a snapshot unconditionally. Returns the row count, or -1 if the lock is held."""
        now = now or datetime.now(timezone.utc)
        lock_key = f"{key}:lock"
        if not await self._acquire(lock_key):
            return -1
        try:
            rows = await compute()
            await self._write(key, rows, now)
            return len(rows)
        finally:
            await self._release(lock_key)

    async def invalidate(self, pattern: str = f"{KEY_PREFIX}:*") -> int:
        """Drop snapshots matching ``pattern``. Returns the number of keys deleted."""
        keys = [k async for k in self.redis.scan_iter(match=pattern)]
        if not keys:
            return 0
        return int(await self.redis.delete(*keys))
