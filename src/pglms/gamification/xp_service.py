"""XP ledger: idempotent awards, atomic counter updates and level-up detection."""

from __future__ import annotations

import json
import logging
import math
from datetime import date, datetime, timezone
from typing import Any

from redis.exceptions import RedisError
from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from pglms.config import get_settings
from pglms.db.models import User, XPEvent
from pglms.exceptions import InvalidArgumentError, NotFoundError, StorageUnavailableError
from pglms.gamification.ranks import compute_level, resolve
from pglms.gamification.streaks import advance_streak, effective_streak, local_day

logger = logging.getLogger(__name__)

# First completion only: one ledger entry per (user, source, source_id).
FIRST_COMPLETION_SOURCES = frozenset({"task", "lesson", "module", "course"})
# Repeatable once per local calendar day; source_id is the ISO date.
DAILY_SOURCES = frozenset({"daily-login"})
XP_SOURCES = FIRST_COMPLETION_SOURCES | DAILY_SOURCES

STORAGE_ERRORS = (OperationalError, InterfaceError)


def as_utc(moment: datetime) -> datetime:
    """Normalize to an aware UTC datetime. Naive values are taken as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def apply_streak_bonus(base_amount: int, streak_days: int) -> int:
    """Multiply once by STREAK_BONUS_MULTIPLIER when the streak qualifies."""
    settings = get_settings()
    if streak_days >= settings.streak_bonus_threshold:
        return round_half_up(base_amount * settings.streak_bonus_multiplier)
    return base_amount


def crystals_for(amount: int, source: str) -> int:
    """Energy crystals earned alongside ``amount`` XP."""
    settings = get_settings()
    crystals = math.floor(amount * settings.reward_crystals_per_xp)
    if source in DAILY_SOURCES:
        crystals += settings.daily_reward_crystals
    return crystals


def _insert_for(db: AsyncSession):
    """Dialect-specific INSERT supporting ON CONFLICT DO NOTHING."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


async def _load_counters(db: AsyncSession, user_id: int) -> Any:
    result = await db.execute(
        select(
            User.id,
            User.timezone,
            User.xp,
            User.streak_days,
            User.longest_streak,
            User.last_active_day,
        ).where(User.id == user_id)
    )
    return result.one_or_none()


async def grant_xp(
    db: AsyncSession,
    redis: object,
    user_id: int,
    source: str,
    source_id: str | None,
    base_amount: int,
    occurred_at: datetime | None = None,
    description: str | None = None,
) -> dict:
    """Award XP once per idempotency key. Returns ``accepted`` and ``amount_credited``.

    In one transaction:
    1. Insert into xp_events (ON CONFLICT DO NOTHING on the idempotency key)
    2. Atomically increment users.xp and users.diamonds
    3. Advance the streak with a compare-and-swap update
    After commit, a level change is broadcast on ``pubsub:level_up``.
    """
    if source not in XP_SOURCES:
        raise InvalidArgumentError(f"Unknown XP source: {source}")
    if base_amount <= 0:
        raise InvalidArgumentError("XP amount must be positive")

    occurred_at = as_utc(occurred_at or datetime.now(timezone.utc))

    try:
        row = await _load_counters(db, user_id)
        if row is None:
            raise NotFoundError(f"User {user_id} not found")

        day = local_day(occurred_at, row.timezone)
        if source in DAILY_SOURCES:
            source_id = day.isoformat()
        elif not source_id:
            raise InvalidArgumentError(f"source_id is required for {source} awards")

        amount = apply_streak_bonus(
            base_amount, effective_streak(row.last_active_day, row.streak_days, day)
        )

        insert = _insert_for(db)
        stmt = (
            insert(XPEvent)
            .values(
                user_id=user_id,
                amount=amount,
                source=source,
                source_id=source_id,
                description=description,
                occurred_at=occurred_at,
                created_at=datetime.now(timezone.utc),
            )
            .on_conflict_do_nothing(index_elements=["user_id", "source", "source_id"])
            .returning(XPEvent.id)
        )
        event_id = (await db.execute(stmt)).scalar_one_or_none()

        if event_id is None:
            await db.rollback()
            logger.info(
                "Duplicate XP award ignored: user=%s source=%s source_id=%s",
                user_id, source, source_id,
            )
            level_info = resolve(row.xp)
            return {
                "accepted": False,
                "amount_credited": 0,
                "event_id": None,
                "total_xp": row.xp,
                "level": level_info["level"],
                "rank_name": level_info["rank_name"],
                "leveled_up": False,
                "streak_days": row.streak_days,
            }

        result = await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(
                xp=User.xp + amount,
                diamonds=User.diamonds + crystals_for(amount, source),
            )
            .returning(User.xp)
            .execution_options(synchronize_session=False)
        )
        total_xp = result.scalar_one()

        streak_days = await _advance_streak_cas(db, user_id, day, row)
        await db.commit()
    except STORAGE_ERRORS as exc:
        await db.rollback()
        logger.error("XP award failed for user %s: %s", user_id, exc)
        raise StorageUnavailableError("XP ledger is temporarily unavailable") from exc

    old_level = compute_level(total_xp - amount)
    level_info = resolve(total_xp)
    leveled_up = level_info["level"] > old_level
    if leveled_up:
        await _emit_level_up(redis, user_id, old_level, level_info["level"], level_info["rank_name"])

    logger.info(
        "Granted %d XP to user %s (source=%s source_id=%s base=%d)",
        amount, user_id, source, source_id, base_amount,
    )
    return {
        "accepted": True,
        "amount_credited": amount,
        "event_id": event_id,
        "total_xp": total_xp,
        "level": level_info["level"],
        "rank_name": level_info["rank_name"],
        "leveled_up": leveled_up,
        "streak_days": streak_days,
    }


async def _advance_streak_cas(db: AsyncSession, user_id: int, day: date, row: Any) -> int:
    """Compare-and-swap the (last_active_day, streak_days) pair, retrying on contention."""
    last_day, streak, longest = row.last_active_day, row.streak_days, row.longest_streak

    for _ in range(get_settings().streak_cas_retries):
        transition = advance_streak(last_day, streak, day)
        if not transition.changed:
            return streak

        day_matches = (
            User.last_active_day.is_(None) if last_day is None else User.last_active_day == last_day
        )
        result = await db.execute(
            update(User)
            .where(User.id == user_id, User.streak_days == streak, day_matches)
            .values(
                streak_days=transition.streak_days,
                last_active_day=transition.last_active_day,
                longest_streak=max(longest, transition.streak_days),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            if transition.reset:
                logger.info("Streak reset for user %s (was %d days)", user_id, streak)
            return transition.streak_days

        fresh = await _load_counters(db, user_id)
        last_day, streak, longest = fresh.last_active_day, fresh.streak_days, fresh.longest_streak

    logger.warning("Streak update for user %s lost the race %d times", user_id, get_settings().streak_cas_retries)
    return streak


async def _emit_level_up(
    redis: object,
    user_id: int,
    old_level: int,
    new_level: int,
    rank_name: str,
) -> None:
    """Broadcast a level-up event for activity feeds and celebration overlays."""
    logger.info("User %s leveled up: %d -> %d (%s)", user_id, old_level, new_level, rank_name)
    if redis is None:
        return
    try:
        await redis.publish(  # type: ignore[union-attr]
            "pubsub:level_up",
            json.dumps({
                "user_id": user_id,
                "old_level": old_level,
                "new_level": new_level,
                "rank_name": rank_name,
            }),
        )
    except RedisError:
        logger.warning("Failed to publish level_up broadcast", exc_info=True)


# ---------------------------------------------------------------------------
# Ledger reads
# ---------------------------------------------------------------------------


async def get_user_progress(db: AsyncSession, user_id: int, today: date | None = None) -> dict:
    """Lifetime XP with resolved level/rank and the streak as of today."""
    try:
        # Counters are updated in SQL, so never trust a cached identity.
        user = await db.get(User, user_id, populate_existing=True)
    except STORAGE_ERRORS as exc:
        logger.error("Progress read failed for user %s: %s", user_id, exc)
        raise StorageUnavailableError("XP ledger is temporarily unavailable") from exc
    if user is None:
        raise NotFoundError(f"User {user_id} not found")

    if today is None:
        today = local_day(datetime.now(timezone.utc), user.timezone)
    level_info = resolve(user.xp)
    return {
        "user_id": user.id,
        "xp": user.xp,
        "diamonds": user.diamonds,
        "streak_days": user.streak_days,
        "effective_streak": effective_streak(user.last_active_day, user.streak_days, today),
        "longest_streak": user.longest_streak,
        "last_active_day": user.last_active_day,
        **level_info,
    }


async def get_xp_history(
    db: AsyncSession, user_id: int, page: int = 1, per_page: int = 50,
) -> dict:
    """Paginated ledger entries, newest first."""
    try:
        total = (
            await db.execute(
                select(func.count()).select_from(XPEvent).where(XPEvent.user_id == user_id)
            )
        ).scalar_one()

        result = await db.execute(
            select(XPEvent)
            .where(XPEvent.user_id == user_id)
            .order_by(XPEvent.occurred_at.desc(), XPEvent.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        events = result.scalars().all()
    except STORAGE_ERRORS as exc:
        logger.error("XP history read failed for user %s: %s", user_id, exc)
        raise StorageUnavailableError("XP ledger is temporarily unavailable") from exc

    return {
        "entries": [
            {
                "amount": e.amount,
                "source": e.source,
                "source_id": e.source_id,
                "description": e.description,
                "occurred_at": e.occurred_at,
            }
            for e in events
        ],
        "total": total,
        "page": page,
        "per_page": per_page,
    }
