"""Leaderboard aggregation: scoped, period-windowed standings.

Standings are computed from the XP ledger in one aggregate query, ordered in
Python by the deterministic key in ``pglms.leaderboard.ranking`` and cached
as Redis snapshots. Level, rank name and effective streak are resolved per
read, never stored in the snapshot.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pglms.db.models import ADMIN_ROLES, NON_RANKED_ROLES, User, XPEvent
from pglms.exceptions import ForbiddenError, InvalidArgumentError
from pglms.gamification.ranks import resolve
from pglms.gamification.streaks import effective_streak, local_day
from pglms.leaderboard.cache import LeaderboardCache, build_leaderboard_key
from pglms.leaderboard.periods import Period, PeriodWindow, get_period_window
from pglms.leaderboard.ranking import (
    find_entry,
    matches_search,
    paginate,
    rank_entries,
    rank_of,
    total_pages,
)

logger = logging.getLogger(__name__)


class Scope(str, Enum):
    INDIVIDUAL = "INDIVIDUAL"
    BRANCH = "BRANCH"
    AREA = "AREA"
    REGIONAL = "REGIONAL"


# Scope -> User column holding the organizational unit.
SCOPE_COLUMNS: dict[Scope, str] = {
    Scope.BRANCH: "branch",
    Scope.AREA: "area",
    Scope.REGIONAL: "region",
}


def parse_scope(value: str) -> Scope:
    try:
        return Scope(value.upper())
    except ValueError:
        raise InvalidArgumentError(f"Unknown leaderboard scope: {value}") from None


def parse_period(value: str) -> Period:
    try:
        return Period(value.upper())
    except ValueError:
        raise InvalidArgumentError(f"Unknown leaderboard period: {value}") from None


def resolve_scope_unit(user: User, scope: Scope, requested_unit: str | None = None) -> str | None:
    """Organizational unit the leaderboard is scoped to.

    Non-admins may only view their own unit; asking for another one is refused
    before anything is computed.
    """
    if scope is Scope.INDIVIDUAL:
        return None
    own_unit = getattr(user, SCOPE_COLUMNS[scope])
    if requested_unit is None or requested_unit == own_unit:
        return own_unit
    if user.role in ADMIN_ROLES:
        return requested_unit
    raise ForbiddenError(f"Not a member of {scope.value.lower()} '{requested_unit}'")


async def compute_standings(
    db: AsyncSession, scope: Scope, unit: str | None, window: PeriodWindow,
) -> list[dict[str, Any]]:
    """Rank the scope's population by XP earned inside ``window``."""
    if scope is not Scope.INDIVIDUAL and unit is None:
        return []

    earned = (
        select(XPEvent.user_id.label("user_id"), func.sum(XPEvent.amount).label("xp_earned"))
        .where(XPEvent.occurred_at >= window.start, XPEvent.occurred_at < window.end)
        .group_by(XPEvent.user_id)
        .subquery()
    )

    stmt = (
        select(
            User.id,
            User.name,
            User.email,
            User.employee_number,
            User.avatar_url,
            User.timezone,
            User.xp,
            User.diamonds,
            User.streak_days,
            User.last_active_day,
            func.coalesce(earned.c.xp_earned, 0).label("xp_earned"),
        )
        .outerjoin(earned, earned.c.user_id == User.id)
        .where(User.role.notin_(NON_RANKED_ROLES), User.status == "APPROVED")
    )
    if scope is not Scope.INDIVIDUAL:
        stmt = stmt.where(getattr(User, SCOPE_COLUMNS[scope]) == unit)

    result = await db.execute(stmt)
    rows = [
        {
            "user_id": r.id,
            "name": r.name,
            "email": r.email,
            "employee_number": r.employee_number,
            "avatar": r.avatar_url,
            "timezone": r.timezone,
            "xp": int(r.xp),
            "xp_earned": int(r.xp_earned),
            "diamonds": int(r.diamonds),
            "streak_days": r.streak_days,
            "last_active_day": r.last_active_day.isoformat() if r.last_active_day else None,
        }
        for r in result
    ]
    ranked = rank_entries(rows)
    logger.debug(
        "Computed %s/%s standings for %s: %d users", scope.value, unit, window.key, len(ranked),
    )
    return ranked


async def load_standings(
    db: AsyncSession,
    redis: object,
    scope: Scope,
    unit: str | None,
    window: PeriodWindow,
    now: datetime | None = None,
) -> tuple[list[dict[str, Any]], dict[str, Any]]:
    """Standings through the snapshot cache."""
    cache = LeaderboardCache(redis)
    key = build_leaderboard_key(scope.value, unit, window.period.value, window.key)
    return await cache.get_or_compute(
        key, lambda: compute_standings(db, scope, unit, window), now=now,
    )


def to_entry(row: dict[str, Any], now: datetime) -> dict[str, Any]:
    """Public leaderboard entry with level/rank resolved and the streak as of today."""
    level_info = resolve(row["xp"])
    last_day = date.fromisoformat(row["last_active_day"]) if row["last_active_day"] else None
    today = local_day(now, row.get("timezone"))
    return {
        "user_id": row["user_id"],
        "name": row["name"],
        "avatar": row["avatar"],
        "employee_number": row.get("employee_number"),
        "rank": row["rank"],
        "xp": row["xp"],
        "xp_earned": row["xp_earned"],
        "level": level_info["level"],
        "rank_name": level_info["rank_name"],
        "streak": effective_streak(last_day, row["streak_days"], today),
        "diamonds": row["diamonds"],
    }


async def get_leaderboard(
    db: AsyncSession,
    redis: object,
    requesting_user: User,
    scope: Scope | str = Scope.INDIVIDUAL,
    period: Period | str = Period.DAILY,
    page: int = 1,
    page_size: int = 20,
    search: str | None = None,
    unit: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Paginated standings plus the requesting user's rank, even off-page."""
    scope = parse_scope(scope.value if isinstance(scope, Scope) else scope)
    period = parse_period(period.value if isinstance(period, Period) else period)
    if page < 1 or page_size < 1:
        raise InvalidArgumentError("page and page_size must be positive")

    now = now or datetime.now(timezone.utc)
    scope_unit = resolve_scope_unit(requesting_user, scope, unit)
    window = get_period_window(period, now)

    ranked, cache_meta = await load_standings(db, redis, scope, scope_unit, window, now)

    listed = [r for r in ranked if matches_search(r, search)] if search else ranked
    page_rows = paginate(listed, page, page_size)

    me = find_entry(ranked, requesting_user.id)
    current_user_rank = rank_of(ranked, me) if me else 0

    return {
        "top_users": [to_entry(r, now) for r in page_rows],
        "current_user_rank": current_user_rank,
        "current_user_entry": to_entry(me, now) if me else None,
        "pagination": {
            "page": page,
            "limit": page_size,
            "total": len(listed),
            "total_pages": total_pages(len(listed), page_size),
        },
        "total_users": len(ranked),
        "scope": scope.value,
        "unit": scope_unit,
        "period": period.value,
        "window": {"key": window.key, "start": window.start, "end": window.end},
        "cache": cache_meta,
    }


async def invalidate_leaderboards(redis: object) -> int:
    """Drop every cached standings snapshot."""
    if redis is None:
        return 0
    deleted = await LeaderboardCache(redis).invalidate()
    logger.info("Invalidated %d leaderboard snapshots", deleted)
    return deleted
