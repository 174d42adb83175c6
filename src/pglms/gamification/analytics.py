"""Admin gamification analytics: XP, level and streak aggregates over the learner population."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pglms.db.models import ADMIN_ROLES, User, XPEvent
from pglms.exceptions import InvalidArgumentError, StorageUnavailableError
from pglms.gamification.ranks import compute_level, resolve
from pglms.gamification.streaks import effective_streak
from pglms.gamification.xp_service import STORAGE_ERRORS, as_utc

logger = logging.getLogger(__name__)

MAX_ANALYTICS_DAYS = 365
TOP_PERFORMERS = 20


def _utc_day(db: AsyncSession):
    """SQL expression for the UTC calendar day of ``XPEvent.occurred_at``."""
    if db.get_bind().dialect.name == "postgresql":
        return func.date(func.timezone("UTC", XPEvent.occurred_at))
    # SQLite stores the UTC wall time as text.
    return func.date(XPEvent.occurred_at)


async def _daily_xp_trend(db: AsyncSession, start: date, days: int) -> list[dict]:
    """XP credited per UTC day, summed in SQL. Days without awards are 0."""
    window_start = datetime.combine(start, datetime.min.time(), tzinfo=timezone.utc)
    day = _utc_day(db).label("day")
    result = await db.execute(
        select(day, func.sum(XPEvent.amount).label("xp"))
        .join(User, User.id == XPEvent.user_id)
        .where(
            XPEvent.occurred_at >= window_start,
            User.role.notin_(ADMIN_ROLES),
        )
        .group_by(day)
    )
    # PostgreSQL returns dates, SQLite ISO strings.
    per_day = {str(row.day): int(row.xp) for row in result}

    return [
        {"date": d.isoformat(), "xp": per_day.get(d.isoformat(), 0)}
        for d in (start + timedelta(days=i) for i in range(days))
    ]


async def gamification_overview(
    db: AsyncSession, days: int = 30, now: datetime | None = None,
) -> dict:
    """Population-wide XP totals, level distribution, streak activity and the daily XP trend."""
    if not 1 <= days <= MAX_ANALYTICS_DAYS:
        raise InvalidArgumentError(f"days must be between 1 and {MAX_ANALYTICS_DAYS}")

    now = as_utc(now or datetime.now(timezone.utc))
    today = now.date()
    start = today - timedelta(days=days - 1)

    try:
        result = await db.execute(
            select(
                User.id,
                User.name,
                User.email,
                User.branch,
                User.xp,
                User.diamonds,
                User.streak_days,
                User.last_active_day,
            ).where(User.role.notin_(ADMIN_ROLES), User.status == "APPROVED")
        )
        users = result.all()
        trend = await _daily_xp_trend(db, start, days)
    except STORAGE_ERRORS as exc:
        logger.error("Gamification analytics query failed: %s", exc)
        raise StorageUnavailableError("Analytics are temporarily unavailable") from exc

    streaks = [effective_streak(u.last_active_day, u.streak_days, today) for u in users]
    levels = Counter(compute_level(u.xp) for u in users)
    total_xp = sum(u.xp for u in users)

    top = sorted(users, key=lambda u: (-u.xp, u.id))[:TOP_PERFORMERS]
    top_performers = []
    for u in top:
        info = resolve(u.xp)
        top_performers.append({
            "user_id": u.id,
            "name": u.name,
            "email": u.email,
            "branch": u.branch,
            "xp": u.xp,
            "level": info["level"],
            "rank_name": info["rank_name"],
            "streak": effective_streak(u.last_active_day, u.streak_days, today),
            "diamonds": u.diamonds,
        })

    return {
        "total_users": len(users),
        "total_xp": total_xp,
        "average_xp": round(total_xp / len(users)) if users else 0,
        "level_distribution": [{"level": lvl, "count": levels[lvl]} for lvl in sorted(levels)],
        "top_performers": top_performers,
        "active_streaks": sum(1 for s in streaks if s > 0),
        "average_streak": round(sum(streaks) / len(streaks)) if streaks else 0,
        "total_diamonds": sum(u.diamonds for u in users),
        "xp_earned_trend": trend,
        "date_range": {"days": days, "start_date": start, "end_date": today},
    }
