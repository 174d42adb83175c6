"""Day-granularity streak tracking.

State is the (last_active_day, streak_days) pair on the user row. There is
no midnight job: a broken streak is only observed, and reset, on the user's
next qualifying activity. Reads use ``effective_streak`` to show 0 for a
lapsed streak without touching the persisted value.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pglms.config import get_settings


@dataclass(frozen=True)
class StreakTransition:
    streak_days: int
    last_active_day: date | None
    changed: bool
    reset: bool = False


def get_zone(tz_name: str | None) -> ZoneInfo:
    """ZoneInfo for a user's timezone, falling back to the configured default."""
    name = tz_name or get_settings().default_timezone
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(get_settings().default_timezone)


def local_day(moment: datetime, tz_name: str | None = None) -> date:
    """Calendar day of ``moment`` in the given timezone. Naive datetimes are taken as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(get_zone(tz_name)).date()


def advance_streak(
    last_active_day: date | None,
    streak_days: int,
    day: date,
    max_streak_days: int | None = None,
) -> StreakTransition:
    """Apply one qualifying activity on local ``day``.

    - no previous day: streak starts at 1
    - same day: unchanged
    - next day: +1 (held at the cap)
    - gap: reset to 1
    - earlier day (backdated event): ignored
    """
    cap = max_streak_days or get_settings().max_streak_days

    if last_active_day is None:
        return StreakTransition(streak_days=max(streak_days, 1), last_active_day=day, changed=True)

    if day == last_active_day:
        return StreakTransition(streak_days=streak_days, last_active_day=last_active_day, changed=False)

    if day < last_active_day:
        return StreakTransition(streak_days=streak_days, last_active_day=last_active_day, changed=False)

    if day == last_active_day + timedelta(days=1):
        return StreakTransition(
            streak_days=min(streak_days + 1, cap),
            last_active_day=day,
            changed=True,
        )

    return StreakTransition(streak_days=1, last_active_day=day, changed=True, reset=True)


def effective_streak(last_active_day: date | None, streak_days: int, today: date) -> int:
    """Streak as of ``today``: the persisted value while still alive, else 0.

    A streak is alive if the last activity was today or yesterday. Activity
    dated after ``today`` (clock skew) keeps the persisted value.
    """
    if last_active_day is None or streak_days <= 0:
        return 0
    if today - last_active_day > timedelta(days=1):
        return 0
    return streak_days
