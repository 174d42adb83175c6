"""Period window utilities for leaderboards.

Windows are half-open ``[start, end)`` in UTC, computed from calendar
boundaries in the leaderboard timezone. The ISO week runs Monday-Sunday.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum

from pglms.config import get_settings
from pglms.gamification.streaks import get_zone


class Period(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


@dataclass(frozen=True)
class PeriodWindow:
    period: Period
    key: str  # e.g. '2026-10-18', '2026-W42', '2026-10', '2026'
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return self.start <= moment < self.end


def get_week_iso(dt: datetime | date) -> str:
    """Get ISO week string e.g. '2026-W09'. Uses %G-W%V (ISO year + ISO week)."""
    return dt.strftime("%G-W%V")


def get_monday(dt: datetime | date) -> date:
    """Get the Monday of the ISO week containing dt."""
    d = dt.date() if isinstance(dt, datetime) else dt
    return d - timedelta(days=d.weekday())


def _next_month(d: date) -> date:
    return date(d.year + 1, 1, 1) if d.month == 12 else date(d.year, d.month + 1, 1)


def get_period_window(
    period: Period | str,
    now: datetime | None = None,
    tz_name: str | None = None,
) -> PeriodWindow:
    """Current window for ``period`` as of ``now``."""
    period = Period(period)
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    zone = get_zone(tz_name or get_settings().leaderboard_timezone)
    today = now.astimezone(zone).date()

    if period is Period.DAILY:
        first, last, key = today, today + timedelta(days=1), today.isoformat()
    elif period is Period.WEEKLY:
        first = get_monday(today)
        last, key = first + timedelta(days=7), get_week_iso(today)
    elif period is Period.MONTHLY:
        first = today.replace(day=1)
        last, key = _next_month(first), first.strftime("%Y-%m")
    else:
        first = date(today.year, 1, 1)
        last, key = date(today.year + 1, 1, 1), str(today.year)

    start = datetime.combine(first, time.min, tzinfo=zone).astimezone(timezone.utc)
    end = datetime.combine(last, time.min, tzinfo=zone).astimezone(timezone.utc)
    return PeriodWindow(period=period, key=key, start=start, end=end)
