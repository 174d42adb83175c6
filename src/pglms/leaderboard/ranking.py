"""Deterministic leaderboard ordering, pagination and rank lookup.

Entries are ranked by xp_earned DESC, then lifetime xp DESC, then user_id
ASC as the final tiebreaker, which makes the order total and independent of
insertion order.
"""

from __future__ import annotations

import bisect
import math
from typing import Any


def sort_key(entry: dict[str, Any]) -> tuple[int, int, int]:
    return (-entry.get("xp_earned", 0), -entry.get("xp", 0), entry["user_id"])


def rank_entries(entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Sort entries and stamp a 1-based ``rank`` on each."""
    ranked = sorted(entries, key=sort_key)
    for idx, entry in enumerate(ranked):
        entry["rank"] = idx + 1
    return ranked


def rank_of(ranked: list[dict[str, Any]], entry: dict[str, Any]) -> int:
    """1 + number of entries strictly ahead of ``entry`` (binary search over sorted keys)."""
    keys = [sort_key(e) for e in ranked]
    return bisect.bisect_left(keys, sort_key(entry)) + 1


def find_entry(ranked: list[dict[str, Any]], user_id: int) -> dict[str, Any] | None:
    return next((e for e in ranked if e["user_id"] == user_id), None)


def total_pages(total: int, page_size: int) -> int:
    return math.ceil(total / page_size) if page_size > 0 else 0


def paginate(
    entries: list[dict[str, Any]], page: int, page_size: int,
) -> list[dict[str, Any]]:
    """Slice a 1-based page. Pages past the end are empty."""
    start = (page - 1) * page_size
    return entries[start:start + page_size]


def matches_search(entry: dict[str, Any], search: str) -> bool:
    """Case-insensitive match on name, email or employee number."""
    needle = search.strip().lower()
    if not needle:
        return True
    return any(
        needle in (entry.get(field) or "").lower()
        for field in ("name", "email", "employee_number")
    )
