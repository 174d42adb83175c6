"""Rank table and level/rank resolution.

The rank table is loaded once per process (built-in Pixel Galaxy tiers, or a
JSON file named by ``PGLMS_RANK_TABLE_PATH``) and never mutated afterwards.
"""

from __future__ import annotations

import bisect
import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from pglms.config import get_settings
from pglms.exceptions import InvalidArgumentError


@dataclass(frozen=True)
class RankTier:
    level: int
    name: str
    min_xp: int


DEFAULT_RANKS: tuple[RankTier, ...] = (
    RankTier(level=1, name="Stellar Cadet", min_xp=0),
    RankTier(level=5, name="Space Explorer", min_xp=5000),
    RankTier(level=10, name="Nebula Navigator", min_xp=10000),
    RankTier(level=15, name="Star Seeker", min_xp=15000),
    RankTier(level=20, name="Galaxy Guardian", min_xp=20000),
    RankTier(level=25, name="Stellar Master", min_xp=25000),
    RankTier(level=30, name="Cosmic Commander", min_xp=30000),
    RankTier(level=40, name="Galaxy Master", min_xp=40000),
    RankTier(level=50, name="Universal Legend", min_xp=50000),
)


def validate_rank_table(tiers: tuple[RankTier, ...]) -> tuple[RankTier, ...]:
    """Check the table is total (starts at 0 XP) and strictly increasing."""
    if not tiers:
        raise ValueError("Rank table must not be empty")
    if tiers[0].min_xp != 0:
        raise ValueError("First rank tier must start at 0 XP")
    for prev, cur in zip(tiers, tiers[1:]):
        if cur.min_xp <= prev.min_xp or cur.level <= prev.level:
            raise ValueError(
                f"Rank tiers must strictly increase: {prev.name!r} -> {cur.name!r}"
            )
    return tiers


def load_rank_table(path: str | None = None) -> tuple[RankTier, ...]:
    """Load tiers from a JSON list of ``{level, name, min_xp}`` objects, or the defaults."""
    if not path:
        return validate_rank_table(DEFAULT_RANKS)
    raw = json.loads(Path(path).read_text())
    tiers = tuple(
        RankTier(level=int(t["level"]), name=str(t["name"]), min_xp=int(t["min_xp"]))
        for t in sorted(raw, key=lambda t: int(t["min_xp"]))
    )
    return validate_rank_table(tiers)


@lru_cache
def get_rank_table() -> tuple[RankTier, ...]:
    """Process-wide rank table (init-only)."""
    return load_rank_table(get_settings().rank_table_path)


def compute_level(xp: int, xp_per_level: int | None = None, max_level: int | None = None) -> int:
    """level = min(MAX_LEVEL, xp // XP_PER_LEVEL + 1)."""
    settings = get_settings()
    per_level = xp_per_level or settings.xp_per_level
    cap = max_level or settings.max_level
    return min(cap, xp // per_level + 1)


def rank_for(xp: int, tiers: tuple[RankTier, ...] | None = None) -> RankTier:
    """Highest tier whose min_xp <= xp."""
    table = tiers or get_rank_table()
    thresholds = [t.min_xp for t in table]
    idx = bisect.bisect_right(thresholds, xp) - 1
    return table[max(idx, 0)]


def resolve(xp: int, tiers: tuple[RankTier, ...] | None = None) -> dict:
    """Resolve cumulative XP to level, rank and progress towards the next level.

    Pure and deterministic; recomputed on every read.
    """
    if xp < 0:
        raise InvalidArgumentError("XP must be non-negative")

    settings = get_settings()
    table = tiers or get_rank_table()
    level = compute_level(xp)
    tier = rank_for(xp, table)

    next_tier = next((t for t in table if t.min_xp > xp), None)

    if level >= settings.max_level:
        xp_into_level = xp - (settings.max_level - 1) * settings.xp_per_level
        xp_for_next_level = 0
        progress = 100.0
    else:
        level_floor = (level - 1) * settings.xp_per_level
        xp_into_level = xp - level_floor
        xp_for_next_level = level_floor + settings.xp_per_level - xp
        progress = round(xp_into_level / settings.xp_per_level * 100, 2)

    return {
        "level": level,
        "rank_name": tier.name,
        "xp_into_level": xp_into_level,
        "xp_for_next_level": xp_for_next_level,
        "level_progress": progress,
        "next_rank_name": next_tier.name if next_tier else None,
        "next_rank_min_xp": next_tier.min_xp if next_tier else None,
    }
