"""Scoring adapter: turns completion events into XP ledger awards.

Quiz XP scales with the score (``xp_reward * score / 100``); training XP is
the training's total scaled by the quiz score when passed, half of it
otherwise. Content completions (lesson/module/course) use the fixed amounts
from settings unless the content carries its own reward.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from pglms.config import get_settings
from pglms.exceptions import InvalidArgumentError
from pglms.gamification.xp_service import grant_xp, round_half_up

FAILED_TRAINING_RATIO = 0.5


def default_xp_for(source: str) -> int:
    """Fixed XP per content type."""
    settings = get_settings()
    amounts = {
        "task": settings.xp_per_task,
        "lesson": settings.xp_per_lesson,
        "module": settings.xp_per_module,
        "course": settings.xp_per_course,
        "daily-login": settings.xp_per_daily_login,
    }
    try:
        return amounts[source]
    except KeyError:
        raise InvalidArgumentError(f"Unknown XP source: {source}") from None


def quiz_xp(xp_reward: int | None, score: float) -> int:
    """XP for a quiz attempt: reward scaled by the percentage score."""
    if not 0 <= score <= 100:
        raise InvalidArgumentError("Quiz score must be between 0 and 100")
    base = xp_reward or default_xp_for("task")
    return round_half_up(base * score / 100)


def training_xp(total_xp: int, score: float | None, passed: bool) -> int:
    """XP for finishing a training: score-scaled if passed, half otherwise."""
    if score is not None and not 0 <= score <= 100:
        raise InvalidArgumentError("Quiz score must be between 0 and 100")
    ratio = score / 100 if passed and score is not None else FAILED_TRAINING_RATIO
    return round_half_up(max(total_xp, 0) * ratio)


def _not_credited(reason: str) -> dict:
    return {"accepted": False, "amount_credited": 0, "reason": reason}


async def record_quiz_completion(
    db: AsyncSession,
    redis: object,
    user_id: int,
    task_id: str,
    score: float,
    completed_at: datetime | None = None,
    xp_reward: int | None = None,
) -> dict:
    """Credit a completed quiz task. A retake of the same task is not credited again."""
    amount = quiz_xp(xp_reward, score)
    if amount <= 0:
        return _not_credited("zero_score")
    return await grant_xp(
        db, redis, user_id, "task", task_id, amount,
        occurred_at=completed_at,
        description=f"Quiz {task_id} scored {score:g}%",
    )


async def record_training_completion(
    db: AsyncSession,
    redis: object,
    user_id: int,
    training_id: str,
    total_xp: int,
    score: float | None,
    passed: bool,
    completed_at: datetime | None = None,
) -> dict:
    """Credit a finished training (ledgered as a module completion)."""
    amount = training_xp(total_xp, score, passed)
    if amount <= 0:
        return _not_credited("no_xp")
    return await grant_xp(
        db, redis, user_id, "module", training_id, amount,
        occurred_at=completed_at,
        description=f"Training {training_id} {'passed' if passed else 'completed'}",
    )


async def record_content_completion(
    db: AsyncSession,
    redis: object,
    user_id: int,
    source: str,
    content_id: str,
    completed_at: datetime | None = None,
    xp_reward: int | None = None,
) -> dict:
    """Credit a lesson, module or course completion."""
    if source not in ("lesson", "module", "course"):
        raise InvalidArgumentError(f"Not a content source: {source}")
    amount = xp_reward if xp_reward is not None else default_xp_for(source)
    if amount <= 0:
        return _not_credited("no_xp")
    return await grant_xp(
        db, redis, user_id, source, content_id, amount,
        occurred_at=completed_at,
        description=f"Completed {source} {content_id}",
    )


async def record_daily_login(
    db: AsyncSession,
    redis: object,
    user_id: int,
    logged_in_at: datetime | None = None,
) -> dict:
    """Credit the daily login bonus; keyed by the user's local date."""
    return await grant_xp(
        db, redis, user_id, "daily-login", None, default_xp_for("daily-login"),
        occurred_at=logged_in_at,
        description="Daily login",
    )
