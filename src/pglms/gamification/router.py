"""Gamification API endpoints: XP awards, level/rank, history and admin analytics."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pglms.auth.dependencies import get_current_user, require_admin, require_service_key
from pglms.config import get_settings
from pglms.database import get_session
from pglms.db.models import User
from pglms.dependencies import get_cache_redis
from pglms.gamification.analytics import gamification_overview
from pglms.gamification.ranks import get_rank_table
from pglms.gamification.schemas import (
    AwardResponse,
    AwardXPRequest,
    GamificationAnalyticsResponse,
    GamificationSummaryResponse,
    QuizCompletionRequest,
    RankLevelResponse,
    RankTableResponse,
    RankTierResponse,
    TrainingCompletionRequest,
    XPHistoryResponse,
)
from pglms.gamification.scoring import (
    default_xp_for,
    record_daily_login,
    record_quiz_completion,
    record_training_completion,
)
from pglms.gamification.xp_service import get_user_progress, get_xp_history, grant_xp

router = APIRouter(prefix="/api/v1", tags=["Gamification"])


# ── Service endpoints (content and quiz services) ──


@router.post(
    "/xp/award",
    response_model=AwardResponse,
    dependencies=[Depends(require_service_key)],
)
async def award_xp(
    body: AwardXPRequest,
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_cache_redis),
):
    """Append an award to the XP ledger. Replays of the same source id are not credited."""
    amount = body.amount if body.amount is not None else default_xp_for(body.source)
    return await grant_xp(
        db, redis, body.user_id, body.source, body.source_id, amount,
        occurred_at=body.occurred_at,
        description=body.description,
    )


@router.post(
    "/xp/quiz-completions",
    response_model=AwardResponse,
    dependencies=[Depends(require_service_key)],
)
async def quiz_completion(
    body: QuizCompletionRequest,
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_cache_redis),
):
    """Score-scaled XP for a completed quiz task."""
    return await record_quiz_completion(
        db, redis, body.user_id, body.task_id, body.score,
        completed_at=body.completed_at,
        xp_reward=body.xp_reward,
    )


@router.post(
    "/xp/training-completions",
    response_model=AwardResponse,
    dependencies=[Depends(require_service_key)],
)
async def training_completion(
    body: TrainingCompletionRequest,
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_cache_redis),
):
    return await record_training_completion(
        db, redis, body.user_id, body.training_id, body.total_xp, body.score, body.passed,
        completed_at=body.completed_at,
    )


# ── Public endpoints ──


@router.get("/ranks", response_model=RankTableResponse)
async def list_ranks():
    """Rank tiers and level parameters."""
    settings = get_settings()
    return RankTableResponse(
        ranks=[RankTierResponse(level=t.level, name=t.name, min_xp=t.min_xp) for t in get_rank_table()],
        xp_per_level=settings.xp_per_level,
        max_level=settings.max_level,
    )


# ── Authenticated endpoints ──


@router.post("/users/me/daily-login", response_model=AwardResponse)
async def daily_login(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_cache_redis),
):
    """Claim today's login bonus. A second claim on the same local day is not credited."""
    return await record_daily_login(db, redis, user.id)


@router.get("/users/me/gamification", response_model=GamificationSummaryResponse)
async def my_gamification(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return await get_user_progress(db, user.id)


@router.get("/users/me/xp/history", response_model=XPHistoryResponse)
async def my_xp_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Paginated XP ledger entries, newest first."""
    return await get_xp_history(db, user.id, page=page, per_page=per_page)


@router.get("/users/{user_id}/rank-level", response_model=RankLevelResponse)
async def rank_level(
    user_id: int,
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Resolved level and rank for any user."""
    return await get_user_progress(db, user_id)


# ── Admin endpoints ──


@router.get("/admin/analytics/gamification", response_model=GamificationAnalyticsResponse)
async def gamification_analytics(
    days: int = Query(30, ge=1, le=365),
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    return await gamification_overview(db, days=days)
