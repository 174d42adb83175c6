"""Leaderboard API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pglms.auth.dependencies import get_current_user, require_admin
from pglms.config import get_settings
from pglms.database import get_session
from pglms.db.models import User
from pglms.dependencies import get_cache_redis
from pglms.leaderboard.schemas import InvalidateResponse, LeaderboardResponse
from pglms.leaderboard.service import get_leaderboard, invalidate_leaderboards

router = APIRouter(prefix="/api/v1/leaderboard", tags=["Leaderboard"])


@router.get("", response_model=LeaderboardResponse)
async def leaderboard(
    scope: str = Query("INDIVIDUAL"),
    period: str = Query("DAILY"),
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1),
    search: str | None = Query(None, max_length=128),
    unit: str | None = Query(None, max_length=128),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_cache_redis),
):
    """Scoped, period-windowed standings with the caller's own rank."""
    settings = get_settings()
    size = min(page_size or settings.leaderboard_default_page_size, settings.leaderboard_max_page_size)
    return await get_leaderboard(
        db, redis, user,
        scope=scope,
        period=period,
        page=page,
        page_size=size,
        search=search,
        unit=unit,
    )


@router.post("/invalidate", response_model=InvalidateResponse)
async def invalidate(
    _admin: User = Depends(require_admin),
    redis: object = Depends(get_cache_redis),
):
    """Drop every cached snapshot so the next read recomputes."""
    return InvalidateResponse(deleted=await invalidate_leaderboards(redis))
