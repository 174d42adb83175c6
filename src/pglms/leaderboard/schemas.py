"""Pydantic response models for leaderboard endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class LeaderboardEntryResponse(BaseModel):
    user_id: int
    name: str
    avatar: str | None = None
    employee_number: str | None = None
    rank: int
    xp: int
    xp_earned: int
    level: int
    rank_name: str
    streak: int
    diamonds: int


class PaginationResponse(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class PeriodWindowResponse(BaseModel):
    key: str
    start: datetime
    end: datetime


class CacheInfoResponse(BaseModel):
    computed_at: datetime
    age_seconds: float
    stale: bool


class LeaderboardResponse(BaseModel):
    top_users: list[LeaderboardEntryResponse]
    current_user_rank: int
    current_user_entry: LeaderboardEntryResponse | None = None
    pagination: PaginationResponse
    total_users: int
    scope: str
    unit: str | None = None
    period: str
    window: PeriodWindowResponse
    cache: CacheInfoResponse


class InvalidateResponse(BaseModel):
    deleted: int
