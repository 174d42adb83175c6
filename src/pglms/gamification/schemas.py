"""Pydantic request and response models for gamification endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field


# --- Awards ---


class AwardXPRequest(BaseModel):
    user_id: int
    source: str = Field(..., description="task, lesson, module, course or daily-login")
    source_id: str | None = Field(None, max_length=128)
    amount: int | None = Field(None, description="Base XP before the streak bonus; defaults per source")
    occurred_at: datetime | None = None
    description: str | None = Field(None, max_length=255)


class QuizCompletionRequest(BaseModel):
    user_id: int
    task_id: str = Field(..., max_length=128)
    score: float = Field(..., ge=0, le=100)
    xp_reward: int | None = Field(None, ge=0)
    completed_at: datetime | None = None


class TrainingCompletionRequest(BaseModel):
    user_id: int
    training_id: str = Field(..., max_length=128)
    total_xp: int = Field(..., ge=0)
    score: float | None = Field(None, ge=0, le=100)
    passed: bool
    completed_at: datetime | None = None


class AwardResponse(BaseModel):
    accepted: bool
    amount_credited: int
    total_xp: int | None = None
    level: int | None = None
    rank_name: str | None = None
    leveled_up: bool = False
    streak_days: int | None = None
    reason: str | None = None


# --- Level & rank ---


class RankLevelResponse(BaseModel):
    user_id: int
    xp: int
    level: int
    rank_name: str
    xp_into_level: int
    xp_for_next_level: int
    level_progress: float
    next_rank_name: str | None = None
    next_rank_min_xp: int | None = None


class GamificationSummaryResponse(RankLevelResponse):
    diamonds: int
    streak_days: int
    effective_streak: int
    longest_streak: int
    last_active_day: date | None = None


class RankTierResponse(BaseModel):
    level: int
    name: str
    min_xp: int


class RankTableResponse(BaseModel):
    ranks: list[RankTierResponse]
    xp_per_level: int
    max_level: int


# --- XP history ---


class XPHistoryEntry(BaseModel):
    amount: int
    source: str
    source_id: str | None = None
    description: str | None = None
    occurred_at: datetime | None = None


class XPHistoryResponse(BaseModel):
    entries: list[XPHistoryEntry]
    total: int
    page: int
    per_page: int


# --- Analytics ---


class LevelCount(BaseModel):
    level: int
    count: int


class TopPerformer(BaseModel):
    user_id: int
    name: str
    email: str
    branch: str | None = None
    xp: int
    level: int
    rank_name: str
    streak: int
    diamonds: int


class XPTrendPoint(BaseModel):
    date: str  # ISO day
    xp: int


class DateRange(BaseModel):
    days: int
    start_date: date
    end_date: date


class GamificationAnalyticsResponse(BaseModel):
    total_users: int
    total_xp: int
    average_xp: int
    level_distribution: list[LevelCount]
    top_performers: list[TopPerformer]
    active_streaks: int
    average_streak: int
    total_diamonds: int
    xp_earned_trend: list[XPTrendPoint]
    date_range: DateRange
