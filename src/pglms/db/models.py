"""ORM models for the gamification core.

Users are owned by the account subsystem; this service only reads them and
increments the gamification counters (xp, diamonds, streak fields).
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pglms.db.base import Base, BigIntPK

# Roles excluded from every leaderboard population.
NON_RANKED_ROLES = ("ADMIN", "SUPER_ADMIN", "TRAINER")
ADMIN_ROLES = ("ADMIN", "SUPER_ADMIN")


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Learner account plus the denormalized gamification counters."""

    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_branch", "branch"),
        Index("idx_users_area", "area"),
        Index("idx_users_region", "region"),
        Index("idx_users_xp", "xp"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    employee_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="STAFF", server_default="STAFF")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="APPROVED", server_default="APPROVED")

    # --- Organizational hierarchy (read-only here) ---
    branch: Mapped[str | None] = mapped_column(String(128), nullable=True)
    area: Mapped[str | None] = mapped_column(String(128), nullable=True)
    region: Mapped[str | None] = mapped_column(String(128), nullable=True)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # --- Gamification counters ---
    xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    diamonds: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    streak_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_active_day: Mapped[date | None] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    xp_events: Mapped[list[XPEvent]] = relationship("XPEvent", back_populates="user")


# ---------------------------------------------------------------------------
# XP Ledger
# ---------------------------------------------------------------------------


class XPEvent(Base):
    """Immutable XP ledger entry. UNIQUE(user_id, source, source_id) is the idempotency key."""

    __tablename__ = "xp_events"
    __table_args__ = (
        UniqueConstraint("user_id", "source", "source_id", name="uq_xp_events_idempotency"),
        Index("idx_xp_events_occurred_at", "occurred_at"),
        Index("idx_xp_events_user_occurred", "user_id", "occurred_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    user: Mapped[User] = relationship("User", back_populates="xp_events")
