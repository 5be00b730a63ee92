"""SQLAlchemy models for streak tracking."""

from datetime import UTC, datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from core.database import Base

OVERALL_SUBJECT = "overall"


def utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def streak_key(user_id: str, subject: str) -> str:
    """Composite primary key for a streak row."""
    return f"{user_id.lower()}-{subject}"


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow)

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class ActivityType(str, PyEnum):
    """Qualifying activity that advances a streak."""

    QUIZ_SUBMIT = "quiz_submit"
    LOGIN = "login"


class UserStreak(TimestampMixin, Base):
    """One streak per user and subject.

    Calendar dates are stored as canonical ``YYYY-MM-DD`` strings resolved in
    the user's timezone, not as DATE columns, so the stored value is exactly
    what the decision engine compared.
    """

    __tablename__ = "user_streaks"
    __table_args__ = (
        Index("ix_user_streaks_user", "user_id"),
        CheckConstraint("current_streak >= 0", name="ck_user_streaks_current"),
        CheckConstraint(
            "longest_streak >= current_streak", name="ck_user_streaks_longest"
        ),
        CheckConstraint("freeze_days >= 0", name="ck_user_streaks_freeze_days"),
        CheckConstraint(
            "freeze_days_used >= 0", name="ck_user_streaks_freeze_days_used"
        ),
    )

    id: Mapped[str] = mapped_column(String(320), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str] = mapped_column(String(64), nullable=False)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_activity_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    freeze_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    freeze_days_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False)
    streak_start_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    last_freeze_earned_at: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    last_freeze_used_date: Mapped[str | None] = mapped_column(
        String(10), nullable=True
    )


class StreakActivity(Base):
    """Append-only audit log of qualifying activities.

    Note: Only has created_at since activities are immutable event logs.
    """

    __tablename__ = "streak_activities"
    __table_args__ = (
        Index("ix_streak_activities_user_date", "user_id", "activity_date"),
        Index("ix_streak_activities_created", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str] = mapped_column(String(64), nullable=False)
    activity_date: Mapped[str] = mapped_column(String(10), nullable=False)
    activity_type: Mapped[ActivityType] = mapped_column(
        Enum(
            ActivityType,
            name="streak_activity_type",
            native_enum=False,
            length=32,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )
