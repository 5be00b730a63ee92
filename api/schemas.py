"""Pydantic schemas for the streak domain and API responses."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from models import ActivityType


class StreakRecord(BaseModel):
    """Typed snapshot of one user × subject streak.

    This is the value the decision engine consumes and produces. Conversion
    from/to the ORM row happens in StreakRepository only.
    """

    model_config = ConfigDict(from_attributes=True, frozen=True, extra="forbid")

    user_id: str
    subject: str
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_activity_date: str | None = None
    freeze_days: int = Field(default=0, ge=0)
    freeze_days_used: int = Field(default=0, ge=0)
    timezone: str
    streak_start_date: str | None = None
    last_freeze_earned_at: int = Field(default=0, ge=0)
    last_freeze_used_date: str | None = None
    updated_at: datetime | None = None


class StreakDecision(BaseModel):
    """Output of the decision engine for a single activity."""

    model_config = ConfigDict(frozen=True)

    next: StreakRecord
    freeze_earned: bool = False
    freeze_consumed: bool = False
    reset: bool = False
    changed: bool = True


class ActivityOutcome(BaseModel):
    """Result of recording an activity."""

    streak: StreakRecord
    freeze_earned: bool
    freeze_consumed: bool = False
    reset: bool = False
    is_new_day: bool


class QuizSubmissionOutcome(BaseModel):
    """Subject and aggregate results for one quiz submission."""

    subject: ActivityOutcome
    overall: ActivityOutcome


class StreakStatus(BaseModel):
    """Read-only projection of a streak for display."""

    current_streak: int
    longest_streak: int = 0
    freeze_days: int
    freeze_days_used: int = 0
    max_freezes: int
    streak_active: bool
    last_activity_date: str | None = None
    days_until_streak_loss: int = Field(
        description="0 = must act today to keep the streak, 1 = safe for today"
    )
    froze_today: bool


class AllStreaksStatus(BaseModel):
    """Overall streak plus one status per configured subject."""

    overall_streak: StreakStatus
    streaks: dict[str, StreakStatus]


class FreezeResult(BaseModel):
    """Outcome of a manual freeze request."""

    success: bool
    message: str
    streak: StreakRecord | None = None


class ActivityLogEntry(BaseModel):
    """An appended activity log row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    subject: str
    activity_date: str
    activity_type: ActivityType
    created_at: datetime


# =============================================================================
# HTTP request/response bodies
# =============================================================================


class StreakActionRequest(BaseModel):
    """Body for POST /api/streak."""

    action: Literal["use_freeze", "update_timezone"]
    subject: str | None = None
    timezone: str | None = None


class FreezeStreakSummary(BaseModel):
    current_streak: int
    freeze_days: int


class FreezeResponse(BaseModel):
    success: bool
    message: str
    streak: FreezeStreakSummary


class TimezoneUpdateResponse(BaseModel):
    success: bool
    status: StreakStatus


class HealthResponse(BaseModel):
    status: str
    service: str
