"""Streak decision engine.

Pure functions: given the stored streak (or none) and today's canonical date,
compute the next streak state. No I/O, no clock access, no shared state.

Rules:
- At most one increment per calendar day; repeat activity is a no-op
- Activity on the day after the last one continues the streak
- The "overall" streak can bridge exactly one missed day with a freeze
- Any other gap resets the streak to 1 and forfeits unused freezes
- The "overall" streak earns one freeze every FREEZE_EARN_INTERVAL days,
  holding at most MAX_FREEZES; subject streaks never hold freezes
- A call that consumed a freeze never also earns one; the pending milestone
  is granted on the next qualifying day instead
"""

from typing import Any

from core.clock import days_between
from models import OVERALL_SUBJECT
from schemas import StreakDecision, StreakRecord, StreakStatus

MAX_FREEZES = 2
FREEZE_EARN_INTERVAL = 5
BRIDGEABLE_GAP = 2  # today - last_activity_date when exactly one day was missed


def is_overall(subject: str) -> bool:
    return subject == OVERALL_SUBJECT


def new_streak(user_id: str, subject: str, today: str, timezone: str) -> StreakRecord:
    """First-ever activity for a user × subject."""
    return StreakRecord(
        user_id=user_id,
        subject=subject,
        current_streak=1,
        longest_streak=1,
        last_activity_date=today,
        streak_start_date=today,
        freeze_days=0,
        freeze_days_used=0,
        last_freeze_earned_at=0,
        timezone=timezone,
    )


def _should_earn_freeze(record: StreakRecord) -> bool:
    return (
        record.current_streak - record.last_freeze_earned_at >= FREEZE_EARN_INTERVAL
        and record.freeze_days < MAX_FREEZES
    )


def decide(
    previous: StreakRecord | None,
    today: str,
    subject: str,
    timezone: str,
    user_id: str,
) -> StreakDecision:
    """Compute the streak state after an activity on ``today``.

    Args:
        previous: Stored streak, or None if the user has no row yet
        today: Canonical date of the activity in ``timezone``
        subject: Streak subject ("overall" or a subject slug)
        timezone: IANA zone the day was resolved in; written to the result
        user_id: Owner of the streak, used when ``previous`` is None

    Returns:
        StreakDecision with the next record and freeze flags. ``changed`` is
        False when the activity did not advance the day; ``reset`` is True when
        an existing streak restarted at 1.
    """
    if previous is None or previous.last_activity_date is None:
        owner = previous.user_id if previous is not None else user_id
        record = new_streak(owner, subject, today, timezone)
        if previous is not None:
            # Placeholder row: keep historical counters
            record = record.model_copy(
                update={
                    "longest_streak": max(1, previous.longest_streak),
                    "freeze_days_used": previous.freeze_days_used,
                }
            )
        return StreakDecision(next=record)

    gap = days_between(today, previous.last_activity_date)

    # Same day, or a day that is already behind us after a westward zone change
    if gap <= 0:
        return StreakDecision(next=previous, changed=False)

    overall = is_overall(subject)
    freeze_consumed = False
    reset = False
    update: dict[str, Any]

    if gap == 1:
        update = {
            "current_streak": previous.current_streak + 1,
            "last_activity_date": today,
        }
    elif overall and previous.freeze_days > 0 and gap == BRIDGEABLE_GAP:
        freeze_consumed = True
        update = {
            "current_streak": previous.current_streak + 1,
            "last_activity_date": today,
            "freeze_days": previous.freeze_days - 1,
            "freeze_days_used": previous.freeze_days_used + 1,
            "last_freeze_used_date": today,
        }
    else:
        reset = True
        update = {
            "current_streak": 1,
            "last_activity_date": today,
            "streak_start_date": today,
            "freeze_days": 0,
            "last_freeze_earned_at": 0,
        }

    update["longest_streak"] = max(previous.longest_streak, update["current_streak"])
    update["timezone"] = timezone
    if not overall:
        update["freeze_days"] = 0
        update["last_freeze_earned_at"] = 0

    record = previous.model_copy(update=update)

    freeze_earned = False
    if overall and not freeze_consumed and _should_earn_freeze(record):
        record = record.model_copy(
            update={
                "freeze_days": record.freeze_days + 1,
                "last_freeze_earned_at": record.current_streak,
            }
        )
        freeze_earned = True

    return StreakDecision(
        next=record,
        freeze_earned=freeze_earned,
        freeze_consumed=freeze_consumed,
        reset=reset,
    )


def is_streak_lost(record: StreakRecord, today: str) -> bool:
    """Whether the next activity on ``today`` would reset the streak."""
    if record.last_activity_date is None:
        return True
    gap = days_between(today, record.last_activity_date)
    if gap <= 1:
        return False
    return not (
        is_overall(record.subject)
        and record.freeze_days > 0
        and gap == BRIDGEABLE_GAP
    )


def project_status(record: StreakRecord | None, today: str) -> StreakStatus:
    """Read-only view of a streak as of ``today``.

    A streak that the next activity would reset is reported with
    current_streak=0; the stored row is only corrected on the next write.
    """
    if record is None or record.last_activity_date is None:
        return StreakStatus(
            current_streak=0,
            longest_streak=record.longest_streak if record else 0,
            freeze_days=0,
            freeze_days_used=record.freeze_days_used if record else 0,
            max_freezes=MAX_FREEZES,
            streak_active=False,
            last_activity_date=None,
            days_until_streak_loss=0,
            froze_today=False,
        )

    active = not is_streak_lost(record, today)
    secured_today = days_between(today, record.last_activity_date) <= 0

    return StreakStatus(
        current_streak=record.current_streak if active else 0,
        longest_streak=record.longest_streak,
        freeze_days=record.freeze_days if is_overall(record.subject) else 0,
        freeze_days_used=record.freeze_days_used,
        max_freezes=MAX_FREEZES,
        streak_active=active,
        last_activity_date=record.last_activity_date,
        days_until_streak_loss=1 if secured_today else 0,
        froze_today=record.last_freeze_used_date == today,
    )
