"""Streak endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from core.auth import UserId
from core.ratelimit import STREAK_READ_LIMIT, STREAK_WRITE_LIMIT, limiter
from models import OVERALL_SUBJECT, ActivityType
from schemas import (
    ActivityLogEntry,
    AllStreaksStatus,
    FreezeResponse,
    FreezeStreakSummary,
    StreakActionRequest,
    StreakStatus,
    TimezoneUpdateResponse,
)
from services.streaks_service import StreakService

router = APIRouter(prefix="/api/streak", tags=["streaks"])


def get_streak_service(request: Request) -> StreakService:
    """The process-wide StreakService built in main.lifespan."""
    return request.app.state.streak_service


StreakServiceDep = Annotated[StreakService, Depends(get_streak_service)]


@router.get(
    "",
    response_model=StreakStatus | AllStreaksStatus,
    responses={401: {"description": "Not authenticated"}},
)
@limiter.limit(STREAK_READ_LIMIT)
async def get_streak(
    request: Request,
    user_id: UserId,
    service: StreakServiceDep,
    timezone: str | None = None,
    subject: str | None = None,
) -> StreakStatus | AllStreaksStatus:
    """Get streak status.

    Without a subject, returns the overall streak and every subject streak.
    Opening a concrete subject counts as a login activity for that subject.
    """
    if subject is None:
        return await service.get_all_streak_statuses(user_id, timezone)

    if subject.strip().lower() != OVERALL_SUBJECT:
        await service.record_activity(user_id, subject, ActivityType.LOGIN, timezone)
    return await service.get_streak_status(user_id, timezone, subject)


@router.post(
    "",
    response_model=FreezeResponse | TimezoneUpdateResponse,
    responses={
        400: {"description": "Invalid action parameters"},
        401: {"description": "Not authenticated"},
    },
)
@limiter.limit(STREAK_WRITE_LIMIT)
async def post_streak_action(
    request: Request,
    user_id: UserId,
    service: StreakServiceDep,
    body: StreakActionRequest,
) -> FreezeResponse | TimezoneUpdateResponse:
    """Spend a freeze or change the timezone of the user's streaks."""
    if body.action == "use_freeze":
        subject = (body.subject or OVERALL_SUBJECT).strip().lower()
        if subject != OVERALL_SUBJECT:
            raise HTTPException(
                status_code=400,
                detail="Freezes can only be used on the overall streak",
            )
        result = await service.use_freeze(user_id, body.timezone)
        return FreezeResponse(
            success=result.success,
            message=result.message,
            streak=FreezeStreakSummary(
                current_streak=result.streak.current_streak if result.streak else 0,
                freeze_days=result.streak.freeze_days if result.streak else 0,
            ),
        )

    if not body.timezone:
        raise HTTPException(status_code=400, detail="Timezone is required")
    await service.update_timezone(user_id, body.timezone)
    status = await service.get_streak_status(user_id, body.timezone, OVERALL_SUBJECT)
    return TimezoneUpdateResponse(success=True, status=status)


@router.get(
    "/activity",
    response_model=list[ActivityLogEntry],
    responses={401: {"description": "Not authenticated"}},
)
@limiter.limit(STREAK_READ_LIMIT)
async def list_streak_activity(
    request: Request,
    user_id: UserId,
    service: StreakServiceDep,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    cursor: int | None = None,
) -> list[ActivityLogEntry]:
    """Activities that advanced the user's streaks, newest first.

    Pass the last entry's ``id`` as ``cursor`` to fetch the next page.
    """
    return await service.list_activity(user_id, limit=limit, cursor=cursor)
