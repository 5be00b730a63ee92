"""Authentication dependency for streak routes.

Identity is established upstream; see core.middleware.ForwardedUserMiddleware.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from core.wide_event import set_wide_event_fields


def get_user_id_from_request(req: Request) -> str | None:
    """Get the authenticated user ID, or None."""
    user_id = getattr(req.state, "user_id", None)
    if isinstance(user_id, str) and user_id.strip():
        return user_id
    return None


def require_auth(request: Request) -> str:
    """Raises 401 if no authenticated user reached this request."""
    user_id = get_user_id_from_request(request)
    if not user_id:
        set_wide_event_fields(auth_error="missing_user")
        raise HTTPException(status_code=401, detail="Unauthorized")

    set_wide_event_fields(user_id=user_id)
    return user_id


UserId = Annotated[str, Depends(require_auth)]
