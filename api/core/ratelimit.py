"""Rate limiting configuration using slowapi.

SCALABILITY NOTES:
- Multi-replica deployments MUST use Redis: RATELIMIT_STORAGE_URI="redis://host:port/db"
- memory:// storage keeps separate counters per worker/replica
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from core.config import get_settings
from core.logger import get_logger

logger = get_logger(__name__)

settings = get_settings()


def _get_request_identifier(request: Request) -> str:
    """Rate-limit key: the authenticated user when known, else the client IP."""
    if hasattr(request.state, "user_id") and request.state.user_id:
        return f"user:{request.state.user_id}"

    return get_remote_address(request)


# In-memory fallback only makes sense when the primary store is Redis
_using_redis = settings.ratelimit_storage_uri.startswith("redis://")

limiter = Limiter(
    key_func=_get_request_identifier,
    default_limits=["100/minute"],
    storage_uri=settings.ratelimit_storage_uri,
    in_memory_fallback_enabled=_using_redis,
    key_prefix="streaks:",
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Custom handler for rate limit exceeded errors."""
    logger.warning(
        "ratelimit.exceeded",
        key=_get_request_identifier(request),
        limit=exc.detail,
    )
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded. Please slow down.",
            "retry_after": exc.detail,
        },
        headers={"Retry-After": str(getattr(exc, "retry_after", 60))},
    )


STREAK_READ_LIMIT = "60/minute"

STREAK_WRITE_LIMIT = "20/minute"
