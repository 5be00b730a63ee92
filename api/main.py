"""FastAPI application for the streak engine API."""

import asyncio
import logging
from contextlib import asynccontextmanager

import fastapi
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from core.config import get_settings
from core.database import (
    create_engine,
    create_session_maker,
    dispose_engine,
    init_db,
)
from core.logger import configure_logging
from core.middleware import ForwardedUserMiddleware, SecurityHeadersMiddleware
from core.ratelimit import limiter, rate_limit_exceeded_handler
from core.telemetry import RequestTimingMiddleware
from routes import health_router, streak_router
from services.streak_errors import (
    StoreUnavailableError,
    StreakConflictError,
    StreakValidationError,
)
from services.streaks_service import StreakService

configure_logging()
logger = logging.getLogger(__name__)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler for unhandled exceptions."""
    logger.exception(
        "unhandled.exception",
        extra={
            "exc_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred. Please try again."},
    )


async def validation_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Handler for request validation errors."""
    if not isinstance(exc, RequestValidationError):
        return JSONResponse(status_code=500, content={"detail": "Unexpected error"})

    logger.warning(
        "request.validation_error",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_count": len(exc.errors()),
        },
    )
    return JSONResponse(
        status_code=422,
        content={"detail": exc.errors()},
    )


async def streak_validation_handler(request: Request, exc: Exception) -> JSONResponse:
    """Rejected streak input (user id, subject, activity type, timezone)."""
    field = getattr(exc, "field", None)
    logger.info(
        "streak.validation_error",
        extra={"path": request.url.path, "field": field},
    )
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "field": field},
    )


async def streak_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    """Conflicts that outlived the retry budget, or an unreachable store."""
    if isinstance(exc, StreakConflictError):
        detail = "Streak is busy. Please try again."
    else:
        detail = "Streak store unavailable. Please try again later."
    logger.warning(
        "streak.unavailable",
        extra={"path": request.url.path, "exc_type": type(exc).__name__},
    )
    return JSONResponse(
        status_code=503,
        content={"detail": detail},
        headers={"Retry-After": "1"},
    )


@asynccontextmanager
async def lifespan(app: fastapi.FastAPI):
    """Create DB engine and the streak service at startup, dispose on shutdown."""
    app.state.engine = create_engine()
    app.state.session_maker = create_session_maker(app.state.engine)
    app.state.streak_service = StreakService(app.state.session_maker)
    app.state.init_done = False

    try:
        async with asyncio.timeout(60):
            await init_db(app.state.engine)
        app.state.init_done = True
        logger.info("init.complete")
    except TimeoutError:
        logger.error("init.timeout", extra={"hint": "Check DB connectivity"})
        await dispose_engine(app.state.engine)
        raise RuntimeError("Application startup timed out")
    except Exception as e:
        logger.error("init.failed", extra={"error": str(e)}, exc_info=True)
        await dispose_engine(app.state.engine)
        raise

    try:
        yield
    finally:
        await dispose_engine(app.state.engine)


_settings = get_settings()

app = fastapi.FastAPI(
    title="Streak Engine API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if _settings.enable_docs or _settings.debug else None,
    redoc_url="/redoc" if _settings.enable_docs or _settings.debug else None,
    openapi_url=("/openapi.json" if _settings.enable_docs or _settings.debug else None),
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StreakValidationError, streak_validation_handler)
app.add_exception_handler(StreakConflictError, streak_unavailable_handler)
app.add_exception_handler(StoreUnavailableError, streak_unavailable_handler)
app.add_exception_handler(Exception, global_exception_handler)

# Last added runs first: timing wraps everything, then identity, then headers
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    ForwardedUserMiddleware, header_name=_settings.trusted_user_header
)
app.add_middleware(RequestTimingMiddleware)

app.include_router(health_router)
app.include_router(streak_router)
