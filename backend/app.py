"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from api.v1 import auth, health
from core import settings
from core.logging import configure_logging
from db.session import AsyncSessionMaker
from services import RateLimitMiddleware, get_rate_limiter
from services.auth import AuthError, TokenCleanupScheduler

logger = logging.getLogger(__name__)


async def _auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    logger.warning(
        "Auth request rejected",
        extra={
            "path": request.url.path,
            "error": type(exc).__name__,
            "reason": exc.reason,
        },
    )
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error",
        extra={"path": request.url.path},
        exc_info=exc,
    )
    return JSONResponse(
        {"detail": "Internal server error"},
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    scheduler: TokenCleanupScheduler | None = app.state.token_cleanup
    if scheduler is not None:
        scheduler.start()
    try:
        yield
    finally:
        if scheduler is not None:
            await scheduler.stop()


def create_app() -> FastAPI:
    configure_logging(settings.log_level)

    app = FastAPI(title="LANMIC Auth", lifespan=lifespan)
    app.state.token_cleanup = (
        TokenCleanupScheduler(AsyncSessionMaker, settings.token_cleanup_interval_seconds)
        if settings.token_cleanup_enabled
        else None
    )

    app.add_middleware(
        RateLimitMiddleware,
        limiter_factory=get_rate_limiter,
        # Logout must always clear cookies, even when Redis is down.
        exempt_paths={"/auth/logout"},
    )
    app.add_exception_handler(AuthError, _auth_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.include_router(health.router)
    app.include_router(auth.router)
    return app
