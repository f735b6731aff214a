"""
FastAPI application factory.

* Registers routes for rides, matches and admin.
* Starts / stops the background expiration worker via lifespan events.
* Maps domain errors to HTTP status codes.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from rideshare.api.middleware import limiter
from rideshare.api.routes import admin, matches, rides
from rideshare.config import settings
from rideshare.domain.exceptions import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
)
from rideshare.infrastructure.redis_client import close_redis
from rideshare.workers import expiration as _expiration

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the expiration worker on startup; stop on shutdown."""
    if settings.run_expiration_worker:
        await _expiration.start_expiration_loop()
    yield
    if settings.run_expiration_worker:
        await _expiration.stop_expiration_loop()
    await close_redis()


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handler


def create_app() -> FastAPI:
    app = FastAPI(
        title="Campus Ride-Share Matching API",
        description=(
            "Pairs one-way ride offers to the same airport or station so "
            "riders can share a car.  Supports instant joins, match "
            "requests, cancellation and automatic expiry of stale offers."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Domain errors
    app.add_exception_handler(NotFoundError, _error_handler(404))
    app.add_exception_handler(PermissionDeniedError, _error_handler(403))
    app.add_exception_handler(InvalidStateError, _error_handler(409))

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(matches.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
