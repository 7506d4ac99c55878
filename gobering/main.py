"""FastAPI application entry point."""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gobering import __version__
from gobering.api.v1.router import api_router
from gobering.core.cache import SlotCache
from gobering.core.config import settings
from gobering.core.logging import request_id_var, setup_logging
from gobering.db.init_db import init_db
from gobering.db.session import AsyncSessionLocal
from gobering.middleware.rate_limit import RateLimitMiddleware
from gobering.services.exceptions import (
    BookingError,
    BookingValidationError,
    CancellationNoticeError,
    InvalidTransitionError,
    NotFoundError,
    SlotConflictError,
    TokenExpiredError,
    WaitlistDisabledError,
)
from gobering.services.notifications import WaitlistNotifier

setup_logging()
logger = logging.getLogger(__name__)

# HTTP status per domain error
BOOKING_ERROR_STATUS: dict[type[BookingError], int] = {
    BookingValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    SlotConflictError: status.HTTP_409_CONFLICT,
    CancellationNoticeError: status.HTTP_403_FORBIDDEN,
    WaitlistDisabledError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    TokenExpiredError: status.HTTP_410_GONE,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Seed the dev database on startup; drop cached slots on shutdown."""
    logger.info(f"Starting Gobering API (env={settings.env})")

    if settings.init_db_on_startup and settings.is_dev:
        logger.info("Seeding development database")
        async with AsyncSessionLocal() as session:
            await init_db(session)

    yield

    app.state.slot_cache.clear()
    logger.info("Shutting down Gobering API")


app = FastAPI(
    title="Gobering API",
    description="Appointment availability and waitlist service",
    version=__version__,
    docs_url="/docs" if settings.is_dev else None,
    redoc_url="/redoc" if settings.is_dev else None,
    openapi_url="/openapi.json" if settings.is_dev else None,
    lifespan=lifespan,
)

# Shared per-process collaborators
app.state.slot_cache = SlotCache(
    ttl_seconds=settings.slot_cache_ttl_seconds,
    max_entries=settings.slot_cache_max_entries,
)
app.state.notifier = WaitlistNotifier()


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Bind a request id to the log context and echo it back."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    token = request_id_var.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers["X-Request-ID"] = request_id
    return response


app.add_middleware(RateLimitMiddleware, enabled=settings.rate_limit_enabled)

# Local frontends only; production sits behind the web app origin
if settings.is_dev:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5000", "http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(BookingError)
async def booking_exception_handler(request: Request, exc: BookingError) -> JSONResponse:
    """Render domain errors as ``{"detail": {"reason", "message", ...}}``."""
    status_code = BOOKING_ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)

    if status_code >= status.HTTP_409_CONFLICT:
        logger.info(f"{exc.reason} on {request.method} {request.url.path}: {exc.message}")

    return JSONResponse(status_code=status_code, content={"detail": exc.to_dict()})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log anything unexpected and answer 500."""
    logger.exception(f"Unhandled exception: {exc}")

    detail = "Internal server error" if settings.is_prod else str(exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": detail}
    )


app.include_router(api_router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
async def root() -> dict:
    """Service name, version and where the docs are."""
    return {
        "service": "Gobering API",
        "version": __version__,
        "docs": "/docs" if settings.is_dev else "Disabled in production",
    }
