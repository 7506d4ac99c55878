"""API v1 router aggregating all endpoints."""

from fastapi import APIRouter

from gobering.api.v1 import (
    appointments,
    availability,
    health,
    professional,
    waitlist,
)

api_router = APIRouter()

# Health check
api_router.include_router(
    health.router,
    prefix="/health",
    tags=["health"],
)

# Public slot queries
api_router.include_router(
    availability.router,
    tags=["availability"],
)

# Client booking and appointment links
api_router.include_router(
    appointments.router,
    tags=["appointments"],
)

# Waitlist registration and priority links
api_router.include_router(
    waitlist.router,
    tags=["waitlist"],
)

# Professional calendar management
api_router.include_router(
    professional.router,
    prefix="/me",
    tags=["professional"],
)
