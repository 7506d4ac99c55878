"""FastAPI dependency injection utilities."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from gobering.core.cache import SlotCache
from gobering.core.security import PROFESSIONAL_ACTOR, decode_access_token
from gobering.db.session import get_db
from gobering.models.professional import Professional
from gobering.services.appointments import AppointmentService
from gobering.services.availability import AvailabilityService
from gobering.services.notifications import WaitlistNotifier
from gobering.services.waitlist import WaitlistService

# Security scheme
security = HTTPBearer(auto_error=False)


async def get_current_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> dict | None:
    """Extract and decode the current JWT token.

    Args:
        credentials: Bearer token credentials

    Returns:
        Decoded token payload or None
    """
    if not credentials:
        return None

    return decode_access_token(credentials.credentials)


async def _load_professional(session: AsyncSession, professional_id: str) -> Professional | None:
    return await AvailabilityService(session).get_professional(professional_id)


async def get_current_professional(
    token: Annotated[dict | None, Depends(get_current_token)],
    session: Annotated[AsyncSession, Depends(get_db)],
) -> Professional:
    """Get the current authenticated professional.

    Raises:
        HTTPException: If not authenticated or not a professional
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if token.get("actor_type") != PROFESSIONAL_ACTOR:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Professional authentication required",
        )

    professional = await _load_professional(session, token["sub"])
    if not professional:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Professional not found",
        )

    return professional


async def get_optional_professional(
    token: Annotated[dict | None, Depends(get_current_token)],
    session: Annotated[AsyncSession, Depends(get_db)],
) -> Professional | None:
    """Get current professional if authenticated, otherwise None."""
    if not token or token.get("actor_type") != PROFESSIONAL_ACTOR:
        return None

    return await _load_professional(session, token["sub"])


def get_slot_cache(request: Request) -> SlotCache:
    """Slot cache held on the application state."""
    return request.app.state.slot_cache


def get_notifier(request: Request) -> WaitlistNotifier:
    """Waitlist notifier held on the application state."""
    return request.app.state.notifier


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentProfessional = Annotated[Professional, Depends(get_current_professional)]
OptionalProfessional = Annotated[Professional | None, Depends(get_optional_professional)]
Cache = Annotated[SlotCache, Depends(get_slot_cache)]
Notifier = Annotated[WaitlistNotifier, Depends(get_notifier)]


def get_availability_service(session: DbSession, cache: Cache) -> AvailabilityService:
    return AvailabilityService(session, cache)


def get_appointment_service(
    session: DbSession,
    cache: Cache,
    notifier: Notifier,
) -> AppointmentService:
    return AppointmentService(session, cache=cache, notifier=notifier)


def get_waitlist_service(
    session: DbSession,
    cache: Cache,
    notifier: Notifier,
) -> WaitlistService:
    return WaitlistService(session, cache=cache, notifier=notifier)


Availability = Annotated[AvailabilityService, Depends(get_availability_service)]
Appointments = Annotated[AppointmentService, Depends(get_appointment_service)]
Waitlist = Annotated[WaitlistService, Depends(get_waitlist_service)]
