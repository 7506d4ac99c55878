"""Client waitlist endpoints: registration and priority-link actions."""

from datetime import date, datetime, time

from fastapi import APIRouter, status
from pydantic import BaseModel, EmailStr, Field

from gobering.api.deps import Waitlist
from gobering.api.v1.appointments import BookedAppointmentResponse
from gobering.models.waitlist import WaitlistStatus

router = APIRouter()


class WaitlistEntryResponse(BaseModel):
    """Waitlist entry as seen by the client or professional."""

    id: str
    professional_id: str
    professional_service_id: str | None
    first_name: str
    last_name: str
    email: str | None
    phone: str
    preferred_date: date
    preferred_time_start: time | None
    preferred_time_end: time | None
    status: WaitlistStatus
    notified_at: datetime | None
    expires_at: datetime | None
    available_date: date | None
    available_start_time: time | None
    available_end_time: time | None
    available_service_id: str | None
    appointment_id: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class WaitlistRegistrationResponse(WaitlistEntryResponse):
    """Registration confirmation carrying the entry's link token."""

    token: str


class CreateWaitlistEntryRequest(BaseModel):
    """Request to join a professional's waitlist."""

    preferred_date: date
    preferred_time_start: time | None = None
    preferred_time_end: time | None = None
    professional_service_id: str | None = None
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., min_length=1, max_length=30)
    email: EmailStr | None = None
    notes: str | None = Field(None, max_length=2000)


@router.post(
    "/professionals/{professional_id}/waitlist",
    response_model=WaitlistRegistrationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def join_waitlist(
    professional_id: str,
    request: CreateWaitlistEntryRequest,
    service: Waitlist,
) -> WaitlistRegistrationResponse:
    """Join a professional's waitlist for a full time range."""
    entry = await service.create_entry(
        professional_id,
        first_name=request.first_name,
        last_name=request.last_name,
        phone=request.phone,
        preferred_date=request.preferred_date,
        email=request.email,
        preferred_time_start=request.preferred_time_start,
        preferred_time_end=request.preferred_time_end,
        professional_service_id=request.professional_service_id,
        notes=request.notes,
    )
    return WaitlistRegistrationResponse.model_validate(entry)


@router.get(
    "/waitlist/{token}",
    response_model=WaitlistEntryResponse,
)
async def get_waitlist_entry(token: str, service: Waitlist) -> WaitlistEntryResponse:
    """Read an entry through its link; a lapsed window shows as expired."""
    entry = await service.get_entry_by_token(token)
    return WaitlistEntryResponse.model_validate(entry)


@router.post(
    "/waitlist/{token}/claim",
    response_model=BookedAppointmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def claim_waitlist_slot(token: str, service: Waitlist) -> BookedAppointmentResponse:
    """Book the offered slot during the priority window.

    Returns 410 once the window has lapsed and 409 if the slot was taken.
    """
    appointment = await service.claim(token)
    return BookedAppointmentResponse.model_validate(appointment)


@router.post(
    "/waitlist/{token}/cancel",
    response_model=WaitlistEntryResponse,
)
async def cancel_waitlist_entry(token: str, service: Waitlist) -> WaitlistEntryResponse:
    """Leave the waitlist."""
    entry = await service.cancel_entry(token=token)
    return WaitlistEntryResponse.model_validate(entry)
