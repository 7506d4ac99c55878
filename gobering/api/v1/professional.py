"""Professional (authenticated) endpoints for the ``/me`` calendar.

Covers weekly hours, breaks, appointment management, the waitlist queue
and slot materialization.
"""

from datetime import date, time

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, EmailStr, Field

from gobering.api.deps import (
    Appointments,
    Availability,
    CurrentProfessional,
    Waitlist,
)
from gobering.api.v1.appointments import AppointmentResponse, BookedAppointmentResponse
from gobering.api.v1.waitlist import WaitlistEntryResponse
from gobering.models.scheduling import AppointmentStatus, BreakType
from gobering.models.waitlist import WaitlistStatus

router = APIRouter()


# ============================================================================
# Request/Response Schemas
# ============================================================================


class ScheduleWindow(BaseModel):
    """One open window of the weekly schedule."""

    day_of_week: int = Field(ge=0, le=6, description="0=Sunday ... 6=Saturday")
    start_time: time
    end_time: time
    is_available: bool = True


class ScheduleResponse(ScheduleWindow):
    """Stored weekly schedule row."""

    id: str

    class Config:
        from_attributes = True


class ReplaceScheduleRequest(BaseModel):
    """Full replacement of the weekly schedule."""

    schedules: list[ScheduleWindow]


class BreakRequest(BaseModel):
    """Request to create a break or unavailability."""

    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    type: BreakType = BreakType.BREAK


class UpdateBreakRequest(BaseModel):
    """Request to update a break."""

    day_of_week: int | None = Field(None, ge=0, le=6)
    start_time: time | None = None
    end_time: time | None = None
    type: BreakType | None = None


class BreakResponse(BaseModel):
    """Stored break row."""

    id: str
    day_of_week: int
    start_time: time
    end_time: time
    type: BreakType

    class Config:
        from_attributes = True


class ProfessionalBookingRequest(BaseModel):
    """Appointment entered by the professional."""

    appointment_date: date
    start_time: time
    end_time: time | None = None
    professional_service_id: str | None = None
    patient_id: str | None = None
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=30)
    notes: str | None = Field(None, max_length=2000)
    status: AppointmentStatus = AppointmentStatus.CONFIRMED
    enforce_schedule: bool = False


class UpdateAppointmentStatusRequest(BaseModel):
    """Request to update appointment status."""

    status: AppointmentStatus


class MaterializeRequest(BaseModel):
    """Date range to rebuild in the time_slots table."""

    from_date: date
    to_date: date
    duration_minutes: int | None = Field(None, gt=0, le=24 * 60)
    professional_service_id: str | None = None


class MaterializeResponse(BaseModel):
    """Number of rows written."""

    slots_written: int


class ExpireResponse(BaseModel):
    """Entries expired by a sweep."""

    expired: int


# ============================================================================
# Weekly schedule
# ============================================================================


@router.get("/schedules", response_model=list[ScheduleResponse])
async def list_schedules(
    professional: CurrentProfessional,
    service: Availability,
) -> list[ScheduleResponse]:
    """List the weekly schedule."""
    schedules = await service.get_schedules(professional.id)
    return [ScheduleResponse.model_validate(s) for s in schedules]


@router.put("/schedules", response_model=list[ScheduleResponse])
async def replace_schedules(
    request: ReplaceScheduleRequest,
    professional: CurrentProfessional,
    service: Availability,
) -> list[ScheduleResponse]:
    """Replace the whole weekly schedule."""
    schedules = await service.replace_weekly_schedule(
        professional.id,
        [(w.day_of_week, w.start_time, w.end_time, w.is_available) for w in request.schedules],
    )
    return [ScheduleResponse.model_validate(s) for s in schedules]


# ============================================================================
# Breaks
# ============================================================================


@router.get("/breaks", response_model=list[BreakResponse])
async def list_breaks(
    professional: CurrentProfessional,
    service: Availability,
) -> list[BreakResponse]:
    """List breaks and unavailabilities."""
    breaks = await service.get_breaks(professional.id)
    return [BreakResponse.model_validate(b) for b in breaks]


@router.post("/breaks", response_model=BreakResponse, status_code=status.HTTP_201_CREATED)
async def create_break(
    request: BreakRequest,
    professional: CurrentProfessional,
    service: Availability,
) -> BreakResponse:
    """Add a recurring break or unavailability."""
    schedule_break = await service.create_break(
        professional.id,
        request.day_of_week,
        request.start_time,
        request.end_time,
        type=request.type,
    )
    return BreakResponse.model_validate(schedule_break)


@router.patch("/breaks/{break_id}", response_model=BreakResponse)
async def update_break(
    break_id: str,
    request: UpdateBreakRequest,
    professional: CurrentProfessional,
    service: Availability,
) -> BreakResponse:
    """Update a break."""
    schedule_break = await service.update_break(
        professional.id,
        break_id,
        day_of_week=request.day_of_week,
        start_time=request.start_time,
        end_time=request.end_time,
        type=request.type,
    )
    return BreakResponse.model_validate(schedule_break)


@router.delete("/breaks/{break_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_break(
    break_id: str,
    professional: CurrentProfessional,
    service: Availability,
) -> None:
    """Delete a break."""
    await service.delete_break(professional.id, break_id)


# ============================================================================
# Appointments
# ============================================================================


@router.get("/appointments", response_model=list[AppointmentResponse])
async def list_appointments(
    professional: CurrentProfessional,
    service: Appointments,
    from_date: date | None = None,
    to_date: date | None = None,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
) -> list[AppointmentResponse]:
    """List the professional's appointments."""
    appointments = await service.list_for_professional(
        professional.id,
        from_date=from_date,
        to_date=to_date,
        status=status_filter,
    )
    return [AppointmentResponse.model_validate(a) for a in appointments]


@router.post(
    "/appointments",
    response_model=BookedAppointmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_appointment(
    request: ProfessionalBookingRequest,
    professional: CurrentProfessional,
    service: Appointments,
) -> BookedAppointmentResponse:
    """Book an appointment on behalf of a client.

    Overlaps are always rejected; open hours are only enforced when asked.
    """
    appointment = await service.book_appointment(
        professional.id,
        request.appointment_date,
        request.start_time,
        first_name=request.first_name,
        last_name=request.last_name,
        end_time=request.end_time,
        email=request.email,
        phone=request.phone,
        notes=request.notes,
        professional_service_id=request.professional_service_id,
        patient_id=request.patient_id,
        status=request.status,
        enforce_schedule=request.enforce_schedule,
    )
    return BookedAppointmentResponse.model_validate(appointment)


@router.post("/appointments/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: str,
    professional: CurrentProfessional,
    service: Appointments,
) -> AppointmentResponse:
    """Cancel an appointment; no notice window applies."""
    appointment = await service.cancel_by_professional(appointment_id, professional.id)
    return AppointmentResponse.model_validate(appointment)


@router.patch("/appointments/{appointment_id}/status", response_model=AppointmentResponse)
async def update_appointment_status(
    appointment_id: str,
    request: UpdateAppointmentStatusRequest,
    professional: CurrentProfessional,
    service: Appointments,
) -> AppointmentResponse:
    """Change an appointment's status."""
    appointment = await service.update_status(appointment_id, professional.id, request.status)
    return AppointmentResponse.model_validate(appointment)


# ============================================================================
# Waitlist
# ============================================================================


@router.get("/waitlist", response_model=list[WaitlistEntryResponse])
async def list_waitlist(
    professional: CurrentProfessional,
    service: Waitlist,
    status_filter: WaitlistStatus | None = Query(None, alias="status"),
) -> list[WaitlistEntryResponse]:
    """List waitlist entries in queue order."""
    entries = await service.list_entries(professional.id, status=status_filter)
    return [WaitlistEntryResponse.model_validate(e) for e in entries]


@router.post("/waitlist/expire", response_model=ExpireResponse)
async def expire_waitlist(
    professional: CurrentProfessional,
    service: Waitlist,
) -> ExpireResponse:
    """Expire lapsed priority windows now and cascade their offers."""
    expired = await service.expire_stale_entries(professional_id=professional.id)
    return ExpireResponse(expired=len(expired))


@router.post("/waitlist/{entry_id}/cancel", response_model=WaitlistEntryResponse)
async def cancel_waitlist_entry(
    entry_id: str,
    professional: CurrentProfessional,
    service: Waitlist,
) -> WaitlistEntryResponse:
    """Remove a client from the waitlist."""
    entry = await service.cancel_entry(entry_id=entry_id, professional_id=professional.id)
    return WaitlistEntryResponse.model_validate(entry)


# ============================================================================
# Materialized slots
# ============================================================================


@router.post("/time-slots/materialize", response_model=MaterializeResponse)
async def materialize_time_slots(
    request: MaterializeRequest,
    professional: CurrentProfessional,
    service: Availability,
) -> MaterializeResponse:
    """Rebuild the stored slot table for a date range."""
    written = await service.materialize_time_slots(
        professional.id,
        request.from_date,
        request.to_date,
        duration_minutes=request.duration_minutes,
        professional_service_id=request.professional_service_id,
    )
    return MaterializeResponse(slots_written=written)
