"""Client appointment endpoints: booking and link-token actions.

Domain errors raised by the services are rendered by the application's
``BookingError`` handler.
"""

from datetime import date, datetime, time

from fastapi import APIRouter, status
from pydantic import BaseModel, EmailStr, Field

from gobering.api.deps import Appointments
from gobering.models.scheduling import AppointmentStatus

router = APIRouter()


# ============================================================================
# Request/Response Schemas
# ============================================================================


class AppointmentResponse(BaseModel):
    """Appointment response."""

    id: str
    professional_id: str
    professional_service_id: str | None
    appointment_date: date
    start_time: time
    end_time: time
    status: AppointmentStatus
    first_name: str
    last_name: str
    email: str | None
    phone: str | None
    notes: str | None
    cancelled_by: str | None
    cancelled_at: datetime | None
    rescheduled_from_id: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class BookedAppointmentResponse(AppointmentResponse):
    """Booking confirmation carrying the client's cancel/reschedule token."""

    cancellation_token: str | None


class BookAppointmentRequest(BaseModel):
    """Request to book an appointment."""

    appointment_date: date
    start_time: time
    end_time: time | None = Field(None, description="Defaults to the service or professional duration")
    professional_service_id: str | None = None
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=30)
    notes: str | None = Field(None, max_length=2000)


class RescheduleAppointmentRequest(BaseModel):
    """Request body for client reschedule."""

    new_date: date
    new_start_time: time


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "/professionals/{professional_id}/appointments",
    response_model=BookedAppointmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def book_appointment(
    professional_id: str,
    request: BookAppointmentRequest,
    service: Appointments,
) -> BookedAppointmentResponse:
    """Book an appointment (client self-booking)."""
    appointment = await service.book_appointment(
        professional_id,
        request.appointment_date,
        request.start_time,
        first_name=request.first_name,
        last_name=request.last_name,
        end_time=request.end_time,
        email=request.email,
        phone=request.phone,
        notes=request.notes,
        professional_service_id=request.professional_service_id,
        enforce_schedule=True,
    )

    return BookedAppointmentResponse.model_validate(appointment)


@router.get(
    "/appointments/token/{token}",
    response_model=AppointmentResponse,
)
async def get_appointment_by_token(token: str, service: Appointments) -> AppointmentResponse:
    """Look up an appointment from the client's link."""
    appointment = await service.get_by_token(token)
    return AppointmentResponse.model_validate(appointment)


@router.post(
    "/appointments/token/{token}/cancel",
    response_model=AppointmentResponse,
)
async def cancel_appointment_by_token(token: str, service: Appointments) -> AppointmentResponse:
    """Cancel an appointment from the client's link.

    Refused with 403 inside the professional's minimum notice window.
    """
    appointment = await service.cancel_by_token(token)
    return AppointmentResponse.model_validate(appointment)


@router.post(
    "/appointments/token/{token}/reschedule",
    response_model=BookedAppointmentResponse,
)
async def reschedule_appointment_by_token(
    token: str,
    request: RescheduleAppointmentRequest,
    service: Appointments,
) -> BookedAppointmentResponse:
    """Move an appointment to a new time; returns the new appointment and its token."""
    appointment = await service.reschedule_by_token(
        token,
        request.new_date,
        request.new_start_time,
    )
    return BookedAppointmentResponse.model_validate(appointment)
