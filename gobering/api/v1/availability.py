"""Public slot query endpoint."""

from datetime import date, time, timedelta

from fastapi import APIRouter, Query
from pydantic import BaseModel

from gobering.api.deps import Appointments, Availability, OptionalProfessional
from gobering.availability.slots import ComputedSlot, SlotExclusions
from gobering.core.config import settings
from gobering.services.exceptions import BookingValidationError
from gobering.utils.time import format_hhmm, local_today

router = APIRouter()

# Longest range a single query may cover
MAX_RANGE_DAYS = 92


class SlotResponse(BaseModel):
    """Computed slot."""

    slot_id: str
    professional_id: str
    slot_date: date
    start_time: str
    end_time: str
    is_available: bool

    @classmethod
    def from_slot(cls, slot: ComputedSlot) -> "SlotResponse":
        return cls(
            slot_id=slot.slot_id,
            professional_id=slot.professional_id,
            slot_date=slot.slot_date,
            start_time=format_hhmm(slot.start_time),
            end_time=format_hhmm(slot.end_time),
            is_available=slot.is_available,
        )


@router.get(
    "/professionals/{professional_id}/slots",
    response_model=list[SlotResponse],
)
async def list_slots(
    professional_id: str,
    service: Availability,
    appointments: Appointments,
    current: OptionalProfessional,
    from_date: date | None = Query(None, description="First day (defaults to today)"),
    to_date: date | None = Query(None, description="Last day, inclusive"),
    duration_minutes: int | None = Query(None, gt=0, le=24 * 60),
    professional_service_id: str | None = None,
    available_only: bool = False,
    exclude_appointment_id: str | None = None,
    reschedule_token: str | None = None,
    excluded_date: date | None = None,
    excluded_time: time | None = None,
) -> list[SlotResponse]:
    """List a professional's slots over a date range.

    Slots overlapping a break, an appointment or a waitlist hold are returned with
    ``is_available=false`` unless ``available_only`` is set.

    While an appointment is being moved its own interval can be shown as
    free: a client passes the appointment's ``reschedule_token``, the
    signed-in professional passes ``exclude_appointment_id``. Anyone else's
    ``exclude_appointment_id`` is ignored. The professional may also hide one
    slot with ``excluded_date``/``excluded_time``.
    """
    if from_date is None:
        from_date = local_today(current.timezone if current else None)
    if to_date is None:
        to_date = from_date + timedelta(days=settings.default_slot_range_days - 1)

    if to_date < from_date:
        raise BookingValidationError(
            "to_date must not be before from_date",
            from_date=from_date.isoformat(),
            to_date=to_date.isoformat(),
        )
    if (to_date - from_date).days >= MAX_RANGE_DAYS:
        raise BookingValidationError(
            f"Date range cannot exceed {MAX_RANGE_DAYS} days",
            from_date=from_date.isoformat(),
            to_date=to_date.isoformat(),
        )

    is_owner = current is not None and current.id == professional_id
    excluded_id = exclude_appointment_id if is_owner else None
    if reschedule_token:
        moving = await appointments.get_by_token(reschedule_token)
        if moving.professional_id == professional_id:
            excluded_id = moving.id

    exclusions = SlotExclusions(
        appointment_id=excluded_id,
        slot_date=excluded_date,
        slot_time=excluded_time,
        current_professional_id=current.id if current else None,
    )

    slots = await service.compute_slots(
        professional_id,
        from_date,
        to_date,
        duration_minutes=duration_minutes,
        professional_service_id=professional_service_id,
        exclusions=exclusions,
    )

    return [SlotResponse.from_slot(s) for s in slots if s.is_available or not available_only]
