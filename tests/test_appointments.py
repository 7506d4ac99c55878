"""Tests for appointment booking, cancellation and rescheduling."""

from datetime import time, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from gobering.models.scheduling import Appointment, AppointmentStatus
from gobering.services.appointments import AppointmentService
from gobering.services.availability import AvailabilityService
from gobering.services.exceptions import (
    BookingValidationError,
    CancellationNoticeError,
    InvalidTransitionError,
    NotFoundError,
    SlotConflictError,
)
from gobering.utils.time import local_datetime, utc_now


async def count_appointments(session) -> int:
    return await session.scalar(select(func.count()).select_from(Appointment))


class TestBookAppointment:
    """Tests for booking with re-validation."""

    async def test_book_derives_end_from_professional_duration(
        self, async_session, professional, monday
    ) -> None:
        service = AppointmentService(async_session)

        appointment = await service.book_appointment(
            professional.id, monday, time(10, 0), first_name="Jean", last_name="Client"
        )

        assert appointment.end_time == time(10, 30)
        assert appointment.status == AppointmentStatus.CONFIRMED
        assert appointment.cancellation_token

    async def test_book_derives_end_from_service(
        self, async_session, professional, service_60, monday
    ) -> None:
        service = AppointmentService(async_session)

        appointment = await service.book_appointment(
            professional.id,
            monday,
            time(10, 0),
            first_name="Jean",
            last_name="Client",
            professional_service_id=service_60.id,
        )

        assert appointment.end_time == time(11, 0)
        assert appointment.professional_service_id == service_60.id

    async def test_overlapping_booking_is_rejected(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        await make_appointment(monday, time(10, 0), time(11, 0))
        service = AppointmentService(async_session)

        with pytest.raises(SlotConflictError) as exc_info:
            await service.book_appointment(
                professional.id, monday, time(10, 30), first_name="Jean", last_name="Client"
            )

        assert exc_info.value.reason == "slot_conflict"
        assert await count_appointments(async_session) == 1

    async def test_adjacent_booking_is_accepted(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        await make_appointment(monday, time(10, 0), time(11, 0))
        service = AppointmentService(async_session)

        appointment = await service.book_appointment(
            professional.id, monday, time(11, 0), first_name="Jean", last_name="Client"
        )

        assert appointment.start_time == time(11, 0)

    async def test_cancelled_appointment_frees_start_time(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        await make_appointment(monday, time(10, 0), time(10, 30), status=AppointmentStatus.CANCELLED)
        service = AppointmentService(async_session)

        appointment = await service.book_appointment(
            professional.id, monday, time(10, 0), first_name="Jean", last_name="Client"
        )

        assert appointment.status == AppointmentStatus.CONFIRMED

    async def test_fresh_draft_holds_its_interval(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        created = utc_now()
        await make_appointment(
            monday, time(10, 0), time(10, 30), status=AppointmentStatus.DRAFT, created_at=created
        )
        service = AppointmentService(async_session)

        with pytest.raises(SlotConflictError):
            await service.book_appointment(
                professional.id,
                monday,
                time(10, 0),
                first_name="Jean",
                last_name="Client",
                now=created + timedelta(minutes=5),
            )

    async def test_abandoned_draft_is_retired_by_new_booking(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        created = utc_now()
        draft = await make_appointment(
            monday, time(10, 0), time(10, 30), status=AppointmentStatus.DRAFT, created_at=created
        )
        service = AppointmentService(async_session)

        appointment = await service.book_appointment(
            professional.id,
            monday,
            time(10, 0),
            first_name="Jean",
            last_name="Client",
            now=created + timedelta(minutes=20),
        )

        await async_session.refresh(draft)
        assert appointment.status == AppointmentStatus.CONFIRMED
        assert draft.status == AppointmentStatus.CANCELLED
        assert draft.cancelled_by == "system"

    async def test_abandoned_draft_frees_slot(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        created = utc_now()
        await make_appointment(
            monday, time(9, 0), time(9, 30), status=AppointmentStatus.DRAFT, created_at=created
        )
        availability = AvailabilityService(async_session)

        fresh = await availability.compute_slots(
            professional.id, monday, monday, now=created + timedelta(minutes=14)
        )
        lapsed = await availability.compute_slots(
            professional.id, monday, monday, now=created + timedelta(minutes=16)
        )

        assert fresh[0].is_available is False
        assert lapsed[0].is_available is True

    async def test_unique_index_violation_becomes_conflict(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        """A racing insert that slips past the overlap check hits the index."""
        professional_id = professional.id
        await make_appointment(monday, time(10, 0), time(10, 30))
        service = AppointmentService(async_session)

        with patch.object(
            AvailabilityService,
            "get_appointments_in_range",
            AsyncMock(return_value=[]),
        ):
            with pytest.raises(SlotConflictError):
                await service.book_appointment(
                    professional_id,
                    monday,
                    time(10, 0),
                    first_name="Jean",
                    last_name="Client",
                    enforce_schedule=False,
                )

        assert await count_appointments(async_session) == 1

    async def test_client_booking_outside_hours_is_rejected(
        self, async_session, professional, monday
    ) -> None:
        service = AppointmentService(async_session)

        with pytest.raises(SlotConflictError):
            await service.book_appointment(
                professional.id, monday, time(18, 0), first_name="Jean", last_name="Client"
            )

    async def test_professional_may_book_outside_hours(
        self, async_session, professional, monday
    ) -> None:
        service = AppointmentService(async_session)

        appointment = await service.book_appointment(
            professional.id,
            monday,
            time(18, 0),
            first_name="Jean",
            last_name="Client",
            enforce_schedule=False,
        )

        assert appointment.end_time == time(18, 30)

    async def test_client_booking_on_break_is_rejected(
        self, async_session, professional, monday
    ) -> None:
        await AvailabilityService(async_session).create_break(
            professional.id, 1, time(12, 0), time(13, 0)
        )
        service = AppointmentService(async_session)

        with pytest.raises(SlotConflictError):
            await service.book_appointment(
                professional.id, monday, time(12, 0), first_name="Jean", last_name="Client"
            )

    async def test_past_date_is_rejected(self, async_session, professional, monday) -> None:
        service = AppointmentService(async_session)

        with pytest.raises(BookingValidationError):
            await service.book_appointment(
                professional.id,
                monday - timedelta(weeks=6),
                time(10, 0),
                first_name="Jean",
                last_name="Client",
            )

    async def test_inverted_times_are_rejected(self, async_session, professional, monday) -> None:
        service = AppointmentService(async_session)

        with pytest.raises(BookingValidationError):
            await service.book_appointment(
                professional.id,
                monday,
                time(11, 0),
                end_time=time(10, 0),
                first_name="Jean",
                last_name="Client",
            )

    async def test_blank_name_is_rejected(self, async_session, professional, monday) -> None:
        service = AppointmentService(async_session)

        with pytest.raises(BookingValidationError):
            await service.book_appointment(
                professional.id, monday, time(10, 0), first_name=" ", last_name="Client"
            )

    async def test_unknown_professional(self, async_session, monday) -> None:
        service = AppointmentService(async_session)

        with pytest.raises(NotFoundError):
            await service.book_appointment(
                "missing", monday, time(10, 0), first_name="Jean", last_name="Client"
            )

    async def test_booking_invalidates_slot_cache(
        self, async_session, professional, monday, slot_cache
    ) -> None:
        availability = AvailabilityService(async_session, slot_cache)
        await availability.compute_slots(professional.id, monday, monday)

        await AppointmentService(async_session, slot_cache).book_appointment(
            professional.id, monday, time(9, 0), first_name="Jean", last_name="Client"
        )
        slots = await availability.compute_slots(professional.id, monday, monday)

        assert slots[0].is_available is False


class TestCancellation:
    """Tests for client and professional cancellation."""

    async def test_client_cancel_clears_token(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        await make_appointment(monday, time(10, 0), time(10, 30), token="tok-cancel")
        service = AppointmentService(async_session)

        cancelled = await service.cancel_by_token("tok-cancel")

        assert cancelled.status == AppointmentStatus.CANCELLED
        assert cancelled.cancelled_by == "client"
        assert cancelled.cancelled_at is not None
        assert cancelled.cancellation_token is None

        with pytest.raises(NotFoundError):
            await service.get_by_token("tok-cancel")

    async def test_client_cancel_inside_notice_window(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        appointment = await make_appointment(monday, time(10, 0), time(10, 30), token="tok-late")
        service = AppointmentService(async_session)
        now = local_datetime(monday, time(10, 0), professional.timezone) - timedelta(hours=5)

        with pytest.raises(CancellationNoticeError) as exc_info:
            await service.cancel_by_token("tok-late", now=now)

        assert exc_info.value.context["required_hours"] == 24
        assert exc_info.value.context["remaining_hours"] == 5
        assert appointment.status == AppointmentStatus.CONFIRMED

    async def test_professional_cancel_ignores_notice_window(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        appointment = await make_appointment(monday, time(10, 0), time(10, 30))
        service = AppointmentService(async_session)
        now = local_datetime(monday, time(9, 0), professional.timezone)

        cancelled = await service.cancel_by_professional(appointment.id, professional.id, now=now)

        assert cancelled.status == AppointmentStatus.CANCELLED
        assert cancelled.cancelled_by == "professional"

    async def test_cancel_twice_is_rejected(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        appointment = await make_appointment(monday, time(10, 0), time(10, 30))
        service = AppointmentService(async_session)
        await service.cancel_by_professional(appointment.id, professional.id)

        with pytest.raises(InvalidTransitionError):
            await service.cancel_by_professional(appointment.id, professional.id)

    async def test_cancel_of_other_professionals_appointment(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        appointment = await make_appointment(monday, time(10, 0), time(10, 30))
        service = AppointmentService(async_session)

        with pytest.raises(NotFoundError):
            await service.cancel_by_professional(appointment.id, "someone-else")

    async def test_dispatch_failure_keeps_cancellation(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        appointment = await make_appointment(monday, time(10, 0), time(10, 30))
        appointment_id = appointment.id
        service = AppointmentService(async_session)

        with patch(
            "gobering.services.waitlist.WaitlistService.dispatch_freed_slot",
            AsyncMock(side_effect=RuntimeError("queue unavailable")),
        ):
            cancelled = await service.cancel_by_professional(appointment_id, professional.id)

        assert cancelled.status == AppointmentStatus.CANCELLED
        stored = await async_session.get(Appointment, appointment_id)
        assert stored.status == AppointmentStatus.CANCELLED


class TestReschedule:
    """Tests for moving an appointment through its link."""

    async def test_reschedule_moves_appointment(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        original = await make_appointment(monday, time(10, 0), time(10, 30), token="tok-move")
        service = AppointmentService(async_session)

        replacement = await service.reschedule_by_token("tok-move", monday, time(14, 0))

        assert replacement.id != original.id
        assert (replacement.start_time, replacement.end_time) == (time(14, 0), time(14, 30))
        assert replacement.rescheduled_from_id == original.id
        assert replacement.cancellation_token

        await async_session.refresh(original)
        assert original.status == AppointmentStatus.CANCELLED
        assert original.rescheduled_at is not None
        assert original.cancellation_token is None

    async def test_reschedule_keeps_length(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        await make_appointment(monday, time(10, 0), time(11, 0), token="tok-long")
        service = AppointmentService(async_session)

        replacement = await service.reschedule_by_token(
            "tok-long", monday + timedelta(days=1), time(9, 0)
        )

        assert replacement.end_time == time(10, 0)

    async def test_reschedule_to_overlapping_own_interval(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        """The original does not conflict with its own replacement."""
        await make_appointment(monday, time(10, 0), time(10, 30), token="tok-same")
        service = AppointmentService(async_session)

        replacement = await service.reschedule_by_token("tok-same", monday, time(10, 0))

        assert replacement.start_time == time(10, 0)
        assert replacement.status == AppointmentStatus.CONFIRMED

    async def test_reschedule_into_conflict_keeps_original(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        original = await make_appointment(monday, time(10, 0), time(10, 30), token="tok-blocked")
        original_id = original.id
        await make_appointment(monday, time(14, 0), time(14, 30))
        service = AppointmentService(async_session)

        with pytest.raises(SlotConflictError):
            await service.reschedule_by_token("tok-blocked", monday, time(14, 0))

        stored = await service.get_by_token("tok-blocked")
        assert stored.id == original_id
        assert stored.status == AppointmentStatus.CONFIRMED
        assert await count_appointments(async_session) == 2

    async def test_reschedule_inside_notice_window(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        await make_appointment(monday, time(10, 0), time(10, 30), token="tok-soon")
        service = AppointmentService(async_session)
        now = local_datetime(monday, time(8, 0), professional.timezone)

        with pytest.raises(CancellationNoticeError):
            await service.reschedule_by_token("tok-soon", monday + timedelta(days=1), time(10, 0), now=now)


class TestStatusUpdates:
    """Tests for professional status changes."""

    async def test_complete_appointment(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        appointment = await make_appointment(monday, time(10, 0), time(10, 30))
        service = AppointmentService(async_session)

        updated = await service.update_status(
            appointment.id, professional.id, AppointmentStatus.COMPLETED
        )

        assert updated.status == AppointmentStatus.COMPLETED

    async def test_cancel_through_status_update(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        appointment = await make_appointment(monday, time(10, 0), time(10, 30), token="tok-status")
        service = AppointmentService(async_session)

        updated = await service.update_status(
            appointment.id, professional.id, AppointmentStatus.CANCELLED
        )

        assert updated.status == AppointmentStatus.CANCELLED
        assert updated.cancelled_by == "professional"
        assert updated.cancellation_token is None

    async def test_cancelled_cannot_be_reopened(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        appointment = await make_appointment(
            monday, time(10, 0), time(10, 30), status=AppointmentStatus.CANCELLED
        )
        service = AppointmentService(async_session)

        with pytest.raises(InvalidTransitionError):
            await service.update_status(appointment.id, professional.id, AppointmentStatus.CONFIRMED)

    async def test_list_filters_by_status(
        self, async_session, professional, monday, make_appointment
    ) -> None:
        await make_appointment(monday, time(10, 0), time(10, 30))
        await make_appointment(monday, time(9, 0), time(9, 30), status=AppointmentStatus.CANCELLED)
        await make_appointment(monday + timedelta(days=1), time(9, 0), time(9, 30))
        service = AppointmentService(async_session)

        confirmed = await service.list_for_professional(
            professional.id, status=AppointmentStatus.CONFIRMED
        )
        monday_only = await service.list_for_professional(
            professional.id, from_date=monday, to_date=monday
        )

        assert len(confirmed) == 2
        assert [a.start_time for a in monday_only] == [time(9, 0), time(10, 0)]
