"""Appointment booking, cancellation and rescheduling.

Booking is the only concurrency-sensitive path: the professional row is
locked, overlaps are re-checked against live appointments and waitlist
holds, and the partial unique index on
``(professional_id, appointment_date, start_time)`` catches whatever slips
through. Cancelling frees the interval for the waitlist.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gobering.availability.slots import (
    occupies_time,
    overlapping_appointments,
    overlaps,
    parse_minutes,
)
from gobering.booking.policy import CancellationActor, check_cancellation_notice
from gobering.core.cache import SlotCache
from gobering.core.security import generate_link_token
from gobering.models.professional import Professional
from gobering.models.scheduling import Appointment, AppointmentStatus
from gobering.services.availability import AvailabilityService, draft_cutoff
from gobering.services.exceptions import (
    BookingValidationError,
    CancellationNoticeError,
    InvalidTransitionError,
    NotFoundError,
    SlotConflictError,
)
from gobering.services.notifications import WaitlistNotifier
from gobering.utils.time import ensure_utc, local_today, utc_now

logger = logging.getLogger(__name__)


def _add_minutes(start: time, minutes: int) -> time:
    """Shift a time of day, refusing to wrap past midnight."""
    end = datetime.combine(date.min, start) + timedelta(minutes=minutes)
    if end.date() != date.min:
        raise BookingValidationError(
            "Appointment cannot extend past midnight",
            start_time=start.isoformat(),
            duration_minutes=minutes,
        )
    return end.time()


def _length_minutes(start: time, end: time) -> int:
    return (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)


class AppointmentService:
    """Service for booking and cancelling appointments."""

    def __init__(
        self,
        session: AsyncSession,
        cache: SlotCache | None = None,
        notifier: WaitlistNotifier | None = None,
    ):
        self.session = session
        self.cache = cache
        self.notifier = notifier
        self.availability = AvailabilityService(session, cache)

    async def _lock_professional(self, professional_id: str) -> Professional:
        """Load the professional with a row lock serializing bookings.

        ``FOR UPDATE`` compiles to nothing on SQLite.
        """
        result = await self.session.execute(
            select(Professional)
            .where(
                Professional.id == professional_id,
                Professional.is_active == True,
            )
            .with_for_update()
        )
        professional = result.scalar_one_or_none()
        if not professional:
            raise NotFoundError("Professional not found", professional_id=professional_id)
        return professional

    async def book_appointment(
        self,
        professional_id: str,
        appointment_date: date,
        start_time: time,
        first_name: str,
        last_name: str,
        end_time: time | None = None,
        email: str | None = None,
        phone: str | None = None,
        notes: str | None = None,
        professional_service_id: str | None = None,
        patient_id: str | None = None,
        status: AppointmentStatus = AppointmentStatus.CONFIRMED,
        enforce_schedule: bool = True,
        exclude_appointment_id: str | None = None,
        rescheduled_from_id: str | None = None,
        waitlist_entry_id: str | None = None,
        now: datetime | None = None,
        commit: bool = True,
    ) -> Appointment:
        """Book an appointment after re-validating the interval.

        Args:
            professional_id: Professional being booked
            appointment_date: Local date
            start_time: Local start time
            first_name: Client first name
            last_name: Client last name
            end_time: Derived from the service or professional duration when omitted
            enforce_schedule: Require the interval to sit inside open hours
                (client self-booking, waitlist claims); professionals may
                book outside their hours
            exclude_appointment_id: Appointment ignored for overlap (reschedules)
            waitlist_entry_id: Notified entry booking inside its own hold
            commit: False leaves the transaction open for the caller

        Raises:
            BookingValidationError: missing fields or inconsistent times
            NotFoundError: unknown professional or service
            SlotConflictError: the interval is taken, held for a waitlist entry
                or outside open hours
        """
        if not (first_name or "").strip() or not (last_name or "").strip():
            raise BookingValidationError("first_name and last_name are required")

        if status == AppointmentStatus.CANCELLED:
            raise BookingValidationError("Cannot book a cancelled appointment")

        now = ensure_utc(now) if now else utc_now()
        cutoff = draft_cutoff(now)
        professional = await self._lock_professional(professional_id)

        if end_time is None:
            duration, _ = await self.availability.resolve_duration(
                professional, None, professional_service_id
            )
            end_time = _add_minutes(start_time, duration)
        elif professional_service_id:
            await self.availability.get_service(professional_id, professional_service_id)

        if start_time >= end_time:
            raise BookingValidationError(
                "start_time must be before end_time",
                start_time=start_time.isoformat(),
                end_time=end_time.isoformat(),
            )

        if enforce_schedule:
            if appointment_date < local_today(professional.timezone, now):
                raise BookingValidationError(
                    "Cannot book a date in the past",
                    appointment_date=appointment_date.isoformat(),
                )

        existing = await self.availability.get_appointments_in_range(
            professional_id, appointment_date, appointment_date
        )
        conflicts = overlapping_appointments(
            appointment_date,
            start_time,
            end_time,
            existing,
            exclude_appointment_id=exclude_appointment_id,
            draft_cutoff=cutoff,
        )
        if conflicts:
            raise SlotConflictError(
                "This time slot is no longer available",
                appointment_date=appointment_date.isoformat(),
                start_time=start_time.isoformat(),
            )

        holds = await self.availability.get_active_holds(
            professional_id,
            appointment_date,
            appointment_date,
            now,
            exclude_entry_id=waitlist_entry_id,
        )
        start_min, end_min = parse_minutes(start_time), parse_minutes(end_time)
        if any(
            overlaps(
                start_min,
                end_min,
                parse_minutes(hold.available_start_time),
                parse_minutes(hold.available_end_time),
            )
            for hold in holds
        ):
            raise SlotConflictError(
                "This time slot is reserved for a waitlist client",
                appointment_date=appointment_date.isoformat(),
                start_time=start_time.isoformat(),
            )

        if enforce_schedule and not await self.availability.is_interval_available(
            professional_id,
            appointment_date,
            start_time,
            end_time,
            exclude_appointment_id=exclude_appointment_id,
            now=now,
            exclude_entry_id=waitlist_entry_id,
        ):
            raise SlotConflictError(
                "This time is outside the professional's available hours",
                appointment_date=appointment_date.isoformat(),
                start_time=start_time.isoformat(),
            )

        await self._retire_abandoned_drafts(
            existing, appointment_date, start_min, end_min, cutoff, now
        )

        appointment = Appointment(
            professional_id=professional_id,
            patient_id=patient_id,
            professional_service_id=professional_service_id,
            appointment_date=appointment_date,
            start_time=start_time,
            end_time=end_time,
            status=status,
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email=email,
            phone=phone,
            notes=notes,
            cancellation_token=generate_link_token(),
            rescheduled_from_id=rescheduled_from_id,
        )
        self.session.add(appointment)

        try:
            if commit:
                await self.session.commit()
                await self.session.refresh(appointment)
            else:
                await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            raise SlotConflictError(
                "This time slot is no longer available",
                appointment_date=appointment_date.isoformat(),
                start_time=start_time.isoformat(),
            ) from None

        self.availability.invalidate(professional_id)
        logger.info(
            f"Appointment booked for {appointment_date} {start_time:%H:%M}-{end_time:%H:%M}",
            extra={"professional_id": professional_id, "appointment_id": appointment.id},
        )
        return appointment

    async def _retire_abandoned_drafts(
        self,
        existing: Sequence[Appointment],
        appointment_date: date,
        start_min: int,
        end_min: int,
        cutoff: datetime,
        now: datetime,
    ) -> None:
        """Cancel lapsed drafts under the new interval so the unique index allows it."""
        abandoned = [
            a
            for a in existing
            if a.status == AppointmentStatus.DRAFT
            and a.appointment_date == appointment_date
            and not occupies_time(a.status, a.created_at, cutoff)
            and overlaps(start_min, end_min, parse_minutes(a.start_time), parse_minutes(a.end_time))
        ]
        for draft in abandoned:
            self._mark_cancelled(draft, CancellationActor.SYSTEM, now)
        if abandoned:
            await self.session.flush()

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    async def get_appointment(
        self,
        appointment_id: str,
        professional_id: str | None = None,
    ) -> Appointment:
        query = select(Appointment).where(Appointment.id == appointment_id)
        if professional_id:
            query = query.where(Appointment.professional_id == professional_id)

        result = await self.session.execute(query)
        appointment = result.scalar_one_or_none()
        if not appointment:
            raise NotFoundError("Appointment not found", appointment_id=appointment_id)
        return appointment

    async def get_by_token(self, token: str) -> Appointment:
        """Find the appointment behind a client link.

        Tokens are cleared on cancellation, so used links are not found.
        """
        result = await self.session.execute(
            select(Appointment).where(Appointment.cancellation_token == token)
        )
        appointment = result.scalar_one_or_none()
        if not appointment:
            raise NotFoundError("Appointment not found or link already used")
        return appointment

    async def list_for_professional(
        self,
        professional_id: str,
        from_date: date | None = None,
        to_date: date | None = None,
        status: AppointmentStatus | None = None,
    ) -> Sequence[Appointment]:
        query = select(Appointment).where(Appointment.professional_id == professional_id)

        if from_date:
            query = query.where(Appointment.appointment_date >= from_date)
        if to_date:
            query = query.where(Appointment.appointment_date <= to_date)
        if status:
            query = query.where(Appointment.status == status)

        query = query.order_by(Appointment.appointment_date, Appointment.start_time)

        result = await self.session.execute(query)
        return result.scalars().all()

    # -------------------------------------------------------------------------
    # Cancellation and rescheduling
    # -------------------------------------------------------------------------

    async def _check_notice(
        self,
        appointment: Appointment,
        now: datetime | None,
    ) -> None:
        professional = await self.session.get(Professional, appointment.professional_id)
        decision = check_cancellation_notice(
            appointment.appointment_date,
            appointment.start_time,
            professional.cancellation_delay_hours if professional else None,
            zone_name=professional.timezone if professional else None,
            now=now,
            actor=CancellationActor.CLIENT,
        )
        if not decision.allowed:
            raise CancellationNoticeError(
                decision.message,
                required_hours=decision.required_hours,
                remaining_hours=round(max(decision.remaining_hours, 0), 2),
            )

    def _mark_cancelled(
        self,
        appointment: Appointment,
        actor: CancellationActor,
        now: datetime | None,
    ) -> None:
        appointment.status = AppointmentStatus.CANCELLED
        appointment.cancelled_by = actor.value
        appointment.cancelled_at = now or utc_now()
        appointment.cancellation_token = None

    async def _release_to_waitlist(self, appointment: Appointment, now: datetime | None) -> None:
        """Offer a freed interval to the waitlist.

        Failures are logged; the cancellation that freed the slot stands.
        """
        from gobering.services.waitlist import WaitlistService

        waitlist = WaitlistService(self.session, cache=self.cache, notifier=self.notifier)
        log_extra = {
            "professional_id": appointment.professional_id,
            "appointment_id": appointment.id,
        }
        try:
            await waitlist.dispatch_freed_slot(
                appointment.professional_id,
                appointment.appointment_date,
                appointment.start_time,
                appointment.end_time,
                professional_service_id=appointment.professional_service_id,
                now=now,
            )
        except Exception:
            await self.session.rollback()
            logger.exception("Waitlist dispatch failed after cancellation", extra=log_extra)

    async def _cancel(
        self,
        appointment: Appointment,
        actor: CancellationActor,
        now: datetime | None,
    ) -> Appointment:
        self._mark_cancelled(appointment, actor, now)
        await self.session.commit()

        self.availability.invalidate(appointment.professional_id)
        logger.info(
            f"Appointment cancelled by {actor.value}",
            extra={
                "professional_id": appointment.professional_id,
                "appointment_id": appointment.id,
            },
        )

        await self._release_to_waitlist(appointment, now)
        await self.session.refresh(appointment)
        return appointment

    async def cancel_by_token(self, token: str, now: datetime | None = None) -> Appointment:
        """Client cancellation through the link, subject to minimum notice."""
        appointment = await self.get_by_token(token)

        if appointment.status == AppointmentStatus.CANCELLED:
            raise InvalidTransitionError("Appointment is already cancelled")

        await self._check_notice(appointment, now)
        return await self._cancel(appointment, CancellationActor.CLIENT, now)

    async def cancel_by_professional(
        self,
        appointment_id: str,
        professional_id: str,
        now: datetime | None = None,
    ) -> Appointment:
        """Professional cancellation; no notice window applies."""
        appointment = await self.get_appointment(appointment_id, professional_id)

        if appointment.status == AppointmentStatus.CANCELLED:
            raise InvalidTransitionError(
                "Appointment is already cancelled",
                appointment_id=appointment_id,
            )

        return await self._cancel(appointment, CancellationActor.PROFESSIONAL, now)

    async def reschedule_by_token(
        self,
        token: str,
        new_date: date,
        new_start_time: time,
        now: datetime | None = None,
    ) -> Appointment:
        """Move a client's appointment to a new start, keeping its length.

        The original is cancelled and the new appointment is booked in one
        transaction; the original interval is then offered to the waitlist.
        """
        original = await self.get_by_token(token)

        if original.status == AppointmentStatus.CANCELLED:
            raise InvalidTransitionError("Appointment is already cancelled")

        await self._check_notice(original, now)

        length = _length_minutes(original.start_time, original.end_time)
        new_end_time = _add_minutes(new_start_time, length)

        self._mark_cancelled(original, CancellationActor.CLIENT, now)
        original.rescheduled_at = now or utc_now()
        await self.session.flush()

        try:
            replacement = await self.book_appointment(
                original.professional_id,
                new_date,
                new_start_time,
                first_name=original.first_name,
                last_name=original.last_name,
                end_time=new_end_time,
                email=original.email,
                phone=original.phone,
                notes=original.notes,
                professional_service_id=original.professional_service_id,
                patient_id=original.patient_id,
                enforce_schedule=True,
                exclude_appointment_id=original.id,
                rescheduled_from_id=original.id,
                now=now,
                commit=False,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            f"Appointment rescheduled to {new_date} {new_start_time:%H:%M}",
            extra={"professional_id": original.professional_id, "appointment_id": replacement.id},
        )

        await self._release_to_waitlist(original, now)
        await self.session.refresh(replacement)
        return replacement

    async def update_status(
        self,
        appointment_id: str,
        professional_id: str,
        new_status: AppointmentStatus,
        now: datetime | None = None,
    ) -> Appointment:
        """Professional status change; cancelling goes through cancellation."""
        if new_status == AppointmentStatus.CANCELLED:
            return await self.cancel_by_professional(appointment_id, professional_id, now)

        appointment = await self.get_appointment(appointment_id, professional_id)

        if appointment.status == AppointmentStatus.CANCELLED:
            raise InvalidTransitionError(
                "Cancelled appointments cannot be reopened",
                appointment_id=appointment_id,
                target_status=new_status.value,
            )

        appointment.status = new_status
        await self.session.commit()
        await self.session.refresh(appointment)

        self.availability.invalidate(professional_id)
        return appointment
