"""Availability service: slot queries and schedule management.

Loads a professional's weekly hours, breaks, appointments and the intervals
held for notified waitlist entries, and hands them to the pure engine in
``gobering.availability.slots``. Computed slot lists are cached per query;
every write that can change availability drops the professional's cache keys.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from gobering.availability.slots import (
    ComputedSlot,
    SlotExclusions,
    compute_slots,
    interval_is_bookable,
)
from gobering.core.cache import SlotCache, slots_prefix
from gobering.core.config import settings
from gobering.models.professional import Professional, ProfessionalService
from gobering.models.scheduling import (
    Appointment,
    BreakType,
    ScheduleBreak,
    TimeSlot,
    WeeklySchedule,
)
from gobering.models.waitlist import WaitlistEntry, WaitlistStatus
from gobering.services.exceptions import BookingValidationError, NotFoundError
from gobering.utils.time import ensure_utc, local_today, utc_now

logger = logging.getLogger(__name__)


def draft_cutoff(now: datetime) -> datetime:
    """Drafts created at or before this instant no longer hold their interval."""
    return now - timedelta(minutes=settings.draft_hold_minutes)


def validate_window(day_of_week: int, start_time: time, end_time: time) -> None:
    """Reject a weekday/time window that cannot exist.

    Raises:
        BookingValidationError: day outside 0..6 or start not before end
    """
    if not 0 <= day_of_week <= 6:
        raise BookingValidationError(
            "day_of_week must be between 0 (Sunday) and 6 (Saturday)",
            day_of_week=day_of_week,
        )
    if start_time >= end_time:
        raise BookingValidationError(
            "start_time must be before end_time",
            start_time=start_time.isoformat(),
            end_time=end_time.isoformat(),
        )


class AvailabilityService:
    """Service for computing slots and editing the inputs they come from."""

    def __init__(self, session: AsyncSession, cache: SlotCache | None = None):
        self.session = session
        self.cache = cache

    def invalidate(self, professional_id: str) -> None:
        """Drop every cached slot list for a professional."""
        if self.cache is not None:
            self.cache.invalidate_prefix(slots_prefix(professional_id))

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    async def get_professional(self, professional_id: str) -> Professional | None:
        result = await self.session.execute(
            select(Professional).where(
                Professional.id == professional_id,
                Professional.is_active == True,
            )
        )
        return result.scalar_one_or_none()

    async def get_service(
        self,
        professional_id: str,
        professional_service_id: str,
    ) -> ProfessionalService:
        """Get a service belonging to the professional.

        Raises:
            NotFoundError: unknown id or service of another professional
        """
        result = await self.session.execute(
            select(ProfessionalService).where(
                ProfessionalService.id == professional_service_id,
                ProfessionalService.professional_id == professional_id,
            )
        )
        service = result.scalar_one_or_none()
        if not service:
            raise NotFoundError(
                "Service not found",
                professional_service_id=professional_service_id,
            )
        return service

    async def resolve_duration(
        self,
        professional: Professional,
        duration_minutes: int | None = None,
        professional_service_id: str | None = None,
    ) -> tuple[int, int]:
        """Return (duration, buffer) in minutes.

        Duration comes from the explicit value, then the service, then the
        professional default. A service without its own buffer inherits the
        professional's.
        """
        buffer_minutes = professional.buffer_minutes or 0

        if professional_service_id:
            service = await self.get_service(professional.id, professional_service_id)
            if service.buffer_minutes is not None:
                buffer_minutes = service.buffer_minutes
            if duration_minutes is None:
                duration_minutes = service.duration_minutes

        if duration_minutes is None:
            duration_minutes = professional.appointment_duration

        return duration_minutes, buffer_minutes

    async def get_schedules(
        self,
        professional_id: str,
        day_of_week: int | None = None,
    ) -> Sequence[WeeklySchedule]:
        query = select(WeeklySchedule).where(WeeklySchedule.professional_id == professional_id)

        if day_of_week is not None:
            query = query.where(WeeklySchedule.day_of_week == day_of_week)

        query = query.order_by(WeeklySchedule.day_of_week, WeeklySchedule.start_time)

        result = await self.session.execute(query)
        return result.scalars().all()

    async def get_breaks(
        self,
        professional_id: str,
        day_of_week: int | None = None,
    ) -> Sequence[ScheduleBreak]:
        query = select(ScheduleBreak).where(ScheduleBreak.professional_id == professional_id)

        if day_of_week is not None:
            query = query.where(ScheduleBreak.day_of_week == day_of_week)

        query = query.order_by(ScheduleBreak.day_of_week, ScheduleBreak.start_time)

        result = await self.session.execute(query)
        return result.scalars().all()

    async def get_appointments_in_range(
        self,
        professional_id: str,
        from_date: date,
        to_date: date,
    ) -> Sequence[Appointment]:
        """All appointments in the range; the engine ignores cancelled ones."""
        result = await self.session.execute(
            select(Appointment).where(
                Appointment.professional_id == professional_id,
                Appointment.appointment_date >= from_date,
                Appointment.appointment_date <= to_date,
            )
        )
        return result.scalars().all()

    async def get_active_holds(
        self,
        professional_id: str,
        from_date: date,
        to_date: date,
        now: datetime,
        exclude_entry_id: str | None = None,
    ) -> list[WaitlistEntry]:
        """Notified entries whose priority window is still open at ``now``.

        Their offered intervals are reserved for them until the window closes.
        """
        query = select(WaitlistEntry).where(
            WaitlistEntry.professional_id == professional_id,
            WaitlistEntry.status == WaitlistStatus.NOTIFIED,
            WaitlistEntry.available_date >= from_date,
            WaitlistEntry.available_date <= to_date,
        )
        if exclude_entry_id:
            query = query.where(WaitlistEntry.id != exclude_entry_id)

        result = await self.session.execute(query)
        return [
            entry
            for entry in result.scalars().all()
            if entry.has_offer
            and entry.expires_at is not None
            and ensure_utc(entry.expires_at) > now
        ]

    # -------------------------------------------------------------------------
    # Slot queries
    # -------------------------------------------------------------------------

    async def compute_slots(
        self,
        professional_id: str,
        from_date: date,
        to_date: date,
        duration_minutes: int | None = None,
        professional_service_id: str | None = None,
        exclusions: SlotExclusions | None = None,
        now: datetime | None = None,
    ) -> list[ComputedSlot]:
        """Compute slots for a professional over a date range.

        Unknown or inactive professionals yield an empty list.
        """
        professional = await self.get_professional(professional_id)
        if not professional:
            return []

        duration, buffer_minutes = await self.resolve_duration(
            professional, duration_minutes, professional_service_id
        )
        now = ensure_utc(now) if now else utc_now()
        today = local_today(professional.timezone, now)

        cache_key = (
            f"{slots_prefix(professional_id)}{from_date}:{to_date}:{duration}:{buffer_minutes}"
            f":{today}:{exclusions!r}"
        )
        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        schedules = await self.get_schedules(professional_id)
        breaks = await self.get_breaks(professional_id)
        appointments = await self.get_appointments_in_range(professional_id, from_date, to_date)
        holds = await self.get_active_holds(professional_id, from_date, to_date, now)

        slots = compute_slots(
            professional_id,
            from_date,
            to_date,
            duration,
            schedules,
            breaks,
            appointments,
            exclusions=exclusions,
            today=today,
            buffer_minutes=buffer_minutes,
            holds=holds,
            draft_cutoff=draft_cutoff(now),
        )

        if self.cache is not None:
            self.cache.set(cache_key, slots)

        return slots

    async def is_interval_available(
        self,
        professional_id: str,
        slot_date: date,
        start_time: time,
        end_time: time,
        exclude_appointment_id: str | None = None,
        now: datetime | None = None,
        exclude_entry_id: str | None = None,
    ) -> bool:
        """Whether ``[start_time, end_time)`` on ``slot_date`` can be booked now.

        ``exclude_entry_id`` lets a waitlist entry book inside its own hold.
        """
        now = ensure_utc(now) if now else utc_now()
        weekday_schedules = await self.get_schedules(professional_id)
        breaks = await self.get_breaks(professional_id)
        appointments = await self.get_appointments_in_range(professional_id, slot_date, slot_date)
        holds = await self.get_active_holds(
            professional_id, slot_date, slot_date, now, exclude_entry_id=exclude_entry_id
        )

        return interval_is_bookable(
            slot_date,
            start_time,
            end_time,
            weekday_schedules,
            breaks,
            appointments,
            exclude_appointment_id=exclude_appointment_id,
            holds=holds,
            draft_cutoff=draft_cutoff(now),
        )

    async def materialize_time_slots(
        self,
        professional_id: str,
        from_date: date,
        to_date: date,
        duration_minutes: int | None = None,
        professional_service_id: str | None = None,
        now: datetime | None = None,
    ) -> int:
        """Rebuild the ``time_slots`` rows in range from current engine output.

        Returns:
            Number of rows written
        """
        if from_date > to_date:
            raise BookingValidationError(
                "from_date must not be after to_date",
                from_date=from_date.isoformat(),
                to_date=to_date.isoformat(),
            )

        professional = await self.get_professional(professional_id)
        if not professional:
            raise NotFoundError("Professional not found", professional_id=professional_id)

        # Always recompute from the source tables
        self.invalidate(professional_id)
        slots = await self.compute_slots(
            professional_id,
            from_date,
            to_date,
            duration_minutes=duration_minutes,
            professional_service_id=professional_service_id,
            now=now,
        )

        await self.session.execute(
            delete(TimeSlot).where(
                TimeSlot.professional_id == professional_id,
                TimeSlot.slot_date >= from_date,
                TimeSlot.slot_date <= to_date,
            )
        )
        self.session.add_all(
            TimeSlot(
                professional_id=professional_id,
                slot_date=slot.slot_date,
                start_time=slot.start_time,
                end_time=slot.end_time,
                is_booked=not slot.is_available,
            )
            for slot in slots
        )
        await self.session.commit()

        logger.info(
            f"Materialized {len(slots)} time slots from {from_date} to {to_date}",
            extra={"professional_id": professional_id},
        )
        return len(slots)

    # -------------------------------------------------------------------------
    # Weekly schedule management
    # -------------------------------------------------------------------------

    async def create_schedule(
        self,
        professional_id: str,
        day_of_week: int,
        start_time: time,
        end_time: time,
        is_available: bool = True,
    ) -> WeeklySchedule:
        """Add an open window to a weekday."""
        validate_window(day_of_week, start_time, end_time)

        schedule = WeeklySchedule(
            professional_id=professional_id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            is_available=is_available,
        )

        self.session.add(schedule)
        await self.session.commit()
        await self.session.refresh(schedule)

        self.invalidate(professional_id)
        return schedule

    async def replace_weekly_schedule(
        self,
        professional_id: str,
        windows: Sequence[tuple[int, time, time, bool]],
    ) -> Sequence[WeeklySchedule]:
        """Overwrite the whole week with ``(day, start, end, is_available)`` rows.

        Days absent from ``windows`` end up closed.
        """
        for day_of_week, start_time, end_time, _ in windows:
            validate_window(day_of_week, start_time, end_time)

        await self.session.execute(
            delete(WeeklySchedule).where(WeeklySchedule.professional_id == professional_id)
        )
        self.session.add_all(
            WeeklySchedule(
                professional_id=professional_id,
                day_of_week=day_of_week,
                start_time=start_time,
                end_time=end_time,
                is_available=is_available,
            )
            for day_of_week, start_time, end_time, is_available in windows
        )
        await self.session.commit()

        self.invalidate(professional_id)
        logger.info(
            f"Weekly schedule replaced with {len(windows)} windows",
            extra={"professional_id": professional_id},
        )
        return await self.get_schedules(professional_id)

    async def update_schedule(
        self,
        professional_id: str,
        schedule_id: str,
        start_time: time | None = None,
        end_time: time | None = None,
        is_available: bool | None = None,
    ) -> WeeklySchedule:
        result = await self.session.execute(
            select(WeeklySchedule).where(
                WeeklySchedule.id == schedule_id,
                WeeklySchedule.professional_id == professional_id,
            )
        )
        schedule = result.scalar_one_or_none()
        if not schedule:
            raise NotFoundError("Schedule not found", schedule_id=schedule_id)

        validate_window(
            schedule.day_of_week,
            start_time or schedule.start_time,
            end_time or schedule.end_time,
        )

        if start_time is not None:
            schedule.start_time = start_time
        if end_time is not None:
            schedule.end_time = end_time
        if is_available is not None:
            schedule.is_available = is_available

        await self.session.commit()
        await self.session.refresh(schedule)

        self.invalidate(professional_id)
        return schedule

    async def delete_schedule(self, professional_id: str, schedule_id: str) -> None:
        result = await self.session.execute(
            select(WeeklySchedule).where(
                WeeklySchedule.id == schedule_id,
                WeeklySchedule.professional_id == professional_id,
            )
        )
        schedule = result.scalar_one_or_none()
        if not schedule:
            raise NotFoundError("Schedule not found", schedule_id=schedule_id)

        await self.session.delete(schedule)
        await self.session.commit()

        self.invalidate(professional_id)

    # -------------------------------------------------------------------------
    # Breaks and unavailabilities
    # -------------------------------------------------------------------------

    async def create_break(
        self,
        professional_id: str,
        day_of_week: int,
        start_time: time,
        end_time: time,
        type: BreakType | str = BreakType.BREAK,
    ) -> ScheduleBreak:
        """Block a recurring period on a weekday."""
        validate_window(day_of_week, start_time, end_time)
        break_type = self._parse_break_type(type)

        schedule_break = ScheduleBreak(
            professional_id=professional_id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            type=break_type,
        )

        self.session.add(schedule_break)
        await self.session.commit()
        await self.session.refresh(schedule_break)

        self.invalidate(professional_id)
        return schedule_break

    async def get_break(self, professional_id: str, break_id: str) -> ScheduleBreak:
        result = await self.session.execute(
            select(ScheduleBreak).where(
                ScheduleBreak.id == break_id,
                ScheduleBreak.professional_id == professional_id,
            )
        )
        schedule_break = result.scalar_one_or_none()
        if not schedule_break:
            raise NotFoundError("Break not found", break_id=break_id)
        return schedule_break

    async def update_break(
        self,
        professional_id: str,
        break_id: str,
        day_of_week: int | None = None,
        start_time: time | None = None,
        end_time: time | None = None,
        type: BreakType | str | None = None,
    ) -> ScheduleBreak:
        schedule_break = await self.get_break(professional_id, break_id)

        validate_window(
            schedule_break.day_of_week if day_of_week is None else day_of_week,
            start_time or schedule_break.start_time,
            end_time or schedule_break.end_time,
        )

        if day_of_week is not None:
            schedule_break.day_of_week = day_of_week
        if start_time is not None:
            schedule_break.start_time = start_time
        if end_time is not None:
            schedule_break.end_time = end_time
        if type is not None:
            schedule_break.type = self._parse_break_type(type)

        await self.session.commit()
        await self.session.refresh(schedule_break)

        self.invalidate(professional_id)
        return schedule_break

    async def delete_break(self, professional_id: str, break_id: str) -> None:
        schedule_break = await self.get_break(professional_id, break_id)

        await self.session.delete(schedule_break)
        await self.session.commit()

        self.invalidate(professional_id)

    @staticmethod
    def _parse_break_type(value: BreakType | str) -> BreakType:
        try:
            return BreakType(value)
        except ValueError:
            raise BookingValidationError(
                f"Unknown break type: {value}",
                allowed=[t.value for t in BreakType],
            ) from None
