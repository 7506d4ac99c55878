"""Slot computation from weekly hours, breaks and booked appointments.

Pure functions with no I/O. Callers pass rows (ORM objects or anything with
the same attributes) and get back a deterministic list of slots.

Rules:
- A day's candidate slots come from its enabled weekly windows, walked in
  ``duration + buffer`` steps; a slot that would run past the window end is
  dropped.
- A slot is unavailable when it overlaps (half-open) a break/unavailability
  of that weekday, a non-cancelled appointment on that date, or an interval
  held for a notified waitlist entry.
- A draft appointment stops blocking once it is older than the draft cutoff.
- A day without an enabled window yields no slots.
- Time strings are parsed forgivingly: anything malformed counts as 00:00.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Protocol

from gobering.utils.time import ensure_utc

MINUTES_PER_DAY = 24 * 60


class ScheduleLike(Protocol):
    day_of_week: int
    start_time: Any
    end_time: Any
    is_available: bool


class BreakLike(Protocol):
    day_of_week: int
    start_time: Any
    end_time: Any


class AppointmentLike(Protocol):
    id: str
    appointment_date: date
    start_time: Any
    end_time: Any
    status: Any


class HoldLike(Protocol):
    available_date: date
    available_start_time: Any
    available_end_time: Any


@dataclass(frozen=True)
class SlotExclusions:
    """Things to leave out of a slot query.

    Attributes:
        appointment_id: Appointment ignored when testing for overlap
            (the one being rescheduled)
        slot_date: Date of a slot to hide from the results
        slot_time: Start time of that slot
        current_professional_id: Professional making the request; the
            slot_date/slot_time suppression only applies when it matches
            the professional being queried
    """

    appointment_id: str | None = None
    slot_date: date | None = None
    slot_time: time | str | None = None
    current_professional_id: str | None = None


@dataclass(frozen=True)
class ComputedSlot:
    """One candidate interval of a professional's day."""

    professional_id: str
    slot_date: date
    start_time: time
    end_time: time
    is_available: bool

    @property
    def slot_id(self) -> str:
        return f"{self.professional_id}-{self.slot_date.isoformat()}-{self.start_time.strftime('%H:%M')}"


def parse_minutes(value: Any) -> int:
    """Minutes since midnight for a ``time`` or an "HH:MM[:SS]" string.

    Malformed or missing values give 0 instead of raising.
    """
    if isinstance(value, time):
        return value.hour * 60 + value.minute

    if not isinstance(value, str):
        return 0

    parts = value.strip().split(":")
    if len(parts) < 2:
        return 0

    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError:
        return 0

    if not (0 <= hours <= 24 and 0 <= minutes < 60):
        return 0

    return min(hours * 60 + minutes, MINUTES_PER_DAY)


def minutes_to_time(minutes: int) -> time:
    minutes = max(0, min(minutes, MINUTES_PER_DAY - 1))
    return time(minutes // 60, minutes % 60)


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Half-open interval intersection; touching endpoints do not overlap."""
    return a_start < b_end and a_end > b_start


def schedule_weekday(day: date) -> int:
    """Weekday numbered 0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7


def week_start(day: date) -> date:
    """Sunday opening the week that contains ``day``."""
    return day - timedelta(days=schedule_weekday(day))


def is_past_day_this_week(day: date, today: date) -> bool:
    """Whole-day check: earlier than today but inside today's week."""
    return day < today and week_start(day) == week_start(today)


def occupies_time(
    status: Any,
    created_at: datetime | None = None,
    draft_cutoff: datetime | None = None,
) -> bool:
    """Whether an appointment in ``status`` blocks its interval.

    Cancelled appointments never do. A draft created at or before
    ``draft_cutoff`` has been abandoned and no longer does either.
    """
    value = str(getattr(status, "value", status))
    if value == "cancelled":
        return False
    if value == "draft" and draft_cutoff is not None and created_at is not None:
        return ensure_utc(created_at) > draft_cutoff
    return True


def _status_blocks(
    appointment: AppointmentLike,
    exclude_appointment_id: str | None,
    draft_cutoff: datetime | None,
) -> bool:
    if exclude_appointment_id and appointment.id == exclude_appointment_id:
        return False
    return occupies_time(
        appointment.status, getattr(appointment, "created_at", None), draft_cutoff
    )


def _day_breaks(breaks: Iterable[BreakLike], weekday: int) -> list[tuple[int, int]]:
    return [
        (parse_minutes(b.start_time), parse_minutes(b.end_time))
        for b in breaks
        if b.day_of_week == weekday
    ]


def _day_appointments(
    appointments: Iterable[AppointmentLike],
    day: date,
    exclude_appointment_id: str | None,
    draft_cutoff: datetime | None,
) -> list[tuple[int, int]]:
    return [
        (parse_minutes(a.start_time), parse_minutes(a.end_time))
        for a in appointments
        if a.appointment_date == day and _status_blocks(a, exclude_appointment_id, draft_cutoff)
    ]


def _day_holds(holds: Iterable[HoldLike], day: date) -> list[tuple[int, int]]:
    return [
        (parse_minutes(h.available_start_time), parse_minutes(h.available_end_time))
        for h in holds
        if h.available_date == day
    ]


def _day_windows(schedules: Iterable[ScheduleLike], weekday: int) -> list[tuple[int, int]]:
    windows = [
        (parse_minutes(s.start_time), parse_minutes(s.end_time))
        for s in schedules
        if s.day_of_week == weekday and s.is_available
    ]
    return sorted(windows)


def _is_suppressed(
    professional_id: str,
    day: date,
    start: int,
    exclusions: SlotExclusions | None,
) -> bool:
    if exclusions is None or exclusions.slot_date is None or exclusions.slot_time is None:
        return False

    # Display allowance for the professional moving their own appointment
    if exclusions.current_professional_id != professional_id:
        return False

    return exclusions.slot_date == day and parse_minutes(exclusions.slot_time) == start


def compute_slots(
    professional_id: str,
    from_date: date,
    to_date: date,
    duration_minutes: int,
    schedules: Iterable[ScheduleLike],
    breaks: Iterable[BreakLike] = (),
    appointments: Iterable[AppointmentLike] = (),
    exclusions: SlotExclusions | None = None,
    today: date | None = None,
    buffer_minutes: int = 0,
    holds: Iterable[HoldLike] = (),
    draft_cutoff: datetime | None = None,
) -> list[ComputedSlot]:
    """Compute every candidate slot in ``[from_date, to_date]``.

    Args:
        professional_id: Professional being queried
        from_date: First calendar date (inclusive)
        to_date: Last calendar date (inclusive)
        duration_minutes: Length of each slot
        schedules: Weekly windows (only ``is_available`` rows are used)
        breaks: Recurring breaks/unavailabilities
        appointments: Appointments in the range; cancelled ones are ignored
        exclusions: Appointment to ignore and slot to hide (see SlotExclusions)
        today: When given, earlier days of the current week are skipped
        buffer_minutes: Gap added between consecutive slot starts
        holds: Intervals reserved for notified waitlist entries
        draft_cutoff: Drafts created at or before this instant are ignored

    Returns:
        Slots ordered by date, window and start time, each flagged available
        or not. Empty when there is no schedule or the duration is not positive.
    """
    if duration_minutes <= 0 or from_date > to_date:
        return []

    schedules = list(schedules)
    breaks = list(breaks)
    appointments = list(appointments)
    holds = list(holds)
    if not schedules:
        return []

    step = duration_minutes + max(buffer_minutes, 0)
    exclude_appointment_id = exclusions.appointment_id if exclusions else None

    slots: list[ComputedSlot] = []
    day = from_date
    while day <= to_date:
        if today is not None and is_past_day_this_week(day, today):
            day += timedelta(days=1)
            continue

        weekday = schedule_weekday(day)
        windows = _day_windows(schedules, weekday)
        if windows:
            day_breaks = _day_breaks(breaks, weekday)
            booked = _day_appointments(appointments, day, exclude_appointment_id, draft_cutoff)
            booked += _day_holds(holds, day)

            for window_start, window_end in windows:
                start = window_start
                while start + duration_minutes <= window_end:
                    end = start + duration_minutes

                    if not _is_suppressed(professional_id, day, start, exclusions):
                        blocked = any(overlaps(start, end, b0, b1) for b0, b1 in day_breaks) or any(
                            overlaps(start, end, a0, a1) for a0, a1 in booked
                        )
                        slots.append(
                            ComputedSlot(
                                professional_id=professional_id,
                                slot_date=day,
                                start_time=minutes_to_time(start),
                                end_time=minutes_to_time(end),
                                is_available=not blocked,
                            )
                        )

                    start += step

        day += timedelta(days=1)

    return slots


def overlapping_appointments(
    day: date,
    start: Any,
    end: Any,
    appointments: Iterable[AppointmentLike],
    exclude_appointment_id: str | None = None,
    draft_cutoff: datetime | None = None,
) -> list[AppointmentLike]:
    """Blocking appointments on ``day`` overlapping ``[start, end)``."""
    start_min, end_min = parse_minutes(start), parse_minutes(end)
    return [
        a
        for a in appointments
        if a.appointment_date == day
        and _status_blocks(a, exclude_appointment_id, draft_cutoff)
        and overlaps(start_min, end_min, parse_minutes(a.start_time), parse_minutes(a.end_time))
    ]


def interval_is_bookable(
    day: date,
    start: Any,
    end: Any,
    schedules: Iterable[ScheduleLike],
    breaks: Iterable[BreakLike] = (),
    appointments: Iterable[AppointmentLike] = (),
    exclude_appointment_id: str | None = None,
    holds: Iterable[HoldLike] = (),
    draft_cutoff: datetime | None = None,
) -> bool:
    """Whether an arbitrary interval could be booked right now.

    The interval must sit inside one enabled window of its weekday and
    overlap no break, no blocking appointment and no waitlist hold.
    """
    start_min, end_min = parse_minutes(start), parse_minutes(end)
    if start_min >= end_min:
        return False

    weekday = schedule_weekday(day)
    inside_window = any(
        w_start <= start_min and end_min <= w_end
        for w_start, w_end in _day_windows(schedules, weekday)
    )
    if not inside_window:
        return False

    if any(overlaps(start_min, end_min, b0, b1) for b0, b1 in _day_breaks(breaks, weekday)):
        return False

    if any(overlaps(start_min, end_min, h0, h1) for h0, h1 in _day_holds(holds, day)):
        return False

    return not overlapping_appointments(
        day, start, end, appointments, exclude_appointment_id, draft_cutoff
    )
