"""Cancellation and rescheduling notice policy.

Clients can cancel or move an appointment through their link only while
the appointment is at least ``cancellation_delay_hours`` away. Professionals
are not bound by the notice window.
"""

from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum

from gobering.utils.time import ensure_utc, local_datetime, utc_now

# Professional default when nothing is configured
DEFAULT_CANCELLATION_DELAY_HOURS = 24


class CancellationActor(str, Enum):
    """Who cancelled an appointment."""

    CLIENT = "client"
    PROFESSIONAL = "professional"
    # Abandoned drafts retired by a later booking
    SYSTEM = "system"


@dataclass
class CancellationDecision:
    """Policy decision for a cancel/reschedule request.

    Attributes:
        allowed: Whether the change is permitted
        required_hours: Minimum notice the professional asks for
        remaining_hours: Hours left before the appointment starts
        message: Human-readable explanation
    """

    allowed: bool
    required_hours: int
    remaining_hours: float
    message: str


def hours_until(
    appointment_date: date,
    start_time: time,
    zone_name: str | None,
    now: datetime | None = None,
) -> float:
    """Hours from ``now`` until the appointment starts (negative if past)."""
    starts_at = local_datetime(appointment_date, start_time, zone_name)
    current = ensure_utc(now) if now else utc_now()
    return (starts_at - current).total_seconds() / 3600


def check_cancellation_notice(
    appointment_date: date,
    start_time: time,
    cancellation_delay_hours: int | None,
    zone_name: str | None = None,
    now: datetime | None = None,
    actor: CancellationActor = CancellationActor.CLIENT,
) -> CancellationDecision:
    """Check whether a cancel/reschedule respects the notice window.

    Args:
        appointment_date: Local date of the appointment
        start_time: Local start time of the appointment
        cancellation_delay_hours: Professional's minimum notice
        zone_name: Professional's timezone
        now: Current instant (defaults to utc now)
        actor: Professionals bypass the window

    Returns:
        CancellationDecision with the numbers used to decide

    Examples:
        An appointment 30 hours away with a 24 hour notice is allowed;
        the same appointment 10 hours away is not.
    """
    required = (
        DEFAULT_CANCELLATION_DELAY_HOURS
        if cancellation_delay_hours is None
        else max(cancellation_delay_hours, 0)
    )
    remaining = hours_until(appointment_date, start_time, zone_name, now)

    if actor == CancellationActor.PROFESSIONAL:
        return CancellationDecision(
            allowed=True,
            required_hours=required,
            remaining_hours=remaining,
            message="Professionals may cancel at any time.",
        )

    if remaining >= required:
        return CancellationDecision(
            allowed=True,
            required_hours=required,
            remaining_hours=remaining,
            message="Your appointment can be changed.",
        )

    return CancellationDecision(
        allowed=False,
        required_hours=required,
        remaining_hours=remaining,
        message=(
            f"Appointments can only be changed online at least {required} hours "
            "in advance. Please contact the professional directly."
        ),
    )
