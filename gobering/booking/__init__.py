"""Booking policy: notice windows for client cancellations and reschedules."""

from gobering.booking.policy import (
    CancellationActor,
    CancellationDecision,
    check_cancellation_notice,
    hours_until,
)

__all__ = [
    "CancellationActor",
    "CancellationDecision",
    "check_cancellation_notice",
    "hours_until",
]
