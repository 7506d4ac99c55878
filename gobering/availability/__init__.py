"""Availability engine: bookable slots from schedules, breaks and appointments."""

from gobering.availability.slots import (
    ComputedSlot,
    SlotExclusions,
    compute_slots,
    interval_is_bookable,
    overlaps,
    parse_minutes,
    schedule_weekday,
)

__all__ = [
    "ComputedSlot",
    "SlotExclusions",
    "compute_slots",
    "interval_is_bookable",
    "overlaps",
    "parse_minutes",
    "schedule_weekday",
]
