"""Database models for Gobering."""

from gobering.models.professional import Professional, ProfessionalService
from gobering.models.scheduling import (
    Appointment,
    AppointmentStatus,
    BreakType,
    ScheduleBreak,
    TimeSlot,
    WeeklySchedule,
)
from gobering.models.waitlist import WaitlistEntry, WaitlistStatus

__all__ = [
    # Professionals
    "Professional",
    "ProfessionalService",
    # Scheduling
    "WeeklySchedule",
    "ScheduleBreak",
    "BreakType",
    "Appointment",
    "AppointmentStatus",
    "TimeSlot",
    # Waitlist
    "WaitlistEntry",
    "WaitlistStatus",
]
