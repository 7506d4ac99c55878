"""Persistence-backed booking and waitlist services."""

from gobering.services.appointments import AppointmentService
from gobering.services.availability import AvailabilityService
from gobering.services.exceptions import (
    BookingError,
    BookingValidationError,
    CancellationNoticeError,
    InvalidTransitionError,
    NotFoundError,
    SlotConflictError,
    TokenExpiredError,
    WaitlistDisabledError,
)
from gobering.services.notifications import (
    EmailProvider,
    NotificationProvider,
    SMSProvider,
    WaitlistNotifier,
)
from gobering.services.waitlist import WaitlistService

__all__ = [
    "AppointmentService",
    "AvailabilityService",
    "WaitlistService",
    "WaitlistNotifier",
    "NotificationProvider",
    "EmailProvider",
    "SMSProvider",
    "BookingError",
    "BookingValidationError",
    "CancellationNoticeError",
    "InvalidTransitionError",
    "NotFoundError",
    "SlotConflictError",
    "TokenExpiredError",
    "WaitlistDisabledError",
]
