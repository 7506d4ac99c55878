"""Domain errors raised by the booking and waitlist services.

Each error carries a machine-readable ``reason`` and free-form context so
the API layer can render ``{"detail": {"reason", "message", ...}}``.
"""

from typing import Any


class BookingError(Exception):
    """Base exception for booking and waitlist failures."""

    reason = "booking_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"reason": self.reason, "message": self.message, **self.context}


class BookingValidationError(BookingError):
    """Raised when request fields are missing or inconsistent."""

    reason = "validation_error"


class SlotConflictError(BookingError):
    """Raised when the requested interval is already taken."""

    reason = "slot_conflict"


class CancellationNoticeError(BookingError):
    """Raised when a client change falls inside the notice window."""

    reason = "cancellation_notice"


class WaitlistDisabledError(BookingError):
    """Raised when the professional does not accept waitlist requests."""

    reason = "waitlist_disabled"


class NotFoundError(BookingError):
    """Raised when a professional, appointment or token is unknown."""

    reason = "not_found"


class TokenExpiredError(BookingError):
    """Raised when a priority window has closed."""

    reason = "token_expired"


class InvalidTransitionError(BookingError):
    """Raised when a status change is not allowed from the current state."""

    reason = "invalid_transition"
