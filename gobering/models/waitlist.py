"""Waitlist entry model and its lifecycle states."""

from datetime import date, datetime, time
from enum import Enum

from sqlalchemy import Date, DateTime, ForeignKey, Index, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column

from gobering.db.base import Base, TimestampMixin
from gobering.models.scheduling import enum_column


class WaitlistStatus(str, Enum):
    """Lifecycle of a waitlist entry.

    pending -> notified -> fulfilled | expired
    pending | notified -> cancelled
    """

    PENDING = "pending"
    NOTIFIED = "notified"
    FULFILLED = "fulfilled"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_WAITLIST_STATUSES

    def can_transition_to(self, target: "WaitlistStatus") -> bool:
        return target in WAITLIST_TRANSITIONS[self]


TERMINAL_WAITLIST_STATUSES = frozenset({
    WaitlistStatus.FULFILLED,
    WaitlistStatus.EXPIRED,
    WaitlistStatus.CANCELLED,
})

WAITLIST_TRANSITIONS: dict[WaitlistStatus, frozenset[WaitlistStatus]] = {
    WaitlistStatus.PENDING: frozenset({WaitlistStatus.NOTIFIED, WaitlistStatus.CANCELLED}),
    WaitlistStatus.NOTIFIED: frozenset({
        WaitlistStatus.FULFILLED,
        WaitlistStatus.EXPIRED,
        WaitlistStatus.CANCELLED,
    }),
    WaitlistStatus.FULFILLED: frozenset(),
    WaitlistStatus.EXPIRED: frozenset(),
    WaitlistStatus.CANCELLED: frozenset(),
}


class WaitlistEntry(Base, TimestampMixin):
    """Client request for a time range that was full when they asked.

    When a matching slot frees up, the oldest pending entry is offered it
    for ``waitlist_priority_hours`` through a one-click token link.
    """

    __tablename__ = "waitlist_entries"

    professional_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("professionals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    professional_service_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("professional_services.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Client contact details
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str] = mapped_column(String(30), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Preferences
    preferred_date: Mapped[date] = mapped_column(Date, nullable=False)
    preferred_time_start: Mapped[time | None] = mapped_column(Time, nullable=True)
    preferred_time_end: Mapped[time | None] = mapped_column(Time, nullable=True)

    status: Mapped[WaitlistStatus] = mapped_column(
        enum_column(WaitlistStatus),
        default=WaitlistStatus.PENDING,
        nullable=False,
        index=True,
    )
    # Builds the priority booking link
    token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    # Set when notified
    notified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    available_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    available_start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    available_end_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    # Service of the freed slot; cascades re-offer under the same service
    available_service_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("professional_services.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Set when fulfilled
    appointment_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("appointments.id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_waitlist_entries_professional_status", "professional_id", "status"),
    )

    @property
    def has_offer(self) -> bool:
        return (
            self.available_date is not None
            and self.available_start_time is not None
            and self.available_end_time is not None
        )

    def __repr__(self) -> str:
        return f"<WaitlistEntry {self.id[:8]}... {self.preferred_date} status={self.status.value}>"
