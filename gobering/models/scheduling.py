"""Scheduling models: weekly hours, breaks, appointments, materialized slots."""

from datetime import date, datetime, time
from enum import Enum

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from gobering.db.base import Base, TimestampMixin


def enum_column(enum_cls: type[Enum], length: int = 20) -> SAEnum:
    """String-backed enum column that loads values as enum members."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class BreakType(str, Enum):
    """Kind of recurring blocked time."""

    BREAK = "break"
    UNAVAILABILITY = "unavailability"


class AppointmentStatus(str, Enum):
    """Status of an appointment."""

    DRAFT = "draft"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class WeeklySchedule(Base, TimestampMixin):
    """Recurring open hours for one weekday.

    Several rows per day are allowed (split shifts). Rows are overwritten in
    place when the professional edits their hours.
    """

    __tablename__ = "weekly_schedules"

    professional_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("professionals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # 0=Sunday, 1=Monday, ..., 6=Saturday
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    is_available: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_weekly_schedules_professional_day", "professional_id", "day_of_week"),
    )

    def __repr__(self) -> str:
        return f"<WeeklySchedule {self.day_of_week} {self.start_time}-{self.end_time}>"


class ScheduleBreak(Base, TimestampMixin):
    """Recurring break or unavailability subtracted from the weekly hours."""

    __tablename__ = "schedule_breaks"

    professional_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("professionals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    type: Mapped[BreakType] = mapped_column(
        enum_column(BreakType),
        default=BreakType.BREAK,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_schedule_breaks_professional_day", "professional_id", "day_of_week"),
    )

    def __repr__(self) -> str:
        return f"<ScheduleBreak {self.type.value} {self.day_of_week} {self.start_time}-{self.end_time}>"


class Appointment(Base, TimestampMixin):
    """Booked interval with a professional.

    Non-cancelled appointments occupy their interval; the partial unique
    index rejects two live appointments starting at the same time.
    """

    __tablename__ = "appointments"

    professional_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("professionals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Patient records are managed elsewhere
    patient_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    professional_service_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("professional_services.id", ondelete="SET NULL"),
        nullable=True,
    )
    appointment_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    status: Mapped[AppointmentStatus] = mapped_column(
        enum_column(AppointmentStatus),
        default=AppointmentStatus.CONFIRMED,
        nullable=False,
        index=True,
    )

    # Client contact details
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Link token for client cancel/reschedule, cleared once used
    cancellation_token: Mapped[str | None] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
    )
    cancelled_by: Mapped[str | None] = mapped_column(String(20), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    rescheduled_from_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("appointments.id", ondelete="SET NULL"),
        nullable=True,
    )
    rescheduled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_appointments_professional_date", "professional_id", "appointment_date"),
        Index(
            "uq_appointments_active_slot",
            "professional_id",
            "appointment_date",
            "start_time",
            unique=True,
            postgresql_where=text("status != 'cancelled'"),
            sqlite_where=text("status != 'cancelled'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Appointment {self.appointment_date} {self.start_time} status={self.status.value}>"


class TimeSlot(Base, TimestampMixin):
    """Materialized engine output.

    A cache only: schedule, breaks and appointments remain the source of
    truth and rows are rebuilt by ``AvailabilityService.materialize_time_slots``.
    """

    __tablename__ = "time_slots"

    professional_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("professionals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    slot_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    is_booked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("ix_time_slots_professional_date", "professional_id", "slot_date"),
    )

    def __repr__(self) -> str:
        return f"<TimeSlot {self.slot_date} {self.start_time}-{self.end_time} booked={self.is_booked}>"
