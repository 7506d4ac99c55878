"""Professional and service models."""

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gobering.db.base import Base, TimestampMixin


class Professional(Base, TimestampMixin):
    """Health professional offering bookable time.

    Carries the booking settings the availability engine and the waitlist
    read: default duration/buffer, minimum cancellation notice, and the
    waitlist priority window.
    """

    __tablename__ = "professionals"

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    profession: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # IANA zone name, e.g. "America/Toronto"
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Default appointment duration in minutes (used when no service is chosen)
    appointment_duration: Mapped[int] = mapped_column(
        Integer,
        default=30,
        nullable=False,
    )
    # Gap after each slot in minutes
    buffer_minutes: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    # Minimum notice (hours) for client-initiated cancellation/reschedule
    cancellation_delay_hours: Mapped[int] = mapped_column(
        Integer,
        default=24,
        nullable=False,
    )
    waitlist_enabled: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    # Length of the exclusive booking window offered to a notified entry
    waitlist_priority_hours: Mapped[int] = mapped_column(
        Integer,
        default=24,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    services: Mapped[list["ProfessionalService"]] = relationship(
        "ProfessionalService",
        back_populates="professional",
        cascade="all, delete-orphan",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Professional {self.full_name}>"


class ProfessionalService(Base, TimestampMixin):
    """Service offered by a professional, with its own duration."""

    __tablename__ = "professional_services"

    professional_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("professionals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    # None inherits the professional's buffer
    buffer_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Price in cents
    price_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    professional: Mapped["Professional"] = relationship(
        "Professional",
        back_populates="services",
    )

    def __repr__(self) -> str:
        return f"<ProfessionalService {self.name} {self.duration_minutes}min>"
