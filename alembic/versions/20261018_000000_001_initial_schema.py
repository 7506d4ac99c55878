"""Initial schema: professionals, schedules, appointments, waitlist.

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Create the booking schema."""

    # ========================================================================
    # PROFESSIONALS
    # ========================================================================

    op.create_table(
        "professionals",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("profession", sa.String(100), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=True),
        sa.Column("appointment_duration", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("buffer_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cancellation_delay_hours", sa.Integer(), nullable=False, server_default="24"),
        sa.Column("waitlist_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("waitlist_priority_hours", sa.Integer(), nullable=False, server_default="24"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_professionals"),
        sa.UniqueConstraint("email", name="uq_professionals_email"),
    )
    op.create_index("ix_professionals_created_at", "professionals", ["created_at"])

    op.create_table(
        "professional_services",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("professional_id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("buffer_minutes", sa.Integer(), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_visible", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["professional_id"],
            ["professionals.id"],
            name="fk_professional_services_professional_id_professionals",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_professional_services"),
    )
    op.create_index(
        "ix_professional_services_professional_id",
        "professional_services",
        ["professional_id"],
    )
    op.create_index(
        "ix_professional_services_created_at",
        "professional_services",
        ["created_at"],
    )

    # ========================================================================
    # WEEKLY SCHEDULES AND BREAKS
    # ========================================================================

    op.create_table(
        "weekly_schedules",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("professional_id", sa.String(36), nullable=False),
        # 0=Sunday ... 6=Saturday
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["professional_id"],
            ["professionals.id"],
            name="fk_weekly_schedules_professional_id_professionals",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_weekly_schedules"),
    )
    op.create_index("ix_weekly_schedules_professional_id", "weekly_schedules", ["professional_id"])
    op.create_index("ix_weekly_schedules_created_at", "weekly_schedules", ["created_at"])
    op.create_index(
        "ix_weekly_schedules_professional_day",
        "weekly_schedules",
        ["professional_id", "day_of_week"],
    )

    op.create_table(
        "schedule_breaks",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("professional_id", sa.String(36), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        # break | unavailability
        sa.Column("type", sa.String(20), nullable=False, server_default="break"),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["professional_id"],
            ["professionals.id"],
            name="fk_schedule_breaks_professional_id_professionals",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_schedule_breaks"),
    )
    op.create_index("ix_schedule_breaks_professional_id", "schedule_breaks", ["professional_id"])
    op.create_index("ix_schedule_breaks_created_at", "schedule_breaks", ["created_at"])
    op.create_index(
        "ix_schedule_breaks_professional_day",
        "schedule_breaks",
        ["professional_id", "day_of_week"],
    )

    # ========================================================================
    # APPOINTMENTS
    # ========================================================================

    op.create_table(
        "appointments",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("professional_id", sa.String(36), nullable=False),
        sa.Column("patient_id", sa.String(36), nullable=True),
        sa.Column("professional_service_id", sa.String(36), nullable=True),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        # draft | pending | confirmed | cancelled | completed
        sa.Column("status", sa.String(20), nullable=False, server_default="confirmed"),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("cancellation_token", sa.String(64), nullable=True),
        sa.Column("cancelled_by", sa.String(20), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rescheduled_from_id", sa.String(36), nullable=True),
        sa.Column("rescheduled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["professional_id"],
            ["professionals.id"],
            name="fk_appointments_professional_id_professionals",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["professional_service_id"],
            ["professional_services.id"],
            name="fk_appointments_professional_service_id_professional_services",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["rescheduled_from_id"],
            ["appointments.id"],
            name="fk_appointments_rescheduled_from_id_appointments",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_appointments"),
        sa.UniqueConstraint("cancellation_token", name="uq_appointments_cancellation_token"),
    )
    op.create_index("ix_appointments_professional_id", "appointments", ["professional_id"])
    op.create_index("ix_appointments_appointment_date", "appointments", ["appointment_date"])
    op.create_index("ix_appointments_status", "appointments", ["status"])
    op.create_index("ix_appointments_created_at", "appointments", ["created_at"])
    op.create_index(
        "ix_appointments_professional_date",
        "appointments",
        ["professional_id", "appointment_date"],
    )
    # Double-booking guard: one live appointment per start time
    op.create_index(
        "uq_appointments_active_slot",
        "appointments",
        ["professional_id", "appointment_date", "start_time"],
        unique=True,
        postgresql_where=sa.text("status != 'cancelled'"),
        sqlite_where=sa.text("status != 'cancelled'"),
    )

    # ========================================================================
    # MATERIALIZED TIME SLOTS
    # ========================================================================

    op.create_table(
        "time_slots",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("professional_id", sa.String(36), nullable=False),
        sa.Column("slot_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("is_booked", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["professional_id"],
            ["professionals.id"],
            name="fk_time_slots_professional_id_professionals",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_time_slots"),
    )
    op.create_index("ix_time_slots_professional_id", "time_slots", ["professional_id"])
    op.create_index("ix_time_slots_created_at", "time_slots", ["created_at"])
    op.create_index(
        "ix_time_slots_professional_date",
        "time_slots",
        ["professional_id", "slot_date"],
    )

    # ========================================================================
    # WAITLIST
    # ========================================================================

    op.create_table(
        "waitlist_entries",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("professional_id", sa.String(36), nullable=False),
        sa.Column("professional_service_id", sa.String(36), nullable=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(30), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("preferred_date", sa.Date(), nullable=False),
        sa.Column("preferred_time_start", sa.Time(), nullable=True),
        sa.Column("preferred_time_end", sa.Time(), nullable=True),
        # pending | notified | fulfilled | expired | cancelled
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("token", sa.String(64), nullable=False),
        sa.Column("notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("available_date", sa.Date(), nullable=True),
        sa.Column("available_start_time", sa.Time(), nullable=True),
        sa.Column("available_end_time", sa.Time(), nullable=True),
        sa.Column("appointment_id", sa.String(36), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["professional_id"],
            ["professionals.id"],
            name="fk_waitlist_entries_professional_id_professionals",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["professional_service_id"],
            ["professional_services.id"],
            name="fk_waitlist_entries_professional_service_id_professional_services",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["appointment_id"],
            ["appointments.id"],
            name="fk_waitlist_entries_appointment_id_appointments",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_waitlist_entries"),
        sa.UniqueConstraint("token", name="uq_waitlist_entries_token"),
    )
    op.create_index("ix_waitlist_entries_professional_id", "waitlist_entries", ["professional_id"])
    op.create_index("ix_waitlist_entries_status", "waitlist_entries", ["status"])
    op.create_index("ix_waitlist_entries_created_at", "waitlist_entries", ["created_at"])
    op.create_index(
        "ix_waitlist_entries_professional_status",
        "waitlist_entries",
        ["professional_id", "status"],
    )


def downgrade() -> None:
    """Drop the booking schema."""
    op.drop_table("waitlist_entries")
    op.drop_table("time_slots")
    op.drop_index("uq_appointments_active_slot", table_name="appointments")
    op.drop_table("appointments")
    op.drop_table("schedule_breaks")
    op.drop_table("weekly_schedules")
    op.drop_table("professional_services")
    op.drop_table("professionals")
