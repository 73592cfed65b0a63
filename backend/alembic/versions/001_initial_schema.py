"""Initial schema: users, companies, events, slots, bookings, ledgers and logs.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="student"),
        sa.Column("is_deprioritized", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("role IN ('student', 'company', 'admin')", name="check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Companies table
    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_companies_id", "companies", ["id"])

    # Events table
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("interview_duration_minutes", sa.Integer(), nullable=False, server_default=sa.text("15")),
        sa.Column("buffer_minutes", sa.Integer(), nullable=False, server_default=sa.text("5")),
        sa.Column("slots_per_time", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("phase_mode", sa.String(20), nullable=False, server_default="date-based"),
        sa.Column("current_phase", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("phase_version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("phase1_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("phase1_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("phase2_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("phase2_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("phase1_max_bookings", sa.Integer(), nullable=False, server_default=sa.text("3")),
        sa.Column("phase2_max_bookings", sa.Integer(), nullable=False, server_default=sa.text("6")),
        *_timestamps(),
        sa.CheckConstraint("interview_duration_minutes > 0", name="check_event_duration_positive"),
        sa.CheckConstraint("buffer_minutes >= 0", name="check_event_buffer_non_negative"),
        sa.CheckConstraint("slots_per_time > 0", name="check_event_capacity_positive"),
        sa.CheckConstraint("phase_mode IN ('date-based', 'manual')", name="check_event_phase_mode"),
        sa.CheckConstraint("current_phase IN (0, 1, 2, 3)", name="check_event_phase_value"),
        sa.CheckConstraint("phase1_max_bookings >= 0", name="check_phase1_ceiling_non_negative"),
        # The phase 2 ceiling counts phase 1 bookings too, so it can't be lower
        sa.CheckConstraint("phase2_max_bookings >= phase1_max_bookings", name="check_phase2_ceiling_cumulative"),
        sa.CheckConstraint("phase1_start < phase1_end", name="check_phase1_window"),
        sa.CheckConstraint("phase1_end <= phase2_start", name="check_phase1_before_phase2"),
        sa.CheckConstraint("phase2_start < phase2_end", name="check_phase2_window"),
    )
    op.create_index("ix_events_id", "events", ["id"])
    # The ticker scans active date-based events every tick
    op.create_index("ix_events_active_mode", "events", ["is_active", "phase_mode"])

    # Offers table
    op.create_table(
        "offers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_offers_id", "offers", ["id"])
    op.create_index("ix_offers_company_id", "offers", ["company_id"])
    op.create_index("ix_offers_event_id", "offers", ["event_id"])

    # Event participants table
    op.create_table(
        "event_participants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.UniqueConstraint("event_id", "company_id", name="uq_event_participant"),
    )
    op.create_index("ix_event_participants_id", "event_participants", ["id"])
    op.create_index("ix_event_participants_event_id", "event_participants", ["event_id"])
    op.create_index("ix_event_participants_company_id", "event_participants", ["company_id"])

    # Time ranges table
    op.create_table(
        "time_ranges",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("interview_duration_minutes", sa.Integer(), nullable=True),
        sa.Column("buffer_minutes", sa.Integer(), nullable=True),
        sa.Column("slots_per_time", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("start_time < end_time", name="check_time_range_order"),
    )
    op.create_index("ix_time_ranges_id", "time_ranges", ["id"])
    op.create_index("ix_time_ranges_event_id", "time_ranges", ["event_id"])
    op.create_index("ix_time_ranges_event_day", "time_ranges", ["event_id", "day"])

    # Slots table
    op.create_table(
        "slots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("time_range_id", sa.Integer(), sa.ForeignKey("time_ranges.id", ondelete="SET NULL"), nullable=True),
        sa.Column("offer_id", sa.Integer(), sa.ForeignKey("offers.id", ondelete="SET NULL"), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        # OPTIMISTIC LOCKING: per-slot compare-and-swap key
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        # Makes generation idempotent: one slot per company per start time
        sa.UniqueConstraint("event_id", "company_id", "start_time", name="uq_slot_company_start"),
        sa.CheckConstraint("capacity > 0", name="check_slot_capacity_positive"),
        sa.CheckConstraint("start_time < end_time", name="check_slot_time_order"),
    )
    op.create_index("ix_slots_id", "slots", ["id"])
    op.create_index("ix_slots_event_id", "slots", ["event_id"])
    op.create_index("ix_slots_company_id", "slots", ["company_id"])
    op.create_index("ix_slots_time_range_id", "slots", ["time_range_id"])
    # Availability listing: company's upcoming slots in start order
    op.create_index("ix_slots_company_event_start", "slots", ["company_id", "event_id", "start_time"])

    # Bookings table
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("slot_id", sa.Integer(), sa.ForeignKey("slots.id"), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("offer_id", sa.Integer(), sa.ForeignKey("offers.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="confirmed"),
        sa.Column("booking_phase", sa.Integer(), nullable=False),
        sa.Column("notes", sa.String(1000), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("cancel_reason", sa.String(255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('confirmed', 'cancelled')", name="check_booking_status"),
        sa.CheckConstraint("booking_phase IN (1, 2)", name="check_booking_phase"),
        sa.CheckConstraint(
            "(status = 'cancelled' AND cancelled_at IS NOT NULL) OR "
            "(status = 'confirmed' AND cancelled_at IS NULL)",
            name="check_cancel_fields_consistent",
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_student_id", "bookings", ["student_id"])
    op.create_index("ix_bookings_slot_id", "bookings", ["slot_id"])
    op.create_index("ix_bookings_event_id", "bookings", ["event_id"])
    # Last line of defence against double-booking: one confirmed row per student per slot
    op.create_index(
        "uq_confirmed_student_slot",
        "bookings",
        ["student_id", "slot_id"],
        unique=True,
        postgresql_where=sa.text("status = 'confirmed'"),
        sqlite_where=sa.text("status = 'confirmed'"),
    )
    # Limit check: COUNT confirmed bookings of a student in an event
    op.create_index("ix_bookings_student_event_status", "bookings", ["student_id", "event_id", "status"])
    # Capacity check: COUNT confirmed bookings of a slot
    op.create_index("ix_bookings_slot_status", "bookings", ["slot_id", "status"])

    # Student ledgers table
    op.create_table(
        "student_booking_ledgers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        # OPTIMISTIC LOCKING: per-student compare-and-swap key, shared by all events
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.UniqueConstraint("student_id", name="uq_student_ledger"),
    )
    op.create_index("ix_student_booking_ledgers_id", "student_booking_ledgers", ["id"])

    # Booking attempts table (no foreign keys: rows outlive slots and events)
    op.create_table(
        "booking_attempts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("student_id", sa.Integer(), nullable=True),
        sa.Column("slot_id", sa.Integer(), nullable=True),
        sa.Column("event_id", sa.Integer(), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("error_code", sa.String(50), nullable=True),
        sa.Column("error_message", sa.String(500), nullable=True),
        sa.Column("booking_phase", sa.Integer(), nullable=True),
        sa.Column("student_booking_count", sa.Integer(), nullable=True),
        sa.Column("slot_available_capacity", sa.Integer(), nullable=True),
        sa.Column("retries", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("response_time_ms", sa.Integer(), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_booking_attempts_id", "booking_attempts", ["id"])
    op.create_index("ix_booking_attempts_student_id", "booking_attempts", ["student_id"])
    op.create_index("ix_booking_attempts_slot_id", "booking_attempts", ["slot_id"])
    op.create_index("ix_booking_attempts_event_id", "booking_attempts", ["event_id"])

    # Failed login attempts table
    op.create_table(
        "failed_login_attempts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("identity", sa.String(255), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=False),
        sa.Column("attempt_time", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_failed_login_attempts_id", "failed_login_attempts", ["id"])
    # Sliding-window count per (identity, origin)
    op.create_index(
        "ix_failed_login_identity_ip_time",
        "failed_login_attempts",
        ["identity", "ip_address", "attempt_time"],
    )


def downgrade() -> None:
    op.drop_table("failed_login_attempts")
    op.drop_table("booking_attempts")
    op.drop_table("student_booking_ledgers")
    op.drop_table("bookings")
    op.drop_table("slots")
    op.drop_table("time_ranges")
    op.drop_table("event_participants")
    op.drop_table("offers")
    op.drop_table("events")
    op.drop_table("companies")
    op.drop_table("users")
