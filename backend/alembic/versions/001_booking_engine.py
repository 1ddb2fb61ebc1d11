# backend/alembic/versions/001_booking_engine.py
"""Tutor schedules and bookings

Revision ID: 001_booking_engine
Revises:
Create Date: 2024-09-01 00:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_booking_engine"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CLASS_TYPES = "'online','offline'"
BOOKING_STATUSES = "'pending','accepted','declined','expired','cancelled','completed'"


def upgrade() -> None:
    """Create tutor schedule and booking tables."""
    bind = op.get_bind()
    is_postgres = bind is not None and bind.dialect.name == "postgresql"

    op.create_table(
        "tutor_schedules",
        sa.Column("tutor_id", sa.String(64), primary_key=True),
        sa.Column("timezone", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "tutor_schedule_slots",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "tutor_id",
            sa.String(64),
            sa.ForeignKey("tutor_schedules.tutor_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("class_type", sa.String(20), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="check_day_of_week_range"),
        sa.CheckConstraint("duration_minutes > 0", name="check_slot_duration_positive"),
        sa.CheckConstraint(f"class_type IN ({CLASS_TYPES})", name="class_type"),
    )
    op.create_index("ix_tutor_schedule_slots_tutor_id", "tutor_schedule_slots", ["tutor_id"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("code", sa.String(20), nullable=False, unique=True),
        sa.Column("tutor_id", sa.String(64), nullable=False),
        sa.Column("student_id", sa.String(64), nullable=False),
        sa.Column("course_id", sa.String(64), nullable=False),
        sa.Column("class_type", sa.String(20), nullable=False),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("notes_tutor", sa.Text(), nullable=True),
        sa.Column("notes_student", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by_id", sa.String(64), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expiry_reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("session_reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("duration_minutes > 0", name="check_duration_positive"),
        sa.CheckConstraint("starts_at < ends_at", name="check_interval_order"),
        sa.CheckConstraint(
            "expired_at IS NULL OR expired_at <= starts_at", name="check_expiry_before_start"
        ),
        sa.CheckConstraint(f"class_type IN ({CLASS_TYPES})", name="class_type"),
        sa.CheckConstraint(f"status IN ({BOOKING_STATUSES})", name="booking_status"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_tutor_id", "bookings", ["tutor_id"])
    op.create_index("ix_bookings_student_id", "bookings", ["student_id"])
    op.create_index("ix_bookings_booking_date", "bookings", ["booking_date"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index(
        "ix_bookings_tutor_status_start", "bookings", ["tutor_id", "status", "starts_at"]
    )
    op.create_index("ix_bookings_status_expired_at", "bookings", ["status", "expired_at"])

    if is_postgres:
        # Backstop for the admission locks: active bookings of one tutor, or of one
        # student, never overlap
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute(
            """
            ALTER TABLE bookings
              ADD CONSTRAINT bookings_no_overlap_per_tutor
              EXCLUDE USING gist (
                tutor_id WITH =,
                tstzrange(starts_at, ends_at, '[)') WITH &&
              )
              WHERE (status IN ('pending','accepted'))
            """
        )
        op.execute(
            """
            ALTER TABLE bookings
              ADD CONSTRAINT bookings_no_overlap_per_student
              EXCLUDE USING gist (
                student_id WITH =,
                tstzrange(starts_at, ends_at, '[)') WITH &&
              )
              WHERE (status IN ('pending','accepted'))
            """
        )


def downgrade() -> None:
    """Drop booking engine tables."""
    bind = op.get_bind()
    if bind is not None and bind.dialect.name == "postgresql":
        op.execute(
            "ALTER TABLE bookings DROP CONSTRAINT IF EXISTS bookings_no_overlap_per_student"
        )
        op.execute("ALTER TABLE bookings DROP CONSTRAINT IF EXISTS bookings_no_overlap_per_tutor")

    op.drop_index("ix_bookings_status_expired_at", table_name="bookings")
    op.drop_index("ix_bookings_tutor_status_start", table_name="bookings")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_booking_date", table_name="bookings")
    op.drop_index("ix_bookings_student_id", table_name="bookings")
    op.drop_index("ix_bookings_tutor_id", table_name="bookings")
    op.drop_index("ix_bookings_id", table_name="bookings")
    op.drop_table("bookings")

    op.drop_index("ix_tutor_schedule_slots_tutor_id", table_name="tutor_schedule_slots")
    op.drop_table("tutor_schedule_slots")
    op.drop_table("tutor_schedules")
