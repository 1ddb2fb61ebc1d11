"""Recurring weekly schedule of a tutor, per class type."""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Time
from sqlalchemy.orm import relationship
import ulid

from ..core.enums import ClassType
from ..database import Base
from .base_enum import create_safe_enum


class TutorSchedule(Base):
    """
    One row per tutor.

    Besides holding the tutor's own timezone (used for "today" and for
    weekday resolution), this row is the target of the per-tutor row lock
    taken while bookings are admitted or transitioned.
    """

    __tablename__ = "tutor_schedules"

    tutor_id = Column(String(64), primary_key=True)
    timezone = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    slots = relationship(
        "TutorScheduleSlot",
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="TutorScheduleSlot.position",
    )

    def __repr__(self) -> str:
        return f"<TutorSchedule tutor={self.tutor_id} tz={self.timezone} slots={len(self.slots)}>"


class TutorScheduleSlot(Base):
    """A recurring slot: every <day_of_week>, <start_time> local time, for <duration_minutes>."""

    __tablename__ = "tutor_schedule_slots"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tutor_id = Column(
        String(64),
        ForeignKey("tutor_schedules.tutor_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    day_of_week = Column(Integer, nullable=False)
    class_type = Column(create_safe_enum(ClassType, "class_type"), nullable=False)
    start_time = Column(Time, nullable=False)
    timezone = Column(String(64), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    # Insertion order as configured by the tutor
    position = Column(Integer, nullable=False, default=0)

    schedule = relationship("TutorSchedule", back_populates="slots")

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="check_day_of_week_range"),
        CheckConstraint("duration_minutes > 0", name="check_slot_duration_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<TutorScheduleSlot tutor={self.tutor_id} day={self.day_of_week} "
            f"{self.class_type} {self.start_time} {self.timezone}>"
        )
