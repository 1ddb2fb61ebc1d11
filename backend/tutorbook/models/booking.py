# backend/tutorbook/models/booking.py
"""
Booking model.

A booking is a self-contained record: it stores the tutor, the local
date/time/timezone of the session and the derived UTC interval directly,
so it stays valid whatever happens to the tutor's schedule afterwards.
Bookings are never deleted; terminal states are kept for history.
"""

from datetime import date, datetime, time
from enum import Enum
import logging
from typing import Any, Dict, FrozenSet, Optional, cast

from sqlalchemy import CheckConstraint, Column, Date, DateTime, Index, Integer, String, Text, Time
import ulid

from ..core.enums import ClassType
from ..core.exceptions import InvalidStateTransitionException
from ..core.timezone_utils import ensure_utc
from ..database import Base
from .base_enum import create_safe_enum

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "pending"  # Waiting for the tutor's answer
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"  # Tutor did not answer in time
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    def can_transition_to(self, target: "BookingStatus") -> bool:
        return target in ALLOWED_TRANSITIONS[self]


ALLOWED_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {
            BookingStatus.ACCEPTED,
            BookingStatus.DECLINED,
            BookingStatus.EXPIRED,
            BookingStatus.CANCELLED,
        }
    ),
    BookingStatus.ACCEPTED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.DECLINED: frozenset(),
    BookingStatus.EXPIRED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}

ACTIVE_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.PENDING, BookingStatus.ACCEPTED}
)


class Booking(Base):
    """Request by a student to take one session with a tutor."""

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    code = Column(String(20), nullable=False, unique=True)

    # Parties (opaque references to external entities)
    tutor_id = Column(String(64), nullable=False, index=True)
    student_id = Column(String(64), nullable=False, index=True)
    course_id = Column(String(64), nullable=False)

    # Session as requested, in local wall-clock time
    class_type = Column(create_safe_enum(ClassType, "class_type"), nullable=False)
    booking_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    timezone = Column(String(64), nullable=False)
    duration_minutes = Column(Integer, nullable=False)

    # Same session as UTC instants; all overlap checks use these
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)

    status = Column(
        create_safe_enum(BookingStatus, "booking_status"),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True,
    )

    notes_tutor = Column(Text, nullable=True)  # written by the student for the tutor
    notes_student = Column(Text, nullable=True)  # written by the tutor for the student

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    expired_at = Column(DateTime(timezone=True), nullable=True)
    responded_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by_id = Column(String(64), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Reminder bookkeeping
    expiry_reminder_sent_at = Column(DateTime(timezone=True), nullable=True)
    session_reminder_sent_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_duration_positive"),
        CheckConstraint("starts_at < ends_at", name="check_interval_order"),
        CheckConstraint(
            "expired_at IS NULL OR expired_at <= starts_at", name="check_expiry_before_start"
        ),
        Index("ix_bookings_tutor_status_start", "tutor_id", "status", "starts_at"),
        Index("ix_bookings_status_expired_at", "status", "expired_at"),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if not self.status:
            self.status = BookingStatus.PENDING
        logger.info(f"Creating booking for student {self.student_id} with tutor {self.tutor_id}")

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: tutor={self.tutor_id}, student={self.student_id}, "
            f"date={self.booking_date}, time={self.start_time}, status={self.status}>"
        )

    @property
    def current_status(self) -> BookingStatus:
        return BookingStatus(self.status)

    @property
    def session_start_utc(self) -> datetime:
        return ensure_utc(cast(datetime, self.starts_at))

    @property
    def session_end_utc(self) -> datetime:
        return ensure_utc(cast(datetime, self.ends_at))

    @property
    def expires_at_utc(self) -> Optional[datetime]:
        return ensure_utc(self.expired_at) if self.expired_at is not None else None

    def is_overdue(self, now: datetime) -> bool:
        """Pending past its expiry instant but not yet moved to expired."""
        expires_at = self.expires_at_utc
        return (
            self.current_status == BookingStatus.PENDING
            and expires_at is not None
            and expires_at <= now
        )

    def overlaps(self, starts_at: datetime, ends_at: datetime) -> bool:
        """Half-open [start, end) interval overlap."""
        return starts_at < self.session_end_utc and ends_at > self.session_start_utc

    def transition_to(self, target: BookingStatus, at: datetime) -> BookingStatus:
        """
        Move to ``target`` if the transition table allows it.

        Returns:
            The previous status

        Raises:
            InvalidStateTransitionException: If the transition is not listed
        """
        previous = self.current_status
        if not previous.can_transition_to(target):
            raise InvalidStateTransitionException(previous.value, target.value)
        self.status = target
        self.updated_at = at
        if target == BookingStatus.ACCEPTED:
            # Accepted bookings never auto-expire
            self.expired_at = None
            self.responded_at = at
        elif target == BookingStatus.DECLINED:
            self.responded_at = at
        elif target == BookingStatus.CANCELLED:
            self.cancelled_at = at
        elif target == BookingStatus.COMPLETED:
            self.completed_at = at
        logger.info(f"Booking {self.id} moved from {previous.value} to {target.value}")
        return previous

    def is_party(self, actor_id: str) -> bool:
        return actor_id in (self.tutor_id, self.student_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for event payloads and API responses."""

        def _iso(value: Optional[datetime]) -> Optional[str]:
            return ensure_utc(value).isoformat() if value is not None else None

        booking_date = cast(Optional[date], self.booking_date)
        start_time = cast(Optional[time], self.start_time)
        return {
            "id": self.id,
            "code": self.code,
            "tutor_id": self.tutor_id,
            "student_id": self.student_id,
            "course_id": self.course_id,
            "class_type": ClassType(self.class_type).value if self.class_type else None,
            "date": booking_date.isoformat() if booking_date else None,
            "time": start_time.strftime("%H:%M") if start_time else None,
            "timezone": self.timezone,
            "duration_minutes": self.duration_minutes,
            "status": self.current_status.value if self.status else None,
            "notes_tutor": self.notes_tutor,
            "notes_student": self.notes_student,
            "starts_at": _iso(self.starts_at),
            "ends_at": _iso(self.ends_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "expired_at": _iso(self.expired_at),
            "responded_at": _iso(self.responded_at),
            "cancelled_at": _iso(self.cancelled_at),
            "cancelled_by_id": self.cancelled_by_id,
            "completed_at": _iso(self.completed_at),
        }
