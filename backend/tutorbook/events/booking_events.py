"""Booking domain events and the emitter boundary."""
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol

from ..core.timezone_utils import ensure_utc

if TYPE_CHECKING:
    from ..models.booking import Booking


@dataclass
class BookingEvent:
    """Snapshot of a booking at the moment something happened to it."""

    event_name: str
    booking_id: str
    tutor_id: str
    student_id: str
    status: str
    occurred_at: datetime
    booking: Dict[str, Any] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_booking(
        cls,
        event_name: str,
        booking: "Booking",
        occurred_at: datetime,
        extra: Optional[Dict[str, Any]] = None,
    ) -> "BookingEvent":
        return cls(
            event_name=event_name,
            booking_id=booking.id,
            tutor_id=booking.tutor_id,
            student_id=booking.student_id,
            status=booking.current_status.value,
            occurred_at=ensure_utc(occurred_at),
            booking=booking.to_dict(),
            extra=dict(extra or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["occurred_at"] = self.occurred_at.isoformat()
        return payload


class BookingEventEmitter(Protocol):
    """
    Notification collaborator.

    Called after the booking change is committed; whatever happens inside
    ``emit`` cannot undo that change.
    """

    def emit(
        self, event_name: str, booking: "Booking", extra: Optional[Dict[str, Any]] = None
    ) -> None:
        ...
