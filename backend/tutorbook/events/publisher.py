"""Event emitters - hand booking events to the notification side."""
from datetime import datetime, timezone
import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional, Tuple

from .booking_events import BookingEvent, BookingEventEmitter

if TYPE_CHECKING:
    from ..models.booking import Booking

logger = logging.getLogger(__name__)

PendingEvent = Tuple[str, "Booking", Optional[Dict[str, Any]]]


class LoggingEventEmitter:
    """Writes events to the log only; used when no broker is configured."""

    def emit(
        self, event_name: str, booking: "Booking", extra: Optional[Dict[str, Any]] = None
    ) -> None:
        event = BookingEvent.from_booking(event_name, booking, datetime.now(timezone.utc), extra)
        logger.info(
            "Booking event %s for booking %s (status=%s)",
            event.event_name,
            event.booking_id,
            event.status,
            extra={"event_name": event.event_name, "booking_id": event.booking_id},
        )


class CeleryEventEmitter:
    """Queues events for background delivery by the notification worker."""

    def __init__(self, queue: str = "notifications"):
        self.queue = queue

    def emit(
        self, event_name: str, booking: "Booking", extra: Optional[Dict[str, Any]] = None
    ) -> None:
        from ..tasks.notification_tasks import deliver_booking_event

        event = BookingEvent.from_booking(event_name, booking, datetime.now(timezone.utc), extra)
        deliver_booking_event.apply_async((event.to_dict(),), queue=self.queue)


def emit_safely(emitter: BookingEventEmitter, events: Iterable[PendingEvent]) -> int:
    """
    Emit each event, logging and dropping failures.

    Returns the number of events the emitter accepted.
    """
    delivered = 0
    for event_name, booking, extra in events:
        try:
            emitter.emit(event_name, booking, extra)
            delivered += 1
        except Exception as exc:
            logger.error(
                "Failed to emit %s for booking %s: %s",
                event_name,
                booking.id,
                exc,
                exc_info=True,
            )
    return delivered


def get_default_event_emitter() -> BookingEventEmitter:
    """Celery delivery when a broker is configured, log-only otherwise."""
    from ..core.config import settings

    if settings.celery_broker_url or settings.redis_url:
        return CeleryEventEmitter()
    return LoggingEventEmitter()
