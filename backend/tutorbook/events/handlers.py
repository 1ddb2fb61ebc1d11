"""Event handlers - process booking events delivered by the worker."""
import logging
from typing import Any, Callable, Dict

from ..core.enums import BookingEventName

logger = logging.getLogger(__name__)

EventHandler = Callable[[Dict[str, Any]], None]


def log_booking_event(payload: Dict[str, Any]) -> None:
    """Default handler: record the event. Delivery channels hook in via register_handler."""
    logger.info(
        "Booking %s: %s (tutor=%s, student=%s)",
        payload.get("booking_id"),
        payload.get("event_name"),
        payload.get("tutor_id"),
        payload.get("student_id"),
    )


# Registry of event name -> handler function
EVENT_HANDLERS: Dict[str, EventHandler] = {
    name.value: log_booking_event for name in BookingEventName
}


def register_handler(event_name: str, handler: EventHandler) -> None:
    EVENT_HANDLERS[event_name] = handler


def process_event(payload: Dict[str, Any]) -> bool:
    """
    Process one event payload.

    Returns True if a handler ran, False if the event name is unknown.
    """
    event_name = payload.get("event_name")
    handler = EVENT_HANDLERS.get(event_name) if isinstance(event_name, str) else None
    if not handler:
        logger.warning("No handler for event type: %s", event_name)
        return False

    handler(payload)
    return True
