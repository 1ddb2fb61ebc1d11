"""Booking event boundary."""

from .booking_events import BookingEvent, BookingEventEmitter
from .publisher import (
    CeleryEventEmitter,
    LoggingEventEmitter,
    emit_safely,
    get_default_event_emitter,
)

__all__ = [
    "BookingEvent",
    "BookingEventEmitter",
    "CeleryEventEmitter",
    "LoggingEventEmitter",
    "emit_safely",
    "get_default_event_emitter",
]
