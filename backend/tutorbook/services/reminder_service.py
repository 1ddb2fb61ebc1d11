"""Reminders for bookings that need attention soon."""

from datetime import timedelta
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import Settings, settings
from ..core.enums import BookingEventName
from ..events.booking_events import BookingEventEmitter
from ..events.publisher import PendingEvent, emit_safely, get_default_event_emitter
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


class ReminderService(BaseService):
    """
    Sends two kinds of reminders, each at most once per booking:

    - ``booking.expiring_soon`` to the tutor of a pending booking that will
      expire within ``expiry_reminder_window_minutes``;
    - ``booking.session_reminder`` for accepted bookings starting within
      ``session_reminder_window_minutes``.

    A reminder is claimed with a conditional update before it is emitted,
    so overlapping runs never send it twice.
    """

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        event_emitter: Optional[BookingEventEmitter] = None,
        config: Optional[Settings] = None,
    ):
        super().__init__(db, clock)
        self.settings = config or settings
        self.event_emitter = event_emitter or get_default_event_emitter()
        self.repository = RepositoryFactory.create_booking_repository(db)

    @BaseService.measure_operation("send_expiry_reminders")
    def send_expiry_reminders(self) -> int:
        now = self.clock.now()
        window_end = now + timedelta(minutes=self.settings.expiry_reminder_window_minutes)
        events: List[PendingEvent] = []
        with self.transaction():
            for booking in self.repository.get_pending_expiring_between(now, window_end):
                if self.repository.claim_expiry_reminder(booking.id, now):
                    minutes_left = int((booking.expires_at_utc - now).total_seconds() // 60)
                    events.append(
                        (
                            BookingEventName.EXPIRING_SOON.value,
                            booking,
                            {"recipient": "tutor", "minutes_left": minutes_left},
                        )
                    )
        if events:
            emit_safely(self.event_emitter, events)
            self.log_operation("send_expiry_reminders", sent=len(events))
        return len(events)

    @BaseService.measure_operation("send_session_reminders")
    def send_session_reminders(self) -> int:
        now = self.clock.now()
        window_end = now + timedelta(minutes=self.settings.session_reminder_window_minutes)
        events: List[PendingEvent] = []
        with self.transaction():
            for booking in self.repository.get_accepted_starting_between(now, window_end):
                if self.repository.claim_session_reminder(booking.id, now):
                    events.append(
                        (
                            BookingEventName.SESSION_REMINDER.value,
                            booking,
                            {"recipients": ["tutor", "student"]},
                        )
                    )
        if events:
            emit_safely(self.event_emitter, events)
            self.log_operation("send_session_reminders", sent=len(events))
        return len(events)

    def send_all(self) -> dict:
        return {
            "expiring_soon": self.send_expiry_reminders(),
            "session_reminder": self.send_session_reminders(),
        }
