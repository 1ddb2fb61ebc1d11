# backend/tutorbook/tasks/beat_schedule.py
"""
Celery Beat schedule for the booking engine.

The expiry sweep runs every ``expiry_sweep_interval_seconds``; each run is
bounded by its own time budget and simply resumes on the next tick.
"""

from datetime import timedelta
from typing import Any, Dict

from ..core.config import settings


def get_beat_schedule() -> Dict[str, Dict[str, Any]]:
    return {
        "expire-pending-bookings": {
            "task": "tutorbook.tasks.bookings.expire_pending_bookings",
            "schedule": timedelta(seconds=settings.expiry_sweep_interval_seconds),
            "options": {
                "queue": "bookings",
                # A run that has not started by the next tick is redundant
                "expires": settings.expiry_sweep_interval_seconds,
            },
        },
        "send-booking-reminders": {
            "task": "tutorbook.tasks.bookings.send_booking_reminders",
            "schedule": timedelta(minutes=10),
            "options": {"queue": "bookings"},
        },
        "complete-finished-bookings": {
            "task": "tutorbook.tasks.bookings.complete_finished_bookings",
            "schedule": timedelta(minutes=15),
            "options": {"queue": "bookings"},
        },
    }
