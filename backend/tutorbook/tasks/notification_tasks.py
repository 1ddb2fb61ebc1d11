# backend/tutorbook/tasks/notification_tasks.py
"""Celery task delivering booking events to the registered handlers."""

from typing import Any, Dict

from celery.app.task import Task  # noqa: F401 - used for type hints
from celery.utils.log import get_task_logger

from ..events.handlers import process_event
from .celery_app import celery_app

logger = get_task_logger(__name__)

BACKOFF_SECONDS = [30, 120, 600]


@celery_app.task(
    name="tutorbook.tasks.notifications.deliver_booking_event",
    bind=True,
    max_retries=len(BACKOFF_SECONDS),
    queue="notifications",
)
def deliver_booking_event(self: "Task[Any, Any]", payload: Dict[str, Any]) -> bool:
    """Run the handler for one booking event, retrying with backoff on failure."""
    try:
        return process_event(payload)
    except Exception as exc:
        attempt = self.request.retries
        countdown = BACKOFF_SECONDS[min(attempt, len(BACKOFF_SECONDS) - 1)]
        logger.warning(
            "Delivery of %s for booking %s failed (attempt %s): %s",
            payload.get("event_name"),
            payload.get("booking_id"),
            attempt + 1,
            exc,
        )
        raise self.retry(exc=exc, countdown=countdown)
