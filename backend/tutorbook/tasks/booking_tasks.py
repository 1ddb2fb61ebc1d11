# backend/tutorbook/tasks/booking_tasks.py
"""
Periodic booking jobs: expiry sweep, reminders and auto-completion.

Each task opens its own session and delegates to a service; tasks hold no
booking logic of their own.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator

from celery.utils.log import get_task_logger
from sqlalchemy.orm import Session

from .. import database
from ..services.booking_service import BookingService
from ..services.expiry_sweeper import ExpirySweeper
from ..services.reminder_service import ReminderService
from .celery_app import celery_app

logger = get_task_logger(__name__)


@contextmanager
def _session_scope() -> Iterator[Session]:
    """Provide transactional scope for use in tasks."""
    session = database.SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@celery_app.task(name="tutorbook.tasks.bookings.expire_pending_bookings", max_retries=0)
def expire_pending_bookings() -> Dict[str, Any]:
    """Move overdue pending bookings to expired."""
    with _session_scope() as session:
        result = ExpirySweeper(session).run()
    if result.expired or result.failed:
        logger.info(
            "Expiry sweep: %s expired, %s skipped, %s failed",
            result.expired,
            result.skipped,
            result.failed,
        )
    return result.to_dict()


@celery_app.task(name="tutorbook.tasks.bookings.send_booking_reminders", max_retries=0)
def send_booking_reminders() -> Dict[str, int]:
    with _session_scope() as session:
        return ReminderService(session).send_all()


@celery_app.task(name="tutorbook.tasks.bookings.complete_finished_bookings", max_retries=0)
def complete_finished_bookings(limit: int = 200) -> int:
    """Complete accepted bookings whose session is over."""
    with _session_scope() as session:
        completed = BookingService(session).complete_finished_bookings(limit=limit)
    if completed:
        logger.info("Auto-completed %s bookings", completed)
    return completed
