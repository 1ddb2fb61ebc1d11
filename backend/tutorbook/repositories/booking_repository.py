# backend/tutorbook/repositories/booking_repository.py
"""
Booking Repository

Data access for bookings. All interval queries work on the UTC
``starts_at``/``ends_at`` columns, so bookings in different timezones are
compared as instants.
"""

from datetime import datetime
import logging
from typing import List, Optional, cast

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..core.timezone_utils import ensure_utc
from ..models.booking import ACTIVE_STATUSES, Booking, BookingStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def create(self, **kwargs) -> Booking:
        """Create a booking, exposing integrity errors for conflict handling."""
        try:
            return super().create(**kwargs)
        except RepositoryException as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise exc.__cause__
            raise

    def get_for_update(self, booking_id: str) -> Optional[Booking]:
        """Reload a booking from the database, row-locked where the dialect supports it."""
        try:
            return self.db.get(Booking, booking_id, populate_existing=True, with_for_update=True)
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to load booking: {str(e)}")

    def get_tutor_id(self, booking_id: str) -> Optional[str]:
        try:
            return cast(
                Optional[str],
                self.db.execute(
                    select(Booking.tutor_id).where(Booking.id == booking_id)
                ).scalar_one_or_none(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error resolving tutor for booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to load booking: {str(e)}")

    def get_active_tutor_bookings_between(
        self,
        tutor_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> List[Booking]:
        """
        Pending/accepted bookings of a tutor whose interval intersects [window_start, window_end).

        Overdue pending bookings are included; callers decide how to treat them.
        """
        try:
            stmt = (
                select(Booking)
                .where(
                    Booking.tutor_id == tutor_id,
                    Booking.status.in_(list(ACTIVE_STATUSES)),
                    Booking.starts_at < ensure_utc(window_end),
                    Booking.ends_at > ensure_utc(window_start),
                )
                .order_by(Booking.starts_at)
            )
            return list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting tutor bookings in window: {str(e)}")
            raise RepositoryException(f"Failed to get bookings: {str(e)}")

    def get_active_student_bookings_between(
        self,
        student_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> List[Booking]:
        try:
            stmt = select(Booking).where(
                Booking.student_id == student_id,
                Booking.status.in_(list(ACTIVE_STATUSES)),
                Booking.starts_at < ensure_utc(window_end),
                Booking.ends_at > ensure_utc(window_start),
            )
            return list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting student bookings in window: {str(e)}")
            raise RepositoryException(f"Failed to get bookings: {str(e)}")

    def get_overdue_pending(self, now: datetime, limit: int) -> List[Booking]:
        """Pending bookings whose expiry instant has passed, oldest first."""
        try:
            stmt = (
                select(Booking)
                .where(
                    Booking.status == BookingStatus.PENDING,
                    Booking.expired_at.is_not(None),
                    Booking.expired_at <= ensure_utc(now),
                )
                .order_by(Booking.expired_at, Booking.id)
                .limit(limit)
            )
            return list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting overdue pending bookings: {str(e)}")
            raise RepositoryException(f"Failed to get overdue bookings: {str(e)}")

    def get_pending_expiring_between(
        self, window_start: datetime, window_end: datetime
    ) -> List[Booking]:
        """Pending bookings expiring inside the window that have not been reminded yet."""
        try:
            stmt = (
                select(Booking)
                .where(
                    Booking.status == BookingStatus.PENDING,
                    Booking.expiry_reminder_sent_at.is_(None),
                    Booking.expired_at > ensure_utc(window_start),
                    Booking.expired_at <= ensure_utc(window_end),
                )
                .order_by(Booking.expired_at)
            )
            return list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting expiring bookings: {str(e)}")
            raise RepositoryException(f"Failed to get expiring bookings: {str(e)}")

    def get_accepted_starting_between(
        self, window_start: datetime, window_end: datetime
    ) -> List[Booking]:
        """Accepted bookings starting inside the window that have not been reminded yet."""
        try:
            stmt = (
                select(Booking)
                .where(
                    Booking.status == BookingStatus.ACCEPTED,
                    Booking.session_reminder_sent_at.is_(None),
                    Booking.starts_at > ensure_utc(window_start),
                    Booking.starts_at <= ensure_utc(window_end),
                )
                .order_by(Booking.starts_at)
            )
            return list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting upcoming sessions: {str(e)}")
            raise RepositoryException(f"Failed to get upcoming sessions: {str(e)}")

    def get_accepted_ended_before(self, cutoff: datetime, limit: int) -> List[Booking]:
        """Accepted bookings whose session ended at or before the cutoff."""
        try:
            stmt = (
                select(Booking)
                .where(
                    Booking.status == BookingStatus.ACCEPTED,
                    Booking.ends_at <= ensure_utc(cutoff),
                )
                .order_by(Booking.ends_at, Booking.id)
                .limit(limit)
            )
            return list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting finished bookings: {str(e)}")
            raise RepositoryException(f"Failed to get finished bookings: {str(e)}")

    def code_exists(self, code: str) -> bool:
        return (
            self.db.execute(select(Booking.id).where(Booking.code == code)).first() is not None
        )

    def claim_expiry_reminder(self, booking_id: str, at: datetime) -> bool:
        """
        Mark the expiring-soon reminder as sent if nobody has yet.

        Returns False when another worker claimed it first or the booking
        is no longer pending.
        """
        return self._claim_reminder(
            booking_id,
            Booking.expiry_reminder_sent_at,
            BookingStatus.PENDING,
            at,
        )

    def claim_session_reminder(self, booking_id: str, at: datetime) -> bool:
        """Mark the upcoming-session reminder as sent if nobody has yet."""
        return self._claim_reminder(
            booking_id,
            Booking.session_reminder_sent_at,
            BookingStatus.ACCEPTED,
            at,
        )

    def _claim_reminder(
        self, booking_id: str, column, required_status: BookingStatus, at: datetime
    ) -> bool:
        try:
            result = self.db.execute(
                update(Booking)
                .where(
                    Booking.id == booking_id,
                    Booking.status == required_status,
                    column.is_(None),
                )
                .values({column.key: ensure_utc(at)})
                .execution_options(synchronize_session=False)
            )
            return bool(result.rowcount == 1)
        except SQLAlchemyError as e:
            self.logger.error(f"Error claiming reminder for booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to update booking: {str(e)}")
