# backend/tutorbook/repositories/factory.py
"""
Repository Factory

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from .booking_repository import BookingRepository
    from .tutor_schedule_repository import TutorScheduleRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_tutor_schedule_repository(db: Session) -> "TutorScheduleRepository":
        from .tutor_schedule_repository import TutorScheduleRepository

        return TutorScheduleRepository(db)
