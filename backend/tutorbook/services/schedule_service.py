# backend/tutorbook/services/schedule_service.py
"""
Schedule Service

Configuration write path for a tutor's recurring weekly schedule. Called by
the profile-management collaborator; the booking engine itself only reads
schedules.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import settings
from ..core.exceptions import NotFoundException
from ..domain.schedule import RecurringSlot, WeeklySchedule
from ..repositories.factory import RepositoryFactory
from ..schemas.availability import ScheduleReplace
from .base import BaseService

logger = logging.getLogger(__name__)


class ScheduleService(BaseService):
    """Reads and replaces tutor schedules."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.repository = RepositoryFactory.create_tutor_schedule_repository(db)

    @BaseService.measure_operation("get_schedule")
    def get_schedule(self, tutor_id: str) -> WeeklySchedule:
        """
        Raises:
            NotFoundException: If the tutor has no schedule configured
        """
        schedule = self.repository.get_weekly_schedule(tutor_id)
        if schedule is None:
            raise NotFoundException(
                f"No schedule configured for tutor {tutor_id}",
                code="SCHEDULE_NOT_FOUND",
                details={"tutor_id": tutor_id},
            )
        return schedule

    @BaseService.measure_operation("replace_schedule")
    def replace_schedule(self, tutor_id: str, data: ScheduleReplace) -> WeeklySchedule:
        """
        Replace every recurring slot of a tutor.

        Entries keep the order they are given in. Existing bookings are not
        touched; they carry their own date, time and timezone.
        """
        now = self.clock.now()
        timezone = data.timezone or settings.default_timezone
        entries = [
            (
                entry.day_of_week,
                entry.class_type,
                RecurringSlot(
                    time=entry.start_time,
                    timezone=entry.timezone,
                    duration_minutes=entry.duration_minutes,
                ),
            )
            for entry in data.entries
        ]
        with self.transaction():
            self.repository.replace_schedule(tutor_id, timezone, entries, now)

        self.log_operation("replace_schedule", tutor_id=tutor_id, slot_count=len(entries))
        return WeeklySchedule.from_entries(tutor_id, timezone, entries)
