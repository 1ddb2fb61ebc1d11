"""Data access for tutor schedules."""

from datetime import datetime
import logging
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..core.enums import ClassType
from ..core.exceptions import RepositoryException
from ..domain.schedule import RecurringSlot, WeeklySchedule
from ..models.tutor_schedule import TutorSchedule, TutorScheduleSlot
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class TutorScheduleRepository(BaseRepository[TutorSchedule]):
    def __init__(self, db: Session):
        super().__init__(db, TutorSchedule)

    def get_schedule(self, tutor_id: str, for_update: bool = False) -> Optional[TutorSchedule]:
        try:
            stmt = (
                select(TutorSchedule)
                .options(selectinload(TutorSchedule.slots))
                .where(TutorSchedule.tutor_id == tutor_id)
            )
            if for_update:
                stmt = stmt.with_for_update(of=TutorSchedule).execution_options(
                    populate_existing=True
                )
            return self.db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading schedule for tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to load schedule: {str(e)}")

    def get_weekly_schedule(
        self, tutor_id: str, for_update: bool = False
    ) -> Optional[WeeklySchedule]:
        """Schedule as a pure value object, or None when the tutor has none."""
        schedule = self.get_schedule(tutor_id, for_update=for_update)
        if schedule is None:
            return None
        return WeeklySchedule.from_entries(
            tutor_id=schedule.tutor_id,
            timezone=schedule.timezone,
            entries=(
                (
                    slot.day_of_week,
                    ClassType(slot.class_type),
                    RecurringSlot(
                        time=slot.start_time,
                        timezone=slot.timezone,
                        duration_minutes=slot.duration_minutes,
                    ),
                )
                for slot in schedule.slots
            ),
        )

    def lock_schedule_row(self, tutor_id: str) -> Optional[TutorSchedule]:
        """
        SELECT ... FOR UPDATE on the tutor's schedule row.

        Holds the row lock until the surrounding transaction ends; SQLite
        ignores FOR UPDATE and relies on the process-local tutor lock.
        """
        try:
            stmt = (
                select(TutorSchedule)
                .where(TutorSchedule.tutor_id == tutor_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            return self.db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking schedule for tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to lock schedule: {str(e)}")

    def replace_schedule(
        self,
        tutor_id: str,
        timezone: str,
        entries: Iterable[tuple[int, ClassType, RecurringSlot]],
        at: datetime,
    ) -> TutorSchedule:
        """Replace all slots of a tutor, creating the schedule row if needed. Does not commit."""
        try:
            schedule = self.get_schedule(tutor_id)
            if schedule is None:
                schedule = TutorSchedule(tutor_id=tutor_id, timezone=timezone, created_at=at)
                self.db.add(schedule)
            schedule.timezone = timezone
            schedule.updated_at = at
            schedule.slots = [
                TutorScheduleSlot(
                    tutor_id=tutor_id,
                    day_of_week=int(day),
                    class_type=class_type,
                    start_time=slot.time,
                    timezone=slot.timezone,
                    duration_minutes=slot.duration_minutes,
                    position=position,
                )
                for position, (day, class_type, slot) in enumerate(entries)
            ]
            self.db.flush()
            return schedule
        except SQLAlchemyError as e:
            self.logger.error(f"Error replacing schedule for tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to save schedule: {str(e)}")
