# backend/tutorbook/services/availability_service.py
"""
Availability Service

Derives the open slots of a tutor for an inclusive date range from the
tutor's recurring schedule minus active bookings. This is a read model:
it never writes and takes no locks, so results are advisory. Admission in
BookingService re-checks conflicts under the tutor lock.
"""

import calendar
from datetime import date, datetime, time, timedelta, timezone
import logging
from typing import Iterator, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import Settings, settings
from ..core.enums import ClassType
from ..core.exceptions import NotFoundException, ValidationException
from ..core.timezone_utils import NonExistentLocalTimeError, local_to_utc, today_in
from ..domain.schedule import RecurringSlot, WeeklySchedule
from ..models.booking import Booking
from ..repositories.factory import RepositoryFactory
from ..schemas.availability import AvailableSlot, DayAvailability
from .base import BaseService

logger = logging.getLogger(__name__)

# Widest UTC offset span plus the longest session; bookings starting this far
# outside the local date range can still overlap a slot inside it.
_BOOKING_WINDOW_PADDING = timedelta(days=2)


class AvailabilityService(BaseService):
    """Computes per-day availability for a tutor and class type."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        config: Optional[Settings] = None,
    ):
        super().__init__(db, clock)
        self.settings = config or settings
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.schedule_repository = RepositoryFactory.create_tutor_schedule_repository(db)

    @BaseService.measure_operation("get_availability")
    def get_availability(
        self,
        tutor_id: str,
        class_type: str,
        start_date: date,
        end_date: date,
    ) -> Iterator[DayAvailability]:
        """
        Availability for every day in [start_date, end_date].

        Arguments are validated eagerly; the days themselves are produced
        lazily, one record per calendar day in ascending order.

        Raises:
            ValidationException: Bad class type or date range
            NotFoundException: Tutor has no schedule
        """
        try:
            resolved_class_type = ClassType(class_type)
        except ValueError:
            raise ValidationException(
                f"Unknown class type: {class_type}",
                code="INVALID_CLASS_TYPE",
                details={"class_type": class_type},
            )
        if start_date > end_date:
            raise ValidationException(
                "Start date must not be after end date",
                code="INVALID_DATE_RANGE",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )
        days = (end_date - start_date).days + 1
        if days > self.settings.availability_max_range_days:
            raise ValidationException(
                f"Date range cannot exceed {self.settings.availability_max_range_days} days",
                code="INVALID_DATE_RANGE",
                details={"days": days},
            )

        schedule = self.schedule_repository.get_weekly_schedule(tutor_id)
        if schedule is None:
            raise NotFoundException(
                f"No schedule configured for tutor {tutor_id}",
                code="SCHEDULE_NOT_FOUND",
                details={"tutor_id": tutor_id},
            )

        return self._iter_days(schedule, resolved_class_type, start_date, end_date)

    def get_availability_list(
        self, tutor_id: str, class_type: str, start_date: date, end_date: date
    ) -> List[DayAvailability]:
        return list(self.get_availability(tutor_id, class_type, start_date, end_date))

    def _iter_days(
        self,
        schedule: WeeklySchedule,
        class_type: ClassType,
        start_date: date,
        end_date: date,
    ) -> Iterator[DayAvailability]:
        now = self.clock.now()
        today = today_in(schedule.timezone, now)
        bookings = self._load_blocking_bookings(schedule.tutor_id, start_date, end_date, now)

        current = start_date
        while current <= end_date:
            is_past = current < today
            slots: List[AvailableSlot] = []
            if not is_past:
                slots = self._open_slots(schedule, class_type, current, now, bookings)
            yield DayAvailability(
                date=current,
                day_name=calendar.day_name[current.weekday()],
                month_name=calendar.month_name[current.month],
                is_past=is_past,
                available_slots=slots,
            )
            current += timedelta(days=1)

    def _load_blocking_bookings(
        self, tutor_id: str, start_date: date, end_date: date, now: datetime
    ) -> List[Booking]:
        """Active bookings around the range; overdue pending ones no longer block."""
        window_start = datetime.combine(start_date, time.min, tzinfo=timezone.utc)
        window_end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
        bookings = self.booking_repository.get_active_tutor_bookings_between(
            tutor_id,
            window_start - _BOOKING_WINDOW_PADDING,
            window_end + _BOOKING_WINDOW_PADDING,
        )
        return [booking for booking in bookings if not booking.is_overdue(now)]

    def _open_slots(
        self,
        schedule: WeeklySchedule,
        class_type: ClassType,
        day: date,
        now: datetime,
        bookings: List[Booking],
    ) -> List[AvailableSlot]:
        # Same rule as admission: a slot must start after now plus the notice buffer
        bookable_after = now + timedelta(minutes=self.settings.booking_start_buffer_minutes)
        candidates: List[Tuple[datetime, RecurringSlot]] = []
        for slot in schedule.slots_for(day.weekday(), class_type):
            try:
                starts_at = local_to_utc(day, slot.time, slot.timezone)
            except NonExistentLocalTimeError:
                logger.debug(
                    "Skipping %s %s in %s: wall-clock time does not exist",
                    day,
                    slot.time,
                    slot.timezone,
                )
                continue
            ends_at = starts_at + timedelta(minutes=slot.duration_minutes)

            if starts_at <= bookable_after:
                continue
            if any(booking.overlaps(starts_at, ends_at) for booking in bookings):
                continue
            candidates.append((starts_at, slot))

        # Stable sort keeps configured order among identical instants
        candidates.sort(key=lambda item: item[0])
        result: List[AvailableSlot] = []
        seen = set()
        for starts_at, slot in candidates:
            if starts_at in seen:
                continue
            seen.add(starts_at)
            result.append(
                AvailableSlot(
                    time=slot.time.strftime("%H:%M"),
                    timezone=slot.timezone,
                    duration_minutes=slot.duration_minutes,
                )
            )
        return result
