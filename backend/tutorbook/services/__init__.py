from .availability_service import AvailabilityService
from .base import BaseService
from .booking_service import BookingService
from .expiry_sweeper import ExpirySweeper, SweepResult
from .reminder_service import ReminderService
from .schedule_service import ScheduleService

__all__ = [
    "AvailabilityService",
    "BaseService",
    "BookingService",
    "ExpirySweeper",
    "ReminderService",
    "ScheduleService",
    "SweepResult",
]
