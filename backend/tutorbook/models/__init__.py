from .booking import ACTIVE_STATUSES, ALLOWED_TRANSITIONS, Booking, BookingStatus
from .tutor_schedule import TutorSchedule, TutorScheduleSlot

__all__ = [
    "ACTIVE_STATUSES",
    "ALLOWED_TRANSITIONS",
    "Booking",
    "BookingStatus",
    "TutorSchedule",
    "TutorScheduleSlot",
]
