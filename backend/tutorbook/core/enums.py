# backend/tutorbook/core/enums.py
"""
Core enums for the booking engine.

All enums persisted to the database inherit from (str, Enum) and store
their lowercase values.
"""

from enum import Enum, IntEnum


class ClassType(str, Enum):
    """Delivery mode of a lesson; each has its own schedule and slot set."""

    ONLINE = "online"
    OFFLINE = "offline"


class DayOfWeek(IntEnum):
    """Weekday numbering matching ``date.weekday()``."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


class BookingDecision(str, Enum):
    """Tutor's answer to a pending booking."""

    ACCEPT = "accept"
    DECLINE = "decline"


class BookingEventName(str, Enum):
    """Event names handed to the notification collaborator."""

    CREATED = "booking.created"
    ACCEPTED = "booking.accepted"
    DECLINED = "booking.declined"
    EXPIRED = "booking.expired"
    CANCELLED = "booking.cancelled"
    COMPLETED = "booking.completed"
    EXPIRING_SOON = "booking.expiring_soon"
    SESSION_REMINDER = "booking.session_reminder"
