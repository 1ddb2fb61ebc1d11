# backend/tutorbook/schemas/booking.py
"""
Booking request/response schemas.

Bookings are self-contained: the request carries the local date, time and
timezone of the session; the end of the session is derived from the
duration.
"""

from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.enums import BookingDecision, ClassType
from ..models.booking import BookingStatus
from ._parsing import ensure_date_only, parse_wall_clock, validate_timezone_name


class BookingCreate(BaseModel):
    """Student's request for one session with a tutor."""

    model_config = ConfigDict(extra="forbid")

    tutor_id: str = Field(..., min_length=1, description="Tutor to book")
    student_id: str = Field(..., min_length=1, description="Student making the request")
    course_id: str = Field(..., min_length=1, description="Course being booked")
    booking_date: date = Field(..., description="Local calendar date of the session")
    start_time: time = Field(..., description="Local wall-clock start time")
    timezone: str = Field(..., description="IANA timezone of booking_date/start_time")
    class_type: ClassType
    duration_minutes: int = Field(..., gt=0, le=720)
    notes: Optional[str] = Field(None, max_length=1000, description="Note for the tutor")

    @field_validator("booking_date", mode="before")
    @classmethod
    def _enforce_date_only(cls, v: object) -> object:
        return ensure_date_only(v, "booking_date")

    @field_validator("start_time", mode="before")
    @classmethod
    def _parse_start_time(cls, v: object) -> object:
        return parse_wall_clock(v)

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, v: str) -> str:
        return validate_timezone_name(v)

    @field_validator("notes")
    @classmethod
    def _clean_notes(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() or None if v else v


class BookingRequestBody(BaseModel):
    """HTTP body for POST /bookings; the student is the authenticated actor."""

    model_config = ConfigDict(extra="forbid")

    tutor_id: str
    course_id: str
    date: str
    time: str
    timezone: str
    class_type: str
    duration_minutes: int
    notes: Optional[str] = None


class BookingRespond(BaseModel):
    decision: BookingDecision
    reason: Optional[str] = Field(None, max_length=1000)


class BookingResponse(BaseModel):
    """Booking as returned to callers."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    code: str
    tutor_id: str
    student_id: str
    course_id: str
    class_type: ClassType
    booking_date: date
    start_time: time
    timezone: str
    duration_minutes: int
    status: BookingStatus
    notes_tutor: Optional[str] = None
    notes_student: Optional[str] = None
    starts_at: datetime
    ends_at: datetime
    created_at: datetime
    updated_at: datetime
    expired_at: Optional[datetime] = None
    cancelled_by_id: Optional[str] = None
