"""Availability read-model and schedule configuration schemas."""

from datetime import date, time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.enums import ClassType, DayOfWeek
from ._parsing import parse_wall_clock, validate_timezone_name


class AvailableSlot(BaseModel):
    model_config = ConfigDict(frozen=True)

    time: str  # HH:MM local wall clock
    timezone: str
    duration_minutes: int


class DayAvailability(BaseModel):
    """Open slots of one calendar day."""

    model_config = ConfigDict(frozen=True)

    date: date
    day_name: str
    month_name: str
    is_past: bool
    available_slots: List[AvailableSlot] = Field(default_factory=list)


class ScheduleEntryIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    day_of_week: DayOfWeek
    class_type: ClassType
    start_time: time
    timezone: str
    duration_minutes: int = Field(..., gt=0, le=720)

    @field_validator("start_time", mode="before")
    @classmethod
    def _parse_start_time(cls, v: object) -> object:
        return parse_wall_clock(v)

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, v: str) -> str:
        return validate_timezone_name(v)


class ScheduleReplace(BaseModel):
    """Full replacement of a tutor's weekly schedule."""

    model_config = ConfigDict(extra="forbid")

    timezone: Optional[str] = Field(None, description="Defaults to the configured default timezone")
    entries: List[ScheduleEntryIn] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        return validate_timezone_name(v) if v is not None else v
