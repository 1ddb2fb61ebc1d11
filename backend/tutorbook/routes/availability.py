# backend/tutorbook/routes/availability.py
"""
Tutor availability and schedule routes.

Router Endpoints:
    GET /tutors/{tutor_id}/availability - Open slots per day for a date range
    PUT /tutors/{tutor_id}/schedule - Replace the tutor's weekly schedule
"""

from datetime import date
import logging
from typing import List

from fastapi import APIRouter, Depends, Query

from ..core.exceptions import UnauthorizedException
from ..dependencies import get_actor_id, get_availability_service, get_schedule_service
from ..domain.schedule import WeeklySchedule
from ..schemas.availability import DayAvailability, ScheduleReplace
from ..services.availability_service import AvailabilityService
from ..services.schedule_service import ScheduleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tutors", tags=["availability"])


@router.get("/{tutor_id}/availability", response_model=List[DayAvailability])
def get_tutor_availability(
    tutor_id: str,
    class_type: str = Query(..., description="online or offline"),
    start: date = Query(..., description="First day, inclusive"),
    end: date = Query(..., description="Last day, inclusive"),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> List[DayAvailability]:
    """
    Advisory availability. A slot listed here can still be taken before the
    caller books it; the booking request is the authoritative check.
    """
    return availability_service.get_availability_list(tutor_id, class_type, start, end)


def _schedule_to_response(schedule: WeeklySchedule) -> dict:
    return {
        "tutor_id": schedule.tutor_id,
        "timezone": schedule.timezone,
        "entries": [
            {
                "day_of_week": int(day),
                "class_type": class_type.value,
                "start_time": slot.time.strftime("%H:%M"),
                "timezone": slot.timezone,
                "duration_minutes": slot.duration_minutes,
            }
            for (day, class_type), slots in schedule.entries.items()
            for slot in slots
        ],
    }


@router.put("/{tutor_id}/schedule")
def replace_tutor_schedule(
    tutor_id: str,
    body: ScheduleReplace,
    actor_id: str = Depends(get_actor_id),
    schedule_service: ScheduleService = Depends(get_schedule_service),
) -> dict:
    """Replace the whole weekly schedule. Only the tutor may change it."""
    if actor_id != tutor_id:
        raise UnauthorizedException(
            "Only the tutor can change their schedule",
            code="NOT_SCHEDULE_OWNER",
            details={"tutor_id": tutor_id},
        )
    return _schedule_to_response(schedule_service.replace_schedule(tutor_id, body))


@router.get("/{tutor_id}/schedule")
def get_tutor_schedule(
    tutor_id: str,
    schedule_service: ScheduleService = Depends(get_schedule_service),
) -> dict:
    return _schedule_to_response(schedule_service.get_schedule(tutor_id))
