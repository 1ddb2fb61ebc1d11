# backend/tutorbook/dependencies.py
"""
Dependencies for FastAPI dependency injection.

The acting user is resolved by the external identity layer and forwarded
in the ``X-Actor-Id`` header.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from .core.clock import Clock, system_clock
from .database import get_db
from .events.booking_events import BookingEventEmitter
from .events.publisher import get_default_event_emitter
from .services.availability_service import AvailabilityService
from .services.booking_service import BookingService
from .services.schedule_service import ScheduleService


def get_clock() -> Clock:
    return system_clock


@lru_cache(maxsize=1)
def get_event_emitter() -> BookingEventEmitter:
    """Get the emitter singleton for dependency injection."""
    return get_default_event_emitter()


def get_actor_id(x_actor_id: Optional[str] = Header(default=None)) -> str:
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Missing X-Actor-Id header", "code": "MISSING_ACTOR"},
        )
    return x_actor_id.strip()


def get_booking_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    emitter: BookingEventEmitter = Depends(get_event_emitter),
) -> BookingService:
    return BookingService(db, clock=clock, event_emitter=emitter)


def get_availability_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> AvailabilityService:
    return AvailabilityService(db, clock=clock)


def get_schedule_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ScheduleService:
    return ScheduleService(db, clock=clock)
