# backend/tests/conftest.py
"""
Pytest configuration for the booking engine.

Every test gets its own file-backed SQLite database (WAL mode, so worker
threads in the race tests each get a real connection), a frozen clock and
an in-memory event recorder. Redis and the Celery broker are disabled.
"""

import os

# Settings must not pick up a developer's broker or Redis before import
os.environ.setdefault("CI", "true")
os.environ.pop("REDIS_URL", None)
os.environ.pop("CELERY_BROKER_URL", None)

from datetime import date, datetime, timedelta, timezone
import threading
from typing import Any, Dict, List, Optional, Tuple

import pytest
from sqlalchemy.orm import sessionmaker

from tutorbook import models  # noqa: F401 - registers tables on Base.metadata
from tutorbook.core import tutor_lock as tutor_lock_module
from tutorbook.core.config import settings
from tutorbook.core.enums import ClassType, DayOfWeek
from tutorbook.database import Base, build_engine
from tutorbook.schemas.availability import ScheduleEntryIn, ScheduleReplace
from tutorbook.services.availability_service import AvailabilityService
from tutorbook.services.booking_service import BookingService
from tutorbook.services.schedule_service import ScheduleService

TUTOR_ID = "tutor-1"
STUDENT_ID = "student-1"
COURSE_ID = "course-math"
JAKARTA = "Asia/Jakarta"

# Monday 2024-09-02 08:00 in Jakarta (UTC+7)
T0 = datetime(2024, 9, 2, 1, 0, tzinfo=timezone.utc)
NEXT_MONDAY = date(2024, 9, 9)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime):
        self._now = now
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, now: datetime) -> None:
        with self._lock:
            self._now = now

    def advance(self, **delta: float) -> datetime:
        with self._lock:
            self._now = self._now + timedelta(**delta)
            return self._now


class RecordingEmitter:
    """Event collaborator that remembers what it was told."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, str, str, Dict[str, Any]]] = []
        self._lock = threading.Lock()

    def emit(self, event_name: str, booking: Any, extra: Optional[Dict[str, Any]] = None) -> None:
        with self._lock:
            self.events.append(
                (event_name, booking.id, booking.current_status.value, dict(extra or {}))
            )

    @property
    def names(self) -> List[str]:
        return [name for name, _, _, _ in self.events]

    def clear(self) -> None:
        self.events.clear()


class FailingEmitter:
    def __init__(self) -> None:
        self.calls = 0

    def emit(self, event_name: str, booking: Any, extra: Optional[Dict[str, Any]] = None) -> None:
        self.calls += 1
        raise RuntimeError("notification service down")


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch):
    monkeypatch.setattr(settings, "redis_url", None)
    monkeypatch.setattr(settings, "celery_broker_url", None)
    monkeypatch.setattr(settings, "booking_pending_ttl_minutes", 360)
    monkeypatch.setattr(settings, "booking_start_buffer_minutes", 30)
    tutor_lock_module.set_redis_client(None)
    yield
    tutor_lock_module.set_redis_client(None)


@pytest.fixture
def engine(tmp_path):
    test_engine = build_engine(f"sqlite:///{tmp_path / 'tutorbook-test.db'}")
    Base.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(T0)


@pytest.fixture
def emitter() -> RecordingEmitter:
    return RecordingEmitter()


def schedule_entry(
    day: DayOfWeek,
    start: str,
    class_type: ClassType = ClassType.ONLINE,
    tz: str = JAKARTA,
    duration: int = 60,
) -> ScheduleEntryIn:
    return ScheduleEntryIn(
        day_of_week=day,
        class_type=class_type,
        start_time=start,
        timezone=tz,
        duration_minutes=duration,
    )


@pytest.fixture
def make_schedule(db, clock):
    """Replace a tutor's schedule: make_schedule([entries], tutor_id=..., tz=...)."""

    def _make(entries, tutor_id: str = TUTOR_ID, tz: str = JAKARTA):
        return ScheduleService(db, clock=clock).replace_schedule(
            tutor_id, ScheduleReplace(timezone=tz, entries=list(entries))
        )

    return _make


@pytest.fixture
def tutor_schedule(make_schedule):
    """Monday 10:00 and 13:00 online, Wednesday 09:00 offline, all in Jakarta."""
    return make_schedule(
        [
            schedule_entry(DayOfWeek.MONDAY, "10:00"),
            schedule_entry(DayOfWeek.MONDAY, "13:00"),
            schedule_entry(DayOfWeek.WEDNESDAY, "09:00", ClassType.OFFLINE, duration=90),
        ]
    )


@pytest.fixture
def booking_service(db, clock, emitter) -> BookingService:
    return BookingService(db, clock=clock, event_emitter=emitter)


@pytest.fixture
def availability_service(db, clock) -> AvailabilityService:
    return AvailabilityService(db, clock=clock)


@pytest.fixture
def request_booking(booking_service):
    """Request a Monday 10:00 Jakarta online lesson unless told otherwise."""

    def _request(
        booking_date: Any = NEXT_MONDAY,
        start_time: Any = "10:00",
        student_id: str = STUDENT_ID,
        tutor_id: str = TUTOR_ID,
        tz: str = JAKARTA,
        class_type: Any = "online",
        duration: Any = 60,
        notes: Optional[str] = None,
        service: Optional[BookingService] = None,
    ):
        return (service or booking_service).request_booking(
            tutor_id=tutor_id,
            student_id=student_id,
            course_id=COURSE_ID,
            booking_date=booking_date,
            start_time=start_time,
            timezone=tz,
            class_type=class_type,
            duration_minutes=duration,
            notes=notes,
        )

    return _request


@pytest.fixture
def times_on(availability_service):
    """Open slot times for one date: times_on(date, class_type='online')."""

    def _times(day: date, class_type: str = "online", tutor_id: str = TUTOR_ID) -> List[str]:
        (record,) = availability_service.get_availability_list(tutor_id, class_type, day, day)
        return [slot.time for slot in record.available_slots]

    return _times


@pytest.fixture
def failing_emitter() -> FailingEmitter:
    return FailingEmitter()


@pytest.fixture
def entry():
    """Factory for schedule entries: entry(DayOfWeek.MONDAY, "10:00", duration=90)."""
    return schedule_entry
