from datetime import time

import pytest

from tutorbook.core.enums import ClassType, DayOfWeek
from tutorbook.core.exceptions import NotFoundException
from tutorbook.schemas.availability import ScheduleEntryIn, ScheduleReplace
from tutorbook.services.schedule_service import ScheduleService


@pytest.fixture
def schedule_service(db, clock):
    return ScheduleService(db, clock=clock)


def _entry(start, day=DayOfWeek.MONDAY):
    return ScheduleEntryIn(
        day_of_week=day,
        class_type=ClassType.ONLINE,
        start_time=start,
        timezone="Asia/Jakarta",
        duration_minutes=60,
    )


def test_replace_keeps_entry_order(schedule_service):
    schedule_service.replace_schedule(
        "tutor-1",
        ScheduleReplace(timezone="Asia/Jakarta", entries=[_entry("13:00"), _entry("09:00")]),
    )

    stored = schedule_service.get_schedule("tutor-1")

    assert [slot.time for slot in stored.slots_for(0, ClassType.ONLINE)] == [time(13), time(9)]


def test_replace_discards_previous_entries(schedule_service):
    schedule_service.replace_schedule(
        "tutor-1", ScheduleReplace(timezone="Asia/Jakarta", entries=[_entry("09:00")])
    )
    schedule_service.replace_schedule(
        "tutor-1",
        ScheduleReplace(timezone="Asia/Jakarta", entries=[_entry("15:00", DayOfWeek.FRIDAY)]),
    )

    stored = schedule_service.get_schedule("tutor-1")

    assert stored.slots_for(0, ClassType.ONLINE) == []
    assert [slot.time for slot in stored.slots_for(4, ClassType.ONLINE)] == [time(15)]


def test_timezone_defaults_to_configured_default(schedule_service):
    schedule = schedule_service.replace_schedule(
        "tutor-1", ScheduleReplace(entries=[_entry("09:00")])
    )

    assert schedule.timezone == "Asia/Jakarta"
    assert schedule_service.get_schedule("tutor-1").timezone == "Asia/Jakarta"


def test_unknown_tutor(schedule_service):
    with pytest.raises(NotFoundException):
        schedule_service.get_schedule("nobody")


def test_operations_are_counted_per_service(schedule_service):
    with pytest.raises(NotFoundException):
        schedule_service.get_schedule("nobody")

    metrics = schedule_service.get_metrics()["get_schedule"]

    assert metrics["count"] == 1
    assert metrics["failure_count"] == 1
    assert metrics["success_rate"] == 0.0
