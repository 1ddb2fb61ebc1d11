from __future__ import annotations

from datetime import time

from tutorbook.core.enums import ClassType, DayOfWeek
from tutorbook.domain.schedule import RecurringSlot, WeeklySchedule


def _slot(hh: int, mm: int = 0, tz: str = "Asia/Jakarta", duration: int = 60) -> RecurringSlot:
    return RecurringSlot(time=time(hh, mm), timezone=tz, duration_minutes=duration)


def test_slots_keep_configured_order() -> None:
    schedule = WeeklySchedule.from_entries(
        "tutor-1",
        "Asia/Jakarta",
        [
            (DayOfWeek.MONDAY, ClassType.ONLINE, _slot(13)),
            (DayOfWeek.MONDAY, ClassType.ONLINE, _slot(9)),
            (DayOfWeek.MONDAY, ClassType.ONLINE, _slot(11)),
        ],
    )

    assert [slot.time for slot in schedule.slots_for(DayOfWeek.MONDAY, ClassType.ONLINE)] == [
        time(13),
        time(9),
        time(11),
    ]


def test_class_types_have_separate_slots() -> None:
    schedule = WeeklySchedule.from_entries(
        "tutor-1",
        "Asia/Jakarta",
        [
            (0, ClassType.ONLINE, _slot(10)),
            (0, ClassType.OFFLINE, _slot(15, duration=90)),
        ],
    )

    assert schedule.slots_for(0, ClassType.ONLINE) == [_slot(10)]
    assert schedule.slots_for(0, ClassType.OFFLINE) == [_slot(15, duration=90)]


def test_unknown_pair_returns_empty_list() -> None:
    schedule = WeeklySchedule.from_entries(
        "tutor-1", "Asia/Jakarta", [(DayOfWeek.MONDAY, ClassType.ONLINE, _slot(10))]
    )

    assert schedule.slots_for(DayOfWeek.TUESDAY, ClassType.ONLINE) == []
    assert schedule.slots_for(DayOfWeek.MONDAY, ClassType.OFFLINE) == []
    assert WeeklySchedule("tutor-2", "UTC").slots_for(DayOfWeek.SUNDAY, ClassType.ONLINE) == []


def test_has_slot_matches_time_and_timezone() -> None:
    schedule = WeeklySchedule.from_entries(
        "tutor-1", "Asia/Jakarta", [(DayOfWeek.MONDAY, ClassType.ONLINE, _slot(10))]
    )

    assert schedule.has_slot(DayOfWeek.MONDAY, ClassType.ONLINE, time(10), "Asia/Jakarta")
    assert not schedule.has_slot(DayOfWeek.MONDAY, ClassType.ONLINE, time(10), "Asia/Singapore")
    assert not schedule.has_slot(DayOfWeek.MONDAY, ClassType.ONLINE, time(10, 30), "Asia/Jakarta")


def test_returned_list_is_a_copy() -> None:
    schedule = WeeklySchedule.from_entries(
        "tutor-1", "Asia/Jakarta", [(DayOfWeek.MONDAY, ClassType.ONLINE, _slot(10))]
    )

    schedule.slots_for(DayOfWeek.MONDAY, ClassType.ONLINE).clear()

    assert len(schedule.slots_for(DayOfWeek.MONDAY, ClassType.ONLINE)) == 1
