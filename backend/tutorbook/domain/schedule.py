"""
Weekly schedule value objects.

Pure data with a single query, ``slots_for``; no I/O. Built by the schedule
repository from ORM rows, or directly in tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
from typing import Dict, Iterable, List, Tuple

from ..core.enums import ClassType, DayOfWeek


@dataclass(frozen=True)
class RecurringSlot:
    """One recurring entry: local start time, its timezone and length."""

    time: time
    timezone: str
    duration_minutes: int


@dataclass(frozen=True)
class WeeklySchedule:
    """A tutor's weekly template of slots per (day of week, class type)."""

    tutor_id: str
    timezone: str
    entries: Dict[Tuple[DayOfWeek, ClassType], Tuple[RecurringSlot, ...]] = field(
        default_factory=dict
    )

    @classmethod
    def from_entries(
        cls,
        tutor_id: str,
        timezone: str,
        entries: Iterable[Tuple[int, ClassType, RecurringSlot]],
    ) -> "WeeklySchedule":
        """Group (day, class_type, slot) triples, keeping the order they arrive in."""
        grouped: Dict[Tuple[DayOfWeek, ClassType], List[RecurringSlot]] = {}
        for day, class_type, slot in entries:
            key = (DayOfWeek(day), ClassType(class_type))
            grouped.setdefault(key, []).append(slot)
        return cls(
            tutor_id=tutor_id,
            timezone=timezone,
            entries={key: tuple(slots) for key, slots in grouped.items()},
        )

    def slots_for(self, day_of_week: int, class_type: ClassType) -> List[RecurringSlot]:
        """
        Recurring slots for a weekday and class type, in configured order.

        Unknown pairs return an empty list.
        """
        return list(self.entries.get((DayOfWeek(day_of_week), ClassType(class_type)), ()))

    def has_slot(
        self, day_of_week: int, class_type: ClassType, start: time, timezone: str
    ) -> bool:
        return any(
            slot.time == start and slot.timezone == timezone
            for slot in self.slots_for(day_of_week, class_type)
        )
