from __future__ import annotations

from datetime import date, datetime, time, timezone

import pytest

from tutorbook.core.exceptions import ValidationException
from tutorbook.core.timezone_utils import (
    NonExistentLocalTimeError,
    ensure_utc,
    local_to_utc,
    today_in,
)


def test_local_to_utc_fixed_offset_zone() -> None:
    assert local_to_utc(date(2024, 9, 9), time(10, 0), "Asia/Jakarta") == datetime(
        2024, 9, 9, 3, 0, tzinfo=timezone.utc
    )


def test_local_to_utc_uses_rules_of_the_target_date() -> None:
    winter = local_to_utc(date(2024, 1, 15), time(9, 0), "America/New_York")
    summer = local_to_utc(date(2024, 7, 15), time(9, 0), "America/New_York")

    assert winter.hour == 14
    assert summer.hour == 13


def test_spring_forward_gap_is_rejected() -> None:
    with pytest.raises(NonExistentLocalTimeError):
        local_to_utc(date(2024, 3, 10), time(2, 30), "America/New_York")


def test_fall_back_overlap_resolves_to_first_occurrence() -> None:
    # 01:30 happens twice on 2024-11-03; the first one is still EDT (UTC-4)
    assert local_to_utc(date(2024, 11, 3), time(1, 30), "America/New_York") == datetime(
        2024, 11, 3, 5, 30, tzinfo=timezone.utc
    )


def test_unknown_timezone_is_a_validation_error() -> None:
    with pytest.raises(ValidationException) as exc_info:
        local_to_utc(date(2024, 9, 9), time(10, 0), "Mars/Olympus_Mons")

    assert exc_info.value.code == "INVALID_TIMEZONE"


def test_today_is_evaluated_in_the_given_timezone() -> None:
    now = datetime(2024, 9, 8, 20, 0, tzinfo=timezone.utc)

    assert today_in("UTC", now) == date(2024, 9, 8)
    assert today_in("Asia/Jakarta", now) == date(2024, 9, 9)


def test_ensure_utc_attaches_utc_to_naive_values() -> None:
    assert ensure_utc(datetime(2024, 9, 9, 3, 0)).tzinfo == timezone.utc
