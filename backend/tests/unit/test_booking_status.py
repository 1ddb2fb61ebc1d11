from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

import pytest

from tutorbook.core.enums import ClassType
from tutorbook.core.exceptions import InvalidStateTransitionException
from tutorbook.models.booking import ACTIVE_STATUSES, ALLOWED_TRANSITIONS, Booking, BookingStatus

NOW = datetime(2024, 9, 2, 1, 0, tzinfo=timezone.utc)


def _booking(**overrides) -> Booking:
    starts_at = datetime(2024, 9, 9, 3, 0, tzinfo=timezone.utc)
    values = dict(
        id="01J00000000000000000000000",
        code="BK20240902ABCDE",
        tutor_id="tutor-1",
        student_id="student-1",
        course_id="course-math",
        class_type=ClassType.ONLINE,
        booking_date=date(2024, 9, 9),
        start_time=time(10, 0),
        timezone="Asia/Jakarta",
        duration_minutes=60,
        starts_at=starts_at,
        ends_at=starts_at + timedelta(hours=1),
        created_at=NOW,
        updated_at=NOW,
        expired_at=NOW + timedelta(hours=6),
    )
    values.update(overrides)
    return Booking(**values)


def test_new_booking_is_pending() -> None:
    assert _booking().current_status == BookingStatus.PENDING


@pytest.mark.parametrize(
    "status",
    [
        BookingStatus.DECLINED,
        BookingStatus.EXPIRED,
        BookingStatus.CANCELLED,
        BookingStatus.COMPLETED,
    ],
)
def test_terminal_statuses_have_no_transitions(status: BookingStatus) -> None:
    assert ALLOWED_TRANSITIONS[status] == frozenset()
    assert status not in ACTIVE_STATUSES


def test_no_status_can_reenter_pending() -> None:
    for status in BookingStatus:
        assert not status.can_transition_to(BookingStatus.PENDING)


def test_transition_to_accepted_clears_expiry() -> None:
    booking = _booking()

    previous = booking.transition_to(BookingStatus.ACCEPTED, NOW)

    assert previous == BookingStatus.PENDING
    assert booking.current_status == BookingStatus.ACCEPTED
    assert booking.expired_at is None
    assert booking.responded_at == NOW


def test_unlisted_transition_is_rejected_without_mutation() -> None:
    booking = _booking(status=BookingStatus.DECLINED)

    with pytest.raises(InvalidStateTransitionException) as exc_info:
        booking.transition_to(BookingStatus.ACCEPTED, NOW)

    assert booking.current_status == BookingStatus.DECLINED
    assert exc_info.value.details["current_status"] == "declined"
    assert exc_info.value.details["target_status"] == "accepted"


def test_pending_booking_is_overdue_from_its_expiry_instant() -> None:
    booking = _booking()
    expires = NOW + timedelta(hours=6)

    assert not booking.is_overdue(expires - timedelta(seconds=1))
    assert booking.is_overdue(expires)
    # Stored status is untouched until the expiry path runs
    assert booking.current_status == BookingStatus.PENDING


def test_overlap_is_half_open() -> None:
    booking = _booking()
    end = booking.session_end_utc

    assert booking.overlaps(end - timedelta(minutes=1), end + timedelta(hours=1))
    assert not booking.overlaps(end, end + timedelta(hours=1))


def test_naive_database_values_are_read_as_utc() -> None:
    booking = _booking(starts_at=datetime(2024, 9, 9, 3, 0), ends_at=datetime(2024, 9, 9, 4, 0))

    assert booking.session_start_utc == datetime(2024, 9, 9, 3, 0, tzinfo=timezone.utc)


def test_to_dict_uses_local_and_utc_fields() -> None:
    payload = _booking().to_dict()

    assert payload["date"] == "2024-09-09"
    assert payload["time"] == "10:00"
    assert payload["status"] == "pending"
    assert payload["starts_at"] == "2024-09-09T03:00:00+00:00"
