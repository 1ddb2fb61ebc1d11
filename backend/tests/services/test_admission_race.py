"""Concurrent requests for one slot: exactly one wins."""

from concurrent.futures import ThreadPoolExecutor
from datetime import date
import threading

from sqlalchemy import func, select

from tutorbook.core.enums import DayOfWeek
from tutorbook.core.exceptions import SlotConflictException
from tutorbook.models.booking import Booking, BookingStatus
from tutorbook.services.booking_service import BookingService

WORKERS = 8


def _race(session_factory, clock, emitter, attempts):
    """Run (student_id, tutor_id) requests for Monday 10:00 all at once."""
    barrier = threading.Barrier(len(attempts))

    def attempt(pair):
        student_id, tutor_id = pair
        session = session_factory()
        try:
            service = BookingService(session, clock=clock, event_emitter=emitter)
            barrier.wait()
            try:
                booking = service.request_booking(
                    tutor_id=tutor_id,
                    student_id=student_id,
                    course_id="course-math",
                    booking_date=date(2024, 9, 9),
                    start_time="10:00",
                    timezone="Asia/Jakarta",
                    class_type="online",
                    duration_minutes=60,
                )
                return ("ok", booking.id)
            except SlotConflictException as exc:
                return ("conflict", exc.details.get("conflict_scope"))
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=len(attempts)) as pool:
        return list(pool.map(attempt, attempts))


def test_only_one_of_many_concurrent_requests_is_admitted(
    tutor_schedule, session_factory, clock, emitter, db
):
    outcomes = _race(
        session_factory, clock, emitter, [(f"student-{i}", "tutor-1") for i in range(WORKERS)]
    )

    winners = [value for kind, value in outcomes if kind == "ok"]
    conflicts = [value for kind, value in outcomes if kind == "conflict"]
    assert len(winners) == 1
    assert conflicts == ["tutor"] * (WORKERS - 1)

    active = db.execute(
        select(func.count())
        .select_from(Booking)
        .where(Booking.tutor_id == "tutor-1", Booking.status == BookingStatus.PENDING)
    ).scalar_one()
    assert active == 1
    assert emitter.names == ["booking.created"]


def test_same_student_racing_gets_one_booking(tutor_schedule, session_factory, clock, emitter):
    outcomes = _race(session_factory, clock, emitter, [("student-1", "tutor-1")] * 4)

    assert sum(1 for kind, _ in outcomes if kind == "ok") == 1


def test_student_racing_across_tutors_gets_one_booking(
    make_schedule, entry, session_factory, clock, emitter, db
):
    for tutor_id in ("tutor-1", "tutor-2"):
        make_schedule([entry(DayOfWeek.MONDAY, "10:00")], tutor_id=tutor_id)

    outcomes = _race(
        session_factory, clock, emitter, [("student-1", "tutor-1"), ("student-1", "tutor-2")]
    )

    assert sorted(kind for kind, _ in outcomes) == ["conflict", "ok"]
    assert [value for kind, value in outcomes if kind == "conflict"] == ["student"]

    active = db.execute(
        select(func.count())
        .select_from(Booking)
        .where(Booking.student_id == "student-1", Booking.status == BookingStatus.PENDING)
    ).scalar_one()
    assert active == 1
    assert emitter.names == ["booking.created"]
