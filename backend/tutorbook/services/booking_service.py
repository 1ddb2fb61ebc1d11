# backend/tutorbook/services/booking_service.py
"""
Booking Service

The only writer of booking state. Handles:
- Admission of new booking requests (authoritative conflict check)
- Tutor responses (accept/decline)
- Cancellation by either party
- Completion after the session ended
- Expiry of overdue pending bookings (shared by reads and the sweeper)

Every write runs inside ``tutor_lock(tutor_id)`` plus a row lock on the
tutor's schedule; admission also holds the student's lock. Events are
emitted only after the write committed and the locks were released.
"""

from datetime import date, datetime, time, timedelta
import logging
import secrets
import string
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import Settings, settings
from ..core.enums import BookingDecision, BookingEventName
from ..core.exceptions import (
    DomainException,
    InsufficientNoticeException,
    InvalidStateTransitionException,
    NotFoundException,
    SlotConflictException,
    UnauthorizedException,
    ValidationException,
)
from ..core.timezone_utils import NonExistentLocalTimeError, local_to_utc
from ..core.tutor_lock import admission_lock, tutor_lock
from ..events.booking_events import BookingEventEmitter
from ..events.publisher import PendingEvent, emit_safely, get_default_event_emitter
from ..models.booking import Booking, BookingStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..schemas.booking import BookingCreate
from .base import BaseService

logger = logging.getLogger(__name__)

TUTOR_CONFLICT_MESSAGE = "Tutor already has a booking that overlaps this time"
STUDENT_CONFLICT_MESSAGE = "Student already has a booking that overlaps this time"
GENERIC_CONFLICT_MESSAGE = "This time slot conflicts with an existing booking"

TUTOR_OVERLAP_CONSTRAINT = "bookings_no_overlap_per_tutor"
STUDENT_OVERLAP_CONSTRAINT = "bookings_no_overlap_per_student"

BOOKING_CODE_ALPHABET = string.ascii_uppercase + string.digits
BOOKING_CODE_RANDOM_LENGTH = 5
_MAX_CODE_ATTEMPTS = 5

# Action run on a locked, freshly loaded booking. It may append events and
# may return an exception to raise after the transaction has committed.
_LockedAction = Callable[[Booking, datetime, List[PendingEvent]], Optional[DomainException]]


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "Invalid booking request")
    return f"{location}: {message}" if location else message


class BookingService(BaseService):
    """
    Service layer for booking operations.

    Centralizes all booking business logic and coordinates between
    repositories, the per-tutor lock and the notification collaborator.
    """

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        event_emitter: Optional[BookingEventEmitter] = None,
        config: Optional[Settings] = None,
    ):
        """
        Initialize booking service.

        Args:
            db: Database session
            clock: Time source (injected in tests)
            event_emitter: Notification collaborator; defaults per configuration
            config: Settings override
        """
        super().__init__(db, clock)
        self.settings = config or settings
        self.event_emitter = event_emitter or get_default_event_emitter()
        self.repository = RepositoryFactory.create_booking_repository(db)
        self.schedule_repository = RepositoryFactory.create_tutor_schedule_repository(db)

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def request_booking(
        self,
        tutor_id: str,
        student_id: str,
        course_id: str,
        booking_date: Any,
        start_time: Any,
        timezone: str,
        class_type: Any,
        duration_minutes: Any,
        notes: Optional[str] = None,
    ) -> Booking:
        """
        Parse raw request fields and admit the booking.

        Raises:
            ValidationException: Malformed input
            NotFoundException: Tutor has no matching schedule slot
            SlotConflictException: Tutor or student already busy
        """
        try:
            data = BookingCreate(
                tutor_id=tutor_id,
                student_id=student_id,
                course_id=course_id,
                booking_date=booking_date,
                start_time=start_time,
                timezone=timezone,
                class_type=class_type,
                duration_minutes=duration_minutes,
                notes=notes,
            )
        except ValidationError as exc:
            raise ValidationException(
                _validation_message(exc),
                code="INVALID_BOOKING_REQUEST",
                details={
                    "errors": exc.errors(
                        include_url=False, include_context=False, include_input=False
                    )
                },
            )
        return self.create_booking(data)

    @BaseService.measure_operation("create_booking")
    def create_booking(self, data: BookingCreate) -> Booking:
        """
        Admit a validated booking request.

        Pure checks run before the locks are taken; schedule match and
        conflict checks run inside them and are authoritative.
        """
        now = self.clock.now()
        starts_at, ends_at = self._session_interval(
            data.booking_date, data.start_time, data.timezone, data.duration_minutes
        )
        expired_at = self._validate_timing(starts_at, now)
        self.end_read_snapshot()

        events: List[PendingEvent] = []
        try:
            with admission_lock(data.tutor_id, data.student_id):
                with self.transaction():
                    booking = self._admit_locked(data, starts_at, ends_at, expired_at, now, events)
        except IntegrityError as exc:
            message, scope = self._resolve_integrity_conflict_message(exc)
            details = self._build_conflict_details(data)
            if scope:
                details["conflict_scope"] = scope
            raise SlotConflictException(message, details=details) from exc
        except OperationalError as exc:
            if self._is_deadlock_error(exc):
                raise SlotConflictException(
                    GENERIC_CONFLICT_MESSAGE, details=self._build_conflict_details(data)
                ) from exc
            raise

        prometheus_metrics.record_booking_transition("none", BookingStatus.PENDING.value)
        self.log_operation(
            "create_booking",
            booking_id=booking.id,
            tutor_id=booking.tutor_id,
            student_id=booking.student_id,
        )
        self._emit(events)
        return booking

    def _admit_locked(
        self,
        data: BookingCreate,
        starts_at: datetime,
        ends_at: datetime,
        expired_at: datetime,
        now: datetime,
        events: List[PendingEvent],
    ) -> Booking:
        schedule = self.schedule_repository.get_weekly_schedule(data.tutor_id, for_update=True)
        if schedule is None or not schedule.has_slot(
            data.booking_date.weekday(), data.class_type, data.start_time, data.timezone
        ):
            raise NotFoundException(
                "The tutor has no schedule slot at this day and time",
                code="SCHEDULE_SLOT_NOT_FOUND",
                details=self._build_conflict_details(data),
            )

        tutor_bookings = self.repository.get_active_tutor_bookings_between(
            data.tutor_id, starts_at, ends_at
        )
        live_tutor_bookings = []
        for existing in tutor_bookings:
            if existing.is_overdue(now):
                # Frees the interval before the insert below
                self._expire_locked(existing, now, events)
            else:
                live_tutor_bookings.append(existing)
        if live_tutor_bookings:
            details = self._build_conflict_details(data)
            details.update(
                conflict_scope="tutor", conflicting_booking_id=live_tutor_bookings[0].id
            )
            raise SlotConflictException(TUTOR_CONFLICT_MESSAGE, details=details)

        student_bookings = [
            existing
            for existing in self.repository.get_active_student_bookings_between(
                data.student_id, starts_at, ends_at
            )
            if not existing.is_overdue(now)
        ]
        if student_bookings:
            details = self._build_conflict_details(data)
            details.update(
                conflict_scope="student", conflicting_booking_id=student_bookings[0].id
            )
            raise SlotConflictException(STUDENT_CONFLICT_MESSAGE, details=details)

        booking = self.repository.create(
            code=self._generate_booking_code(now.date()),
            tutor_id=data.tutor_id,
            student_id=data.student_id,
            course_id=data.course_id,
            class_type=data.class_type,
            booking_date=data.booking_date,
            start_time=data.start_time,
            timezone=data.timezone,
            duration_minutes=data.duration_minutes,
            starts_at=starts_at,
            ends_at=ends_at,
            status=BookingStatus.PENDING,
            notes_tutor=data.notes,
            created_at=now,
            updated_at=now,
            expired_at=expired_at,
        )
        events.append((BookingEventName.CREATED.value, booking, None))
        return booking

    def _session_interval(
        self, booking_date: date, start_time: time, timezone: str, duration_minutes: int
    ) -> Tuple[datetime, datetime]:
        try:
            starts_at = local_to_utc(booking_date, start_time, timezone)
        except NonExistentLocalTimeError as exc:
            raise ValidationException(
                str(exc),
                code="NONEXISTENT_LOCAL_TIME",
                details={
                    "date": booking_date.isoformat(),
                    "time": start_time.strftime("%H:%M"),
                    "timezone": timezone,
                },
            )
        return starts_at, starts_at + timedelta(minutes=duration_minutes)

    def _validate_timing(self, starts_at: datetime, now: datetime) -> datetime:
        """
        Reject sessions in the past or too close to start.

        Returns:
            The expiry instant: min(now + TTL, session start - buffer)
        """
        if starts_at <= now:
            raise ValidationException(
                "Cannot book a time slot in the past",
                code="SLOT_IN_PAST",
                details={"starts_at": starts_at.isoformat()},
            )
        buffer = timedelta(minutes=self.settings.booking_start_buffer_minutes)
        latest_expiry = starts_at - buffer
        if latest_expiry <= now:
            raise InsufficientNoticeException(
                required_minutes=self.settings.booking_start_buffer_minutes,
                provided_minutes=(starts_at - now).total_seconds() / 60,
            )
        ttl = timedelta(minutes=self.settings.booking_pending_ttl_minutes)
        return min(now + ttl, latest_expiry)

    def _generate_booking_code(self, on: date) -> str:
        """Human-readable code: BK + YYYYMMDD + 5 random characters."""
        prefix = f"BK{on.strftime('%Y%m%d')}"
        for _ in range(_MAX_CODE_ATTEMPTS):
            suffix = "".join(
                secrets.choice(BOOKING_CODE_ALPHABET) for _ in range(BOOKING_CODE_RANDOM_LENGTH)
            )
            code = prefix + suffix
            if not self.repository.code_exists(code):
                return code
        # A collision here is still caught by the unique index
        return prefix + "".join(
            secrets.choice(BOOKING_CODE_ALPHABET) for _ in range(BOOKING_CODE_RANDOM_LENGTH)
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    @BaseService.measure_operation("respond_to_booking")
    def respond_to_booking(
        self,
        booking_id: str,
        actor_id: str,
        decision: Any,
        reason: Optional[str] = None,
    ) -> Booking:
        """
        Accept or decline a pending booking. Only the booking's tutor may respond.

        Raises:
            ValidationException: Unknown decision
            NotFoundException: Unknown booking
            InvalidStateTransitionException: Not pending, expired, or actor is not the tutor
        """
        try:
            resolved = BookingDecision(decision)
        except ValueError:
            raise ValidationException(
                f"Unknown decision: {decision}",
                code="INVALID_DECISION",
                details={"decision": decision},
            )
        target = (
            BookingStatus.ACCEPTED if resolved == BookingDecision.ACCEPT else BookingStatus.DECLINED
        )
        cleaned_reason = reason.strip() if reason and reason.strip() else None

        def respond(
            booking: Booking, now: datetime, events: List[PendingEvent]
        ) -> Optional[DomainException]:
            if booking.tutor_id != actor_id:
                raise InvalidStateTransitionException(
                    booking.current_status.value,
                    target.value,
                    message="Only the tutor of this booking can respond to it",
                    details={"actor_id": actor_id},
                )
            if booking.is_overdue(now):
                self._expire_locked(booking, now, events)
                return InvalidStateTransitionException(
                    BookingStatus.EXPIRED.value,
                    target.value,
                    message="This booking request has expired",
                )
            previous = booking.transition_to(target, now)
            if cleaned_reason is not None:
                booking.notes_student = cleaned_reason
            self._record_transition(booking, previous)
            event_name = (
                BookingEventName.ACCEPTED
                if target == BookingStatus.ACCEPTED
                else BookingEventName.DECLINED
            )
            extra = {"reason": cleaned_reason} if cleaned_reason else None
            events.append((event_name.value, booking, extra))
            return None

        return self._run_locked(booking_id, respond)

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(self, booking_id: str, actor_id: str) -> Booking:
        """
        Cancel a pending or accepted booking before its session starts.

        Raises:
            NotFoundException: Unknown booking
            UnauthorizedException: Actor is neither the tutor nor the student
            InvalidStateTransitionException: Terminal status or session already started
        """

        def cancel(
            booking: Booking, now: datetime, events: List[PendingEvent]
        ) -> Optional[DomainException]:
            if not booking.is_party(actor_id):
                raise UnauthorizedException(
                    "Only the tutor or the student of this booking can cancel it",
                    code="NOT_BOOKING_PARTY",
                    details={"booking_id": booking.id, "actor_id": actor_id},
                )
            if booking.is_overdue(now):
                self._expire_locked(booking, now, events)
                return InvalidStateTransitionException(
                    BookingStatus.EXPIRED.value,
                    BookingStatus.CANCELLED.value,
                    message="This booking request has expired",
                )
            current = booking.current_status
            if not current.can_transition_to(BookingStatus.CANCELLED):
                raise InvalidStateTransitionException(current.value, BookingStatus.CANCELLED.value)
            if now >= booking.session_start_utc:
                raise InvalidStateTransitionException(
                    current.value,
                    BookingStatus.CANCELLED.value,
                    message="Bookings can only be cancelled before the session starts",
                )
            previous = booking.transition_to(BookingStatus.CANCELLED, now)
            booking.cancelled_by_id = actor_id
            self._record_transition(booking, previous)
            cancelled_by = "tutor" if actor_id == booking.tutor_id else "student"
            events.append(
                (BookingEventName.CANCELLED.value, booking, {"cancelled_by": cancelled_by})
            )
            return None

        return self._run_locked(booking_id, cancel)

    @BaseService.measure_operation("complete_booking")
    def complete_booking(self, booking_id: str, actor_id: Optional[str] = None) -> Booking:
        """
        Mark an accepted booking completed once its session has ended.

        actor_id is None only for the scheduled completion job; any other
        caller must be the booking's tutor.

        Raises:
            NotFoundException: Unknown booking
            UnauthorizedException: Actor is not the tutor of this booking
            InvalidStateTransitionException: Not accepted, or session not over yet
        """

        def complete(
            booking: Booking, now: datetime, events: List[PendingEvent]
        ) -> Optional[DomainException]:
            if actor_id is not None and actor_id != booking.tutor_id:
                raise UnauthorizedException(
                    "Only the tutor of this booking can complete it",
                    code="NOT_BOOKING_TUTOR",
                    details={"booking_id": booking.id, "actor_id": actor_id},
                )
            if booking.is_overdue(now):
                self._expire_locked(booking, now, events)
                return InvalidStateTransitionException(
                    BookingStatus.EXPIRED.value, BookingStatus.COMPLETED.value
                )
            current = booking.current_status
            if not current.can_transition_to(BookingStatus.COMPLETED):
                raise InvalidStateTransitionException(current.value, BookingStatus.COMPLETED.value)
            if now < booking.session_end_utc:
                raise InvalidStateTransitionException(
                    current.value,
                    BookingStatus.COMPLETED.value,
                    message="The session has not ended yet",
                )
            previous = booking.transition_to(BookingStatus.COMPLETED, now)
            self._record_transition(booking, previous)
            events.append((BookingEventName.COMPLETED.value, booking, None))
            return None

        return self._run_locked(booking_id, complete)

    @BaseService.measure_operation("complete_finished_bookings")
    def complete_finished_bookings(self, limit: int = 200) -> int:
        """Complete accepted bookings whose session ended before the grace cutoff."""
        cutoff = self.clock.now() - timedelta(minutes=self.settings.completion_grace_minutes)
        candidate_ids = [
            booking.id for booking in self.repository.get_accepted_ended_before(cutoff, limit)
        ]
        completed = 0
        for booking_id in candidate_ids:
            try:
                self.complete_booking(booking_id)
                completed += 1
            except (InvalidStateTransitionException, NotFoundException) as exc:
                # Changed by someone else since the query
                self.logger.info(f"Skipping completion of booking {booking_id}: {exc.message}")
        if completed:
            self.log_operation("complete_finished_bookings", completed=completed)
        return completed

    # ------------------------------------------------------------------
    # Reads and expiry
    # ------------------------------------------------------------------

    @BaseService.measure_operation("get_booking")
    def get_booking(self, booking_id: str) -> Booking:
        """
        Load a booking, expiring it first if it is overdue.

        Raises:
            NotFoundException: Unknown booking
        """
        booking = self.repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(
                f"Booking {booking_id} not found",
                code="BOOKING_NOT_FOUND",
                details={"booking_id": booking_id},
            )
        if booking.is_overdue(self.clock.now()):
            booking, _ = self._expire_if_overdue(booking_id)
        return booking

    @BaseService.measure_operation("expire_booking")
    def expire_booking(self, booking_id: str) -> bool:
        """
        Expire one booking if it is still pending and overdue.

        Returns:
            True if this call moved the booking to expired, False if it was
            already out of pending or not yet due
        """
        _, changed = self._expire_if_overdue(booking_id)
        return changed

    def _expire_if_overdue(self, booking_id: str) -> Tuple[Booking, bool]:
        changed: List[bool] = []

        def expire(
            booking: Booking, now: datetime, events: List[PendingEvent]
        ) -> Optional[DomainException]:
            if booking.is_overdue(now):
                self._expire_locked(booking, now, events)
                changed.append(True)
            return None

        booking = self._run_locked(booking_id, expire)
        return booking, bool(changed)

    def _expire_locked(self, booking: Booking, now: datetime, events: List[PendingEvent]) -> None:
        """Move an overdue pending booking to expired. Caller holds the tutor lock."""
        previous = booking.transition_to(BookingStatus.EXPIRED, now)
        self._record_transition(booking, previous)
        events.append((BookingEventName.EXPIRED.value, booking, None))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _run_locked(self, booking_id: str, action: _LockedAction) -> Booking:
        """
        Run ``action`` on the booking inside the tutor's critical section.

        The booking is reloaded after the lock is held so the action always
        sees committed state. Events are emitted after commit and release.
        """
        tutor_id = self.repository.get_tutor_id(booking_id)
        if tutor_id is None:
            raise NotFoundException(
                f"Booking {booking_id} not found",
                code="BOOKING_NOT_FOUND",
                details={"booking_id": booking_id},
            )
        self.end_read_snapshot()

        events: List[PendingEvent] = []
        deferred: Optional[DomainException] = None
        with tutor_lock(tutor_id):
            with self.transaction():
                self.schedule_repository.lock_schedule_row(tutor_id)
                booking = self.repository.get_for_update(booking_id)
                if booking is None:
                    raise NotFoundException(
                        f"Booking {booking_id} not found",
                        code="BOOKING_NOT_FOUND",
                        details={"booking_id": booking_id},
                    )
                deferred = action(booking, self.clock.now(), events)

        self._emit(events)
        if deferred is not None:
            raise deferred
        return booking

    def _record_transition(self, booking: Booking, previous: BookingStatus) -> None:
        prometheus_metrics.record_booking_transition(previous.value, booking.current_status.value)
        self.log_operation(
            "booking_transition",
            booking_id=booking.id,
            from_status=previous.value,
            to_status=booking.current_status.value,
        )

    def _emit(self, events: List[PendingEvent]) -> None:
        if events:
            emit_safely(self.event_emitter, events)

    def _build_conflict_details(self, data: BookingCreate) -> Dict[str, Any]:
        return {
            "tutor_id": data.tutor_id,
            "student_id": data.student_id,
            "booking_date": data.booking_date.isoformat(),
            "start_time": data.start_time.strftime("%H:%M"),
            "timezone": data.timezone,
            "duration_minutes": data.duration_minutes,
        }

    def _resolve_integrity_conflict_message(
        self, integrity_error: IntegrityError
    ) -> Tuple[str, Optional[str]]:
        """
        Determine the appropriate conflict message and scope from a database IntegrityError.
        """
        constraint_name: str = ""
        orig = getattr(integrity_error, "orig", None)
        diag = getattr(orig, "diag", None)

        if diag is not None:
            constraint_name = getattr(diag, "constraint_name", "") or ""

        if not constraint_name and orig is not None:
            for candidate in (TUTOR_OVERLAP_CONSTRAINT, STUDENT_OVERLAP_CONSTRAINT):
                if candidate in str(orig):
                    constraint_name = candidate
                    break

        if constraint_name == TUTOR_OVERLAP_CONSTRAINT:
            return TUTOR_CONFLICT_MESSAGE, "tutor"
        if constraint_name == STUDENT_OVERLAP_CONSTRAINT:
            return STUDENT_CONFLICT_MESSAGE, "student"

        return GENERIC_CONFLICT_MESSAGE, None

    @staticmethod
    def _is_deadlock_error(exc: OperationalError) -> bool:
        orig = getattr(exc, "orig", None)
        pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        if pgcode in ("40P01", "40001"):
            return True
        message = str(exc).lower()
        return "deadlock detected" in message
