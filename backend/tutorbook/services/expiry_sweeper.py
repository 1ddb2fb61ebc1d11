# backend/tutorbook/services/expiry_sweeper.py
"""
Expiry Sweeper

Periodically moves overdue pending bookings to ``expired``. Each booking
goes through BookingService.expire_booking, the same locked path that
lazy expiry on read uses, so concurrent sweeps and user actions never
double-transition a booking: whoever comes second finds it out of
pending and skips it.
"""

from dataclasses import dataclass
import logging
import time
from typing import Optional, Set

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import Settings, settings
from ..core.exceptions import DomainException
from ..events.booking_events import BookingEventEmitter
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .booking_service import BookingService

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    examined: int = 0
    expired: int = 0
    skipped: int = 0
    failed: int = 0
    budget_exhausted: bool = False

    def to_dict(self) -> dict:
        return {
            "examined": self.examined,
            "expired": self.expired,
            "skipped": self.skipped,
            "failed": self.failed,
            "budget_exhausted": self.budget_exhausted,
        }


class ExpirySweeper(BaseService):
    """Batch expiry of overdue pending bookings within a time budget."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        event_emitter: Optional[BookingEventEmitter] = None,
        config: Optional[Settings] = None,
    ):
        super().__init__(db, clock)
        self.settings = config or settings
        self.repository = RepositoryFactory.create_booking_repository(db)
        self.booking_service = BookingService(
            db, clock=self.clock, event_emitter=event_emitter, config=self.settings
        )

    @BaseService.measure_operation("sweep_expired_bookings")
    def run(
        self,
        batch_size: Optional[int] = None,
        time_budget_s: Optional[float] = None,
    ) -> SweepResult:
        """
        Expire overdue pending bookings, batch by batch, until none are left
        or the time budget runs out. Remaining work is picked up next run.
        """
        batch_size = batch_size or self.settings.expiry_sweep_batch_size
        budget = (
            time_budget_s
            if time_budget_s is not None
            else self.settings.expiry_sweep_time_budget_seconds
        )
        deadline = time.monotonic() + budget
        result = SweepResult()
        attempted: Set[str] = set()

        while True:
            overdue = self.repository.get_overdue_pending(self.clock.now(), batch_size)
            batch_ids = [booking.id for booking in overdue if booking.id not in attempted]
            self.end_read_snapshot()
            if not batch_ids:
                break

            for booking_id in batch_ids:
                if time.monotonic() >= deadline:
                    result.budget_exhausted = True
                    break
                attempted.add(booking_id)
                result.examined += 1
                try:
                    if self.booking_service.expire_booking(booking_id):
                        result.expired += 1
                    else:
                        result.skipped += 1
                except DomainException as exc:
                    # Lock timeouts and the like; retried on the next run
                    result.failed += 1
                    self.logger.warning(
                        f"Could not expire booking {booking_id}: {exc.message}",
                        extra={"booking_id": booking_id, "code": exc.code},
                    )

            if result.budget_exhausted or len(overdue) < batch_size:
                break

        if result.examined:
            self.log_operation("sweep_expired_bookings", **result.to_dict())
        return result
