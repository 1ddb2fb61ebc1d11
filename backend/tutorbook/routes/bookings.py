# backend/tutorbook/routes/bookings.py
"""
Booking routes.

Thin wrapper over BookingService; all rules live in the service.

Router Endpoints:
    POST / - Request a booking (actor is the student)
    GET /{booking_id} - Booking details (overdue pending bookings read as expired)
    POST /{booking_id}/respond - Tutor accepts or declines
    POST /{booking_id}/cancel - Either party cancels before the session
    POST /{booking_id}/complete - Tutor marks an accepted, finished session completed
"""

import logging

from fastapi import APIRouter, Depends, status

from ..dependencies import get_actor_id, get_booking_service
from ..schemas.booking import BookingRequestBody, BookingRespond, BookingResponse
from ..services.booking_service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    body: BookingRequestBody,
    actor_id: str = Depends(get_actor_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Request a session with a tutor. The booking starts as pending."""
    booking = booking_service.request_booking(
        tutor_id=body.tutor_id,
        student_id=actor_id,
        course_id=body.course_id,
        booking_date=body.date,
        start_time=body.time,
        timezone=body.timezone,
        class_type=body.class_type,
        duration_minutes=body.duration_minutes,
        notes=body.notes,
    )
    return BookingResponse.model_validate(booking)


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: str,
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    return BookingResponse.model_validate(booking_service.get_booking(booking_id))


@router.post("/{booking_id}/respond", response_model=BookingResponse)
def respond_to_booking(
    booking_id: str,
    body: BookingRespond,
    actor_id: str = Depends(get_actor_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    booking = booking_service.respond_to_booking(
        booking_id, actor_id, body.decision, reason=body.reason
    )
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: str,
    actor_id: str = Depends(get_actor_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Cancel a pending or accepted booking before the session starts."""
    return BookingResponse.model_validate(booking_service.cancel_booking(booking_id, actor_id))


@router.post("/{booking_id}/complete", response_model=BookingResponse)
def complete_booking(
    booking_id: str,
    actor_id: str = Depends(get_actor_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Tutor marks a finished session completed. The scheduled job does this otherwise."""
    return BookingResponse.model_validate(
        booking_service.complete_booking(booking_id, actor_id)
    )
