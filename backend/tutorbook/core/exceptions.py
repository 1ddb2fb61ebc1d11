# backend/tutorbook/core/exceptions.py
"""
Domain-specific exceptions for the booking engine.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when input is malformed (bad date, time, timezone, duration or class type)."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class UnauthorizedException(DomainException):
    """Raised when the acting user lacks rights for the action."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class SlotConflictException(ConflictException):
    """Raised when a requested slot overlaps an active booking or admission lost the race."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot conflicts with an existing booking",
            code="SLOT_CONFLICT",
            details=details or {},
        )


class InvalidStateTransitionException(ConflictException):
    """Raised when an action is not legal for the booking's status or the acting user."""

    def __init__(
        self,
        current_status: str,
        target_status: Optional[str] = None,
        *,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = {"current_status": current_status, "target_status": target_status}
        merged.update(details or {})
        super().__init__(
            message=message
            or f"Cannot move booking from '{current_status}' to '{target_status}'",
            code="INVALID_STATE_TRANSITION",
            details=merged,
        )


class InsufficientNoticeException(ValidationException):
    """Raised when a booking is requested too close to the session start."""

    def __init__(self, required_minutes: int, provided_minutes: float):
        super().__init__(
            message=f"Bookings must be made at least {required_minutes} minutes in advance",
            code="INSUFFICIENT_NOTICE",
            details={
                "required_minutes": required_minutes,
                "provided_minutes": round(provided_minutes, 2),
            },
        )


class LockUnavailableException(ServiceException):
    """Raised when a tutor's or student's critical section cannot be entered in time."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, owner_id: str, timeout_s: float, scope: str = "tutor"):
        super().__init__(
            message=f"The {scope}'s schedule is busy, please retry",
            code=f"{scope.upper()}_LOCK_TIMEOUT",
            details={f"{scope}_id": owner_id, "timeout_seconds": timeout_s},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
