"""
Domain exceptions for the clinic booking service.

Raised by the persistence and booking layers and turned into HTTP responses
by the handler registered in ``clinic_booking.main``.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

from clinic_booking.core.conflicts import BookingDecision, DecisionKind

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


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
    """Raised when incoming data fails validation."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested record does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when a change conflicts with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class UnauthorizedException(DomainException):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenException(DomainException):
    status_code = status.HTTP_403_FORBIDDEN


class InvalidStatusTransition(BusinessRuleException):
    """Raised when an appointment cannot move to the requested status."""


_REJECTION_STATUS = {
    DecisionKind.INVALID_INTERVAL: status.HTTP_400_BAD_REQUEST,
    DecisionKind.INACTIVE_DOCTOR: HTTP_422_UNPROCESSABLE,
    DecisionKind.DOCTOR_DOUBLE_BOOKED: status.HTTP_409_CONFLICT,
    DecisionKind.ROOM_DOUBLE_BOOKED: status.HTTP_409_CONFLICT,
}


class BookingRejected(DomainException):
    """Raised when the conflict validator refuses a booking."""

    def __init__(self, decision: BookingDecision) -> None:
        self.decision = decision
        self.status_code = _REJECTION_STATUS.get(decision.kind, status.HTTP_400_BAD_REQUEST)
        super().__init__(
            decision.message,
            code=decision.kind.value,
            details=decision.as_dict(),
        )
