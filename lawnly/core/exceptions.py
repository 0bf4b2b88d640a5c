# lawnly/core/exceptions.py
"""
Domain errors for the Lawnly booking core.

Each class fixes the HTTP status the API layer answers with; ``code`` is
the machine-readable reason clients branch on.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or type(self).__name__
        self.details = details or {}

    def to_http_exception(self) -> HTTPException:
        payload = {"message": self.message, "code": self.code, "details": self.details}
        return HTTPException(status_code=self.status_code, detail=payload)


class ValidationException(DomainException):
    """Request is well-formed but breaks a booking rule (400)."""

    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedException(DomainException):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenException(DomainException):
    """Caller is authenticated but not a party to the resource."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundException(DomainException):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Another actor got there first (claimed job, existing dispute)."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """An external system or the database failed underneath a workflow (500)."""


# Workflow-specific errors


class InvalidTransitionException(ValidationException):
    """Raised when a status change is not an edge of the lifecycle graph."""

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            message=f"Cannot move {entity} from '{current}' to '{target}'",
            code="INVALID_TRANSITION",
            details={"entity": entity, "from": current, "to": target},
        )


class PreconditionFailedException(BusinessRuleException):
    """Raised when an actor's request cannot proceed in the current state."""

    def __init__(
        self,
        message: str,
        code: str = "PRECONDITION_FAILED",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=code, details=details)


class PaymentDeclinedException(BusinessRuleException):
    """Raised when the customer's card is declined."""

    def __init__(self, message: str, decline_code: Optional[str] = None):
        super().__init__(
            message=message,
            code="PAYMENT_DECLINED",
            details={"decline_code": decline_code} if decline_code else {},
        )


class PaymentProcessorException(ServiceException):
    """Raised when the payment processor fails for a reason other than a decline."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="PAYMENT_PROCESSOR_ERROR", details=details)


class TransferFailedException(ServiceException):
    """Raised when a contractor payout transfer fails."""

    def __init__(self, booking_id: str, amount_cents: int, reason: str):
        super().__init__(
            message=f"Payout transfer failed for booking {booking_id}: {reason}",
            code="TRANSFER_FAILED",
            details={"booking_id": booking_id, "amount_cents": amount_cents},
        )


class RepositoryException(Exception):
    """A query or flush failed in the data access layer."""


class DuplicateRecordException(RepositoryException):
    """Raised when an insert violates a uniqueness constraint."""
