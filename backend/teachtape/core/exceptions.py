# backend/teachtape/core/exceptions.py
"""
Domain-specific exceptions for the TeachTape booking core.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

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
        """Convert to an HTTPException using the class status code."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when input or business validation fails (client-fixable)."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """
    Raised when a requested resource is not found.

    Also used when the resource exists but belongs to someone else, so callers
    cannot tell the two cases apart.
    """

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when state already moved on, a race was lost, or data already exists."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class UnauthorizedException(DomainException):
    """Raised when the caller is not authenticated (or a webhook is unsigned)."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenException(DomainException):
    """Raised when user lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class PaymentSetupIncompleteException(BusinessRuleException):
    """Raised when a coach cannot accept charges yet."""

    def __init__(self, coach_id: str, *, reason: str = "charges_not_enabled"):
        super().__init__(
            message=(
                "This coach isn't able to accept payments yet. "
                "Please check back soon or choose another coach."
            ),
            code="PAYMENT_SETUP_INCOMPLETE",
            details={"coach_id": coach_id, "reason": reason},
        )


class ProcessorException(DomainException):
    """Raised when the payment processor call fails before local state committed."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(
        self,
        message: str,
        *,
        retryable: bool,
        processor_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = dict(details or {})
        merged.update({"retryable": retryable, "processor_code": processor_code})
        super().__init__(message=message, code="PROCESSOR_ERROR", details=merged)
        self.retryable = retryable
        self.processor_code = processor_code


class BuyerNotRegisteredException(ValidationException):
    """Raised when a conversation needs the buyer's account but they have none."""

    def __init__(self, booking_id: str):
        super().__init__(
            message="The buyer hasn't created an account yet",
            code="BUYER_NOT_REGISTERED",
            details={"booking_id": booking_id},
        )


class SideEffectFailure(Exception):
    """
    Failure of a post-commit side effect (email, conversation bootstrap).

    Logged for operators; never surfaced to the caller of the transition.
    """

    def __init__(self, effect: str, booking_id: str, cause: Exception | None = None) -> None:
        self.effect = effect
        self.booking_id = booking_id
        self.cause = cause
        super().__init__(f"{effect} failed for booking {booking_id}: {cause}")


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
