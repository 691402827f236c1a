"""
Base exception classes for application-wide error handling.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Missing/invalid input, amount mismatch
    ├── NotFoundError - Offer/Payment/JobRequest missing
    ├── PermissionDeniedError
    │   └── AuthorizationError - Actor is not a party to the offer/payment
    ├── ConflictError
    │   └── StateConflictError - Operation invalid for current status
    └── ExternalServiceError
        └── ExternalGatewayError - Payment gateway / network failures

Duplicate deliveries and repeated confirmations are NOT errors. Services
report them as ``ServiceResult.success`` with ``already_processed`` set
(see core.services.ServiceResult.noop).

Usage:
    from core.exceptions import StateConflictError, ValidationError

    raise ValidationError(
        "Negotiation field 'price' must be set before confirmation",
        error_code="MISSING_FIELD",
        details={"field": "price"},
    )

    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=e.http_status)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, ids, states)
        http_status: Status code used by the API layer
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to the API error envelope.

        Example:
            {
                "success": False,
                "error": "Offer not found",
                "error_code": "NOT_FOUND",
                "details": {"offer_id": "..."}
            }
        """
        result: dict[str, Any] = {
            "success": False,
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Error codes in use:
        VALIDATION_ERROR: Generic invalid input
        MISSING_FIELD: A negotiation term required by the operation is unset
        NO_CHANGES: A negotiation update did not change any term
        AMOUNT_MISMATCH: Checkout amount differs from the agreed price
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """Raised when a requested resource does not exist."""

    default_error_code: str = "NOT_FOUND"
    http_status = 404


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when user lacks permission for an operation.

    For authentication failures (missing/invalid token), DRF's
    AuthenticationFailed is used instead.
    """

    default_error_code: str = "PERMISSION_DENIED"
    http_status = 403


class AuthorizationError(PermissionDeniedError):
    """
    Raised when the actor is neither provider nor seeker of the
    offer/payment, or holds the wrong role for the operation.

    Example:
        if user.pk != offer.provider_id:
            raise AuthorizationError(
                "Only the provider can withdraw this offer",
                details={"offer_id": str(offer.pk)},
            )
    """

    default_error_code: str = "AUTHORIZATION_ERROR"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    HTTP 409 Conflict is the appropriate status for these errors.
    """

    default_error_code: str = "CONFLICT"
    http_status = 409


class StateConflictError(ConflictError):
    """
    Raised when an operation is invalid for the current status.

    Examples: accepting without agreement, rejecting a negotiated offer,
    cancelling twice, releasing funds that are not held.
    """

    default_error_code: str = "STATE_CONFLICT"


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Log the original error for debugging but don't expose
    internal details to clients.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status = 502


class ExternalGatewayError(ExternalServiceError):
    """
    Raised when the payment gateway rejects or cannot serve a request.

    Subclasses in payments.exceptions set ``is_retryable`` so Celery
    tasks can decide whether to back off and retry.
    """

    default_error_code: str = "EXTERNAL_GATEWAY_ERROR"
    is_retryable: bool = False
