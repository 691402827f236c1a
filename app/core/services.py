"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with logging, transactions and secondary effects

Service Layer Philosophy:
    Services encapsulate business logic separate from views and models.
    Views handle HTTP concerns, models handle data, services handle logic.

Pattern Comparison:
    - Exceptions (core.exceptions): rule violations raised by negotiation
      and settlement operations, translated to HTTP errors by views
    - ServiceResult: results of webhook handlers and gateway-facing steps
      whose failure is recorded instead of propagated

Ordering contract:
    The authoritative mutation (Offer/Payment/JobRequest rows) commits
    first inside ``cls.atomic()``. Notifications, realtime pushes and
    payouts are registered with ``cls.after_commit()`` and only log on
    failure.

Usage:
    from core.services import BaseService, ServiceResult

    class EscrowLedger(BaseService):
        @classmethod
        def mark_escrowed(cls, session_id: str) -> ServiceResult[Payment]:
            with cls.atomic():
                payment = Payment.objects.select_for_update().get(...)
                ...
                cls.after_commit("notify provider", lambda: ...)
            return ServiceResult.success(payment)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from typing import Any

# Generic type for ServiceResult data
T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for client handling
        errors: Field-level errors for validation failures
        already_processed: True when the call was a duplicate whose
            effect had already been applied (idempotent no-op)

    Usage:
        result = EscrowLedger.mark_escrowed(session_id, payment_intent_id)
        if result.success and result.already_processed:
            logger.info("Duplicate delivery ignored")
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)
    already_processed: bool = False

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """Create a successful result."""
        return cls(success=True, data=data)

    @classmethod
    def noop(cls, data: T) -> ServiceResult[T]:
        """
        Create a successful result for a duplicate/no-longer-applicable call.

        Example:
            if payment.status == PaymentStatus.ESCROWED:
                return ServiceResult.noop(payment)
        """
        return cls(success=True, data=data, already_processed=True)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Example:
            return ServiceResult.failure(
                f"Payment not found for session: {session_id}",
                error_code="PAYMENT_NOT_FOUND",
            )
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    @classmethod
    def from_exception(cls, exc: Exception, error_code: str | None = None) -> ServiceResult[T]:
        """
        Create a failed result from an exception.

        Application errors keep their own error_code.
        """
        if isinstance(exc, BaseApplicationError):
            return cls(
                success=False,
                error=exc.message,
                error_code=error_code or exc.error_code,
            )
        return cls(
            success=False,
            error=str(exc),
            error_code=error_code or exc.__class__.__name__.upper(),
        )

    def to_response(self) -> dict[str, Any]:
        """
        Convert to API response format.

        Returns:
            Dict with success status and data or error details
        """
        if self.success:
            response: dict[str, Any] = {"success": True, "data": self.data}
            if self.already_processed:
                response["already_processed"] = True
            return response

        response = {
            "success": False,
            "error": self.error,
        }
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response

    def map(self, func) -> ServiceResult:
        """Transform the data if successful, keeping the no-op flag."""
        if self.success and self.data is not None:
            return ServiceResult(
                success=True,
                data=func(self.data),
                already_processed=self.already_processed,
            )
        return self  # type: ignore

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Provides common utilities for services:
    - Logging setup per service
    - Database transaction management
    - Post-commit secondary effects that never fail the caller

    Design Notes:
        - Use @classmethod (no instance state) unless collaborators are
          injected through __init__
        - Raise core.exceptions for rule violations
        - Use ServiceResult where a failure is recorded, not propagated
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named after the service class for easy filtering."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Thin wrapper around Django's transaction.atomic() that makes the
        primary-mutation boundary explicit in service code.
        """
        with transaction.atomic():
            yield

    @classmethod
    def after_commit(cls, description: str, func: Callable[[], Any]) -> None:
        """
        Run a secondary effect once the surrounding transaction commits.

        Exceptions raised by ``func`` are logged with the description and
        swallowed; the committed primary mutation is never affected.
        Outside a transaction the effect runs immediately.

        Args:
            description: Short label used in log lines ("notify provider")
            func: Zero-argument callable performing the effect
        """

        def run() -> None:
            try:
                func()
            except Exception:
                cls.get_logger().error(
                    f"Secondary effect failed: {description}",
                    exc_info=True,
                )

        transaction.on_commit(run)
