"""
Core views providing infrastructure endpoints and API error translation.

- health_check: liveness/readiness probe
- application_error_response: converts core.exceptions into DRF responses
  so domain views stay thin
"""

from __future__ import annotations

import logging

from django.db import connection
from django.http import JsonResponse
from rest_framework.response import Response

from core.exceptions import BaseApplicationError

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Health check endpoint for monitoring and orchestration.

    Returns:
        JsonResponse with "status", "database" and "cache" keys.
        200 when the database is reachable, 503 otherwise. Cache
        failures degrade the report but do not fail the check.
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
    }
    is_healthy = True

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except Exception:
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        is_healthy = False

    try:
        from django.core.cache import cache

        cache.set("health_check", "ok", timeout=1)
        if cache.get("health_check") == "ok":
            health_status["cache"] = "connected"
        else:
            health_status["cache"] = "disconnected"
    except Exception:
        health_status["cache"] = "disconnected"

    status_code = 200 if is_healthy else 503

    return JsonResponse(health_status, status=status_code)


def application_error_response(exc: BaseApplicationError) -> Response:
    """
    Build the error envelope for a domain exception.

    Status comes from the exception class (400 validation, 403
    authorization, 404 not found, 409 state conflict, 502 gateway).
    """
    log = logger.warning if exc.http_status < 500 else logger.error
    log(
        f"Request failed: {exc.error_code}",
        extra={"error_code": exc.error_code, "details": exc.details},
    )
    return Response(exc.to_dict(), status=exc.http_status)


class ApplicationErrorMixin:
    """
    APIView mixin that renders core.exceptions through
    application_error_response; everything else goes to DRF's handler.
    """

    def handle_exception(self, exc):
        if isinstance(exc, BaseApplicationError):
            return application_error_response(exc)
        return super().handle_exception(exc)
