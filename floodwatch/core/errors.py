"""
Centralised error handling: exception hierarchy + FastAPI handlers.

The monitor itself never lets these escape a cycle; they surface through
the HTTP layer (manual start/run, area lookups) and through repository
implementations.

Usage:
    from floodwatch.core.errors import NotFoundError, register_error_handlers

    raise NotFoundError("Area", id="a-17")
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from floodwatch.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class FloodWatchError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class NotFoundError(FloodWatchError):
    """Resource not found (404)."""

    def __init__(self, resource: str, **identifiers: Any):
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details={"resource": resource, **identifiers},
        )


class ValidationError(FloodWatchError):
    """Input validation failed (422)."""

    def __init__(self, message: str, *, field: Optional[str] = None, **details: Any):
        d = {**details}
        if field:
            d["field"] = field
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details=d,
        )


class ExternalServiceError(FloodWatchError):
    """External API call failed (502)."""

    def __init__(self, service: str, message: str = "", **details: Any):
        super().__init__(
            message=f"External service '{service}' failed: {message}",
            status_code=502,
            error_code="EXTERNAL_SERVICE_ERROR",
            details={"service": service, **details},
        )


class WeatherUnavailableError(FloodWatchError):
    """Weather credential missing or malformed: monitoring cannot run (503)."""

    def __init__(self, message: str = "Weather provider credential is missing or invalid"):
        super().__init__(
            message=message,
            status_code=503,
            error_code="WEATHER_UNAVAILABLE",
        )


class RepositoryError(FloodWatchError):
    """Area store read or write failed (503)."""

    def __init__(self, operation: str, message: str = "", **details: Any):
        super().__init__(
            message=f"Area store {operation} failed: {message}",
            status_code=503,
            error_code="REPOSITORY_ERROR",
            details={"operation": operation, **details},
        )


class MonitorBusyError(FloodWatchError):
    """A monitor cycle is already in progress (409)."""

    def __init__(self, message: str = "A monitoring cycle is already running"):
        super().__init__(
            message=message,
            status_code=409,
            error_code="MONITOR_BUSY",
        )


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {
        "error": {
            "code": error_code,
            "message": message,
            "status": status_code,
        }
    }

    if details:
        body["error"]["details"] = details

    if request and not settings.is_production:
        body["error"]["path"] = str(request.url.path)
        body["error"]["method"] = request.method

    return JSONResponse(status_code=status_code, content=body)


def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(FloodWatchError)
    async def handle_floodwatch_error(request: Request, exc: FloodWatchError):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log("API Error [%s]: %s | details=%s", exc.error_code, exc.message, exc.details)
        return _build_error_response(
            exc.status_code, exc.error_code, exc.message,
            exc.details, request,
        )

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError):
        logger.warning("ValueError: %s", exc)
        return _build_error_response(
            422, "VALIDATION_ERROR", str(exc), request=request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical("Unhandled exception: %s\n%s", exc, traceback.format_exc())
        message = str(exc) if settings.DEBUG else "Internal server error"
        return _build_error_response(500, "INTERNAL_ERROR", message, request=request)
