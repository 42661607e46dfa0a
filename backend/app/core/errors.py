"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Domain-specific exception classes (admission, lookup, delivery)
    • Consistent JSON error response format
    • Automatic logging of unhandled errors
    • Request context in error responses (non-production)

Admission errors (UnsupportedChannelError, MissingScheduleTimeError,
PastScheduleTimeError, DuplicateNotificationError) are raised synchronously
to the caller. Late delivery failures of scheduled notifications are never
raised; the scheduler logs them and records them in its history.
DeliveryFailedError is only raised on the immediate-send path.

Usage:
    from backend.app.core.errors import (
        NotificationServiceError,
        UnsupportedChannelError,
        register_error_handlers,
    )

    raise UnsupportedChannelError("fax")
"""

from __future__ import annotations

import logging
import traceback
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.app.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class NotificationServiceError(Exception):
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


class NotFoundError(NotificationServiceError):
    """Resource not found (404)."""

    def __init__(self, resource: str, **identifiers: Any):
        details = {"resource": resource, **identifiers}
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details=details,
        )


class UnsupportedChannelError(NotificationServiceError):
    """Channel tag has no registered sender (400)."""

    def __init__(self, channel: Any):
        tag = getattr(channel, "value", channel)
        super().__init__(
            message=f"Unsupported notification channel: {tag}",
            status_code=400,
            error_code="UNSUPPORTED_CHANNEL",
            details={"channel": str(tag)},
        )
        self.channel = tag


class MissingScheduleTimeError(NotificationServiceError):
    """Scheduling requested without a delivery time (400)."""

    def __init__(self, notification_id: str):
        super().__init__(
            message="Scheduled time is required",
            status_code=400,
            error_code="MISSING_SCHEDULE_TIME",
            details={"notification_id": notification_id},
        )


class PastScheduleTimeError(NotificationServiceError):
    """Delivery time is not strictly in the future (400)."""

    def __init__(self, notification_id: str, scheduled_at: datetime, now: datetime):
        super().__init__(
            message="Scheduled time must be in the future",
            status_code=400,
            error_code="PAST_SCHEDULE_TIME",
            details={
                "notification_id": notification_id,
                "scheduled_at": scheduled_at.isoformat(),
                "now": now.isoformat(),
            },
        )


class DuplicateNotificationError(NotificationServiceError):
    """A notification with the same id is already pending (409)."""

    def __init__(self, notification_id: str):
        super().__init__(
            message=f"Notification {notification_id} is already scheduled",
            status_code=409,
            error_code="DUPLICATE_NOTIFICATION",
            details={"notification_id": notification_id},
        )


class DeliveryFailedError(NotificationServiceError):
    """The channel sender reported a failure (502)."""

    def __init__(self, notification_id: str, channel: str, message: str = ""):
        super().__init__(
            message=f"Notification {notification_id} delivery failed on {channel}: {message}",
            status_code=502,
            error_code="DELIVERY_FAILED",
            details={"notification_id": notification_id, "channel": channel},
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
    """Build a consistent JSON error response."""
    body: Dict[str, Any] = {
        "error": {
            "code": error_code,
            "message": message,
            "status": status_code,
        }
    }

    if details:
        body["error"]["details"] = details

    # Include request path in non-production
    if request and not settings.is_production:
        body["error"]["path"] = str(request.url.path)
        body["error"]["method"] = request.method

    return JSONResponse(status_code=status_code, content=body)


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(NotificationServiceError)
    async def handle_service_error(request: Request, exc: NotificationServiceError):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "API Error [%s]: %s | details=%s",
            exc.error_code, exc.message, exc.details,
        )
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
        logger.critical(
            "Unhandled exception: %s\n%s",
            exc, traceback.format_exc(),
        )
        message = str(exc) if settings.DEBUG else "Internal server error"
        details = (
            {"traceback": traceback.format_exc().split("\n")}
            if settings.DEBUG else None
        )
        return _build_error_response(
            500, "INTERNAL_ERROR", message, details, request,
        )
