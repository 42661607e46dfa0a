"""
Request middleware — correlation IDs and one access log line per request.

Every record logged while a request is handled carries its request_id
(see ``log_context``); the id is taken from the caller's X-Request-ID header
when present and echoed back on the response.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from backend.app.core.logging_config import log_context

logger = logging.getLogger(__name__)

# Probe and docs traffic is logged at DEBUG
_QUIET_PREFIXES = ("/health", "/docs", "/redoc", "/openapi")


def _access_level(path: str, status_code: int) -> int:
    if path.startswith(_QUIET_PREFIXES):
        return logging.DEBUG
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag logs with a request id and record status and latency."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        path = request.url.path

        with log_context(request_id=request_id, method=request.method, path=path):
            start = time.perf_counter()
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start) * 1000

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = f"{duration_ms:.1f}ms"
            logger.log(
                _access_level(path, response.status_code),
                "%s %s → %d (%.1fms)",
                request.method, path, response.status_code, duration_ms,
                extra={"duration_ms": duration_ms, "status_code": response.status_code},
            )
        return response
