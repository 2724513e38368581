"""
Request middleware for logging, timing, and request ID tracking.
"""

import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import structlog

from qrate.core.logging import get_logger

logger = get_logger(__name__)

_EVENT_PATH = re.compile(r"/events/([^/]+)")
# Polled by orchestrators and scrapers; logging every hit drowns the party traffic
_QUIET_PATHS = {"/health", "/metrics"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that:
    1. Assigns a unique request ID to each request
    2. Binds the event code from the path, so every log line of a request
       can be filtered by party
    3. Logs method, path, status code and duration (server errors at error level)
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = str(uuid.uuid4())[:8]
        start_time = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        context = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }
        match = _EVENT_PATH.search(request.url.path)
        if match:
            context["event_code"] = match.group(1).upper()
        structlog.contextvars.bind_contextvars(**context)

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            logger.error("request_failed", error=str(e), duration_ms=duration_ms)
            raise

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        if request.url.path not in _QUIET_PATHS:
            log = logger.error if response.status_code >= 500 else logger.info
            log("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        return response
