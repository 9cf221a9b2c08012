"""
Inceptra Backend — Access Logging Middleware
==============================================

What:  One access-log line per request: method, path, status, duration,
       request id, client IP and (when known) the user id.
Why:   Generation requests can take a minute or more while candidates fall
       back; duration per request is the first thing operators look at.
How:   Measures wall time around call_next and logs on the
       `inceptra.access` logger. The level follows the status class
       (5xx → ERROR, 4xx → WARNING, else INFO).

Request bodies are never logged: prompts and resumes are user content.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.config import settings
from app.middleware.request_id import request_id_var

logger = logging.getLogger("inceptra.access")

QUIET_PATHS = {"/", "/health", "/api/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        # Liveness probes are too frequent to log
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        client_ip = request.client.host if request.client else "unknown"
        user_id = request.headers.get(settings.identity_header, "-")
        rid = request_id_var.get("")

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] user=%s from %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            user_id,
            client_ip,
            extra={
                "request_id": rid,
                "status": status,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return response
