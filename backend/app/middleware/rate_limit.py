"""
Inceptra Backend — Per-IP Rate Limiting Middleware
====================================================

What:  Sliding-window request limiter keyed by client IP.
Why:   The daily feature quotas are per user and only count successful
       generations. This limiter caps raw request volume per IP (default 100
       requests per 15 minutes), including failed and unauthenticated calls.
How:   Keeps a deque of request timestamps per IP in memory. On each request
       expired timestamps are dropped; a full window gets a 429 with the
       standard error body and a Retry-After header.

Scope:
    In-memory state is per process. With several uvicorn workers each worker
    enforces its own window.
"""

import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.config import settings
from app.exceptions import RateLimitExceededError
from app.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

# Prune idle IPs every this many admitted requests
CLEANUP_INTERVAL = 1000


def client_ip_of(request: Request) -> str:
    """
    The socket peer, or the first X-Forwarded-For hop when trust_forwarded_for
    is on. The header is client-controlled unless a proxy overwrites it.
    """
    forwarded = request.headers.get("X-Forwarded-For", "") if settings.trust_forwarded_for else ""
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window rate limiter.

    Configuration (from settings):
        rate_limit_requests: Max requests per window (default: 100)
        rate_limit_window:   Window duration in seconds (default: 900)
    """

    EXCLUDED_PATHS = {"/", "/health", "/api/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, max_requests: int = 0, window: int = 0, **kwargs):
        super().__init__(app, **kwargs)
        self.max_requests = max_requests or settings.rate_limit_requests
        self.window = window or settings.rate_limit_window
        self._requests: Dict[str, Deque[float]] = defaultdict(deque)
        self._admitted = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        client_ip = client_ip_of(request)
        now = time.time()
        window_start = now - self.window

        timestamps = self._requests[client_ip]
        while timestamps and timestamps[0] <= window_start:
            timestamps.popleft()

        if len(timestamps) >= self.max_requests:
            retry_after = int(timestamps[0] + self.window - now) + 1
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                client_ip,
                len(timestamps),
                self.window,
            )
            exc = RateLimitExceededError(retry_after=retry_after)
            return JSONResponse(
                status_code=exc.status_code,
                content={
                    "error": exc.code,
                    "message": exc.message,
                    "status_code": exc.status_code,
                    "details": exc.context,
                    "request_id": request_id_var.get(""),
                },
                headers={"Retry-After": str(retry_after)},
            )

        timestamps.append(now)
        self._admitted += 1
        if self._admitted % CLEANUP_INTERVAL == 0:
            self._cleanup_inactive_ips(window_start)

        return await call_next(request)

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        inactive_ips = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] <= window_start
        ]
        for ip in inactive_ips:
            del self._requests[ip]
        if inactive_ips:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive_ips))
