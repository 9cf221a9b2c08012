"""
Inceptra Backend — Request ID Middleware
==========================================

What:  Assigns a short correlation id to every request.
Why:   A single generation request logs from several layers (quota ledger,
       each fallback attempt, recorder). The id ties those lines together
       and is returned to the client in error bodies and X-Request-ID.
How:   Reuses a client-supplied X-Request-ID when present, otherwise
       generates one. The id lives in a ContextVar (per coroutine) and in
       request.state.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

MAX_CLIENT_ID_LENGTH = 64


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Sets request_id_var and echoes the id in the X-Request-ID header."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID", "")[:MAX_CLIENT_ID_LENGTH]
        if not rid:
            rid = str(uuid.uuid4())[:8]

        # Not reset afterwards: the catch-all error handler runs outside this
        # middleware and still reads the id
        request_id_var.set(rid)
        request.state.request_id = rid
        response = await call_next(request)

        response.headers["X-Request-ID"] = rid
        return response
