"""
CustomTees Backend — Request ID Middleware
============================================

What:  Assigns a correlation ID to every request and exposes it to logging.
Why:   A label purchase touches the database, UPS, storage and the email
       provider; one ID ties those log lines together and lets support find
       them from the `request_id` in an error response.
How:   Honors an incoming X-Request-ID or generates a short UUID, stores it
       in a ContextVar, echoes it in the response header. RequestIDLogFilter
       copies the ContextVar onto every LogRecord so the log format can use
       %(request_id)s.
"""

import logging
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Client-supplied IDs longer than this are replaced
MAX_REQUEST_ID_LENGTH = 64


class RequestIDLogFilter(logging.Filter):
    """Stamps `record.request_id` ("-" outside a request, e.g. the sync loop)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("") or "-"
        return True


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Behavior:
        1. Use the client's X-Request-ID when present and sane
        2. Otherwise generate an 8-char ID
        3. Store in the ContextVar and request.state
        4. Echo back in the X-Request-ID response header
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        incoming = request.headers.get("X-Request-ID", "").strip()
        if incoming and len(incoming) <= MAX_REQUEST_ID_LENGTH:
            rid = incoming
        else:
            rid = uuid.uuid4().hex[:8]

        # Not reset afterwards: the catch-all 500 handler runs outside this
        # middleware and still needs the ID
        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
