"""Request ID middleware for log correlation.

Adds an X-Request-ID header to every response. A well-formed ID supplied by
the client or gateway is reused; otherwise a new UUID is generated. The ID
is exposed through a context variable so that error bodies and log records
(see hydrotrack.core.logging.RequestIdFilter) can carry it.
"""

import re
import uuid
from collections.abc import Callable
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

REQUEST_ID_HEADER = "X-Request-ID"

# Gateway-supplied IDs end up in logs; keep them short and printable
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def get_request_id() -> str | None:
    """Request ID of the current request, or None outside a request."""
    return request_id_ctx.get()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Ensure every request has an X-Request-ID."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER)
        if incoming and _VALID_REQUEST_ID.match(incoming):
            request_id = incoming
        else:
            request_id = str(uuid.uuid4())

        token = request_id_ctx.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
