"""Request correlation middleware for EventDesk.

Assigns every request a ULID, binds it to the logging context so each log line
emitted while handling the request carries ``request_id``, and echoes it back
in the ``X-Request-ID`` response header.
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.utils.logger import bind_request_id, reset_request_id
from app.utils.ulid import generate_ulid

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        request_id = generate_ulid()
        token = bind_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            reset_request_id(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
