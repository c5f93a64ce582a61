"""
NoteKeeper Backend — Request ID Middleware
============================================

What:  Tags each request with a short correlation ID.
How:   Reuses the client's `X-Request-ID` header when present, otherwise
       generates one; stores it in a ContextVar for loggers and error
       handlers, and echoes it in the response header.
When:  Outermost application middleware, so every later log line and every
       error body of the request carries the same ID.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Client-supplied IDs are truncated; they end up in log lines
        rid = (request.headers.get(REQUEST_ID_HEADER) or new_request_id())[:64]
        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
