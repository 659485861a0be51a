"""
Request ID middleware for request correlation.

Every request gets an id, taken from the caller's X-Request-ID header when
it looks sane or generated otherwise. The id is echoed back in the response
header, attached to request.state for the error handlers, and published in
a context variable that the JSON log formatter reads.
"""

import re
import uuid
from contextvars import ContextVar
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"

# Upstream ids are copied into every log line, so keep them short and printable
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:\-]{1,128}$")


def resolve_request_id(header_value: Optional[str]) -> str:
    """
    Return the caller-supplied request id, or a new UUID4 if it is missing
    or malformed.
    """
    if header_value and _VALID_REQUEST_ID.match(header_value):
        return header_value
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a correlation id to each request and its response."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))

        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            # Avoid leaking the id into the next request on this task
            request_id_var.reset(token)
