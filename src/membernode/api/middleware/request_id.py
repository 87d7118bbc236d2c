"""Request ID middleware for the Member Node API.

Ensures every request has a unique request ID for log correlation.
"""

import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-Id"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach a request ID to every request and response.

    An incoming non-blank X-Request-Id is reused; otherwise a uuid4 is
    generated. The ID is stored on request.state.request_id.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        incoming_request_id = request.headers.get(REQUEST_ID_HEADER, "").strip()
        request_id = incoming_request_id or str(uuid.uuid4())

        request.state.request_id = request_id

        response: Response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
