"""HTTP middleware for request ID propagation and correlation.

Every request/response pair carries a correlation id so rate limit
decisions, storage failures and webhook deliveries can be traced back to
the request that caused them.

The middleware:
- Accepts the incoming request id header or generates a UUID
- Stores request_id in contextvars for the logging filters
- Echoes the id and the total duration in response headers
- Clears the context after the request completes

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from limitr.core.config import settings
from limitr.core.logging import clear_request_id, set_request_id


async def request_id_middleware(request: Request, call_next) -> Response:
    """Bind a request id for the lifetime of the request.

    The header name comes from ``settings.log.request_id_header``. It is
    registered after the rate limit middleware so that it runs outermost and
    fail-open and limit-exceeded logs already carry the id.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The downstream response with id and duration headers added.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
