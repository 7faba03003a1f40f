"""HTTP middleware: request correlation and quota headers.

``request_id_middleware`` accepts the client's correlation id (header
configurable via ``LOG_REQUEST_ID_HEADER``) or generates a UUID, exposes it
to logging through a context variable and echoes it on the response with
the request duration.

``rate_limit_headers_middleware`` copies the governor verdict left on
``request.state.rate_limit`` into ``X-RateLimit-*`` headers, so allowed
responses carry them whether a route returns a model or a raw Response.
Blocked requests get the same headers from the exception handlers.

Usage:
    app.middleware("http")(rate_limit_headers_middleware)
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from skycache.core.logging import clear_request_id, set_request_id
from skycache.core.rate_limit import quota_headers


async def request_id_middleware(request: Request, call_next) -> Response:
    """Propagate a correlation id and report the request duration.

    Side Effects:
        - Sets the request id for log correlation during the request
        - Adds the request id header and ``X-Request-Duration-ms`` to the response
    """
    header_name = request.app.state.settings.log.request_id_header
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


async def rate_limit_headers_middleware(request: Request, call_next) -> Response:
    """Attach quota headers for governed requests."""
    response: Response = await call_next(request)

    result = getattr(request.state, "rate_limit", None)
    if result is None or not request.app.state.settings.rate_limit.include_headers:
        return response

    for name, value in quota_headers(result).items():
        response.headers.setdefault(name, value)
    return response
