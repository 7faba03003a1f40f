"""Global exception handlers for consistent error responses.

Design:
- AppError subclasses map to HTTP statuses (400, 403, 404, 429, 502)
- Rate limit errors carry ``Retry-After`` and ``X-RateLimit-*`` headers
- Unexpected Exception → generic 500 (safety net, no internals leaked)
- Every body has the shape ``{"error": {"code", "message", "request_id", "details?"}}``
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from skycache.core.errors import (
    AppError,
    ArtifactNotFoundAppError,
    AuthenticationAppError,
    RateLimitAppError,
    UpstreamAppError,
    ValidationAppError,
)
from skycache.core.logging import get_request_id

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (ValidationAppError, 400),
    (AuthenticationAppError, 403),
    (ArtifactNotFoundAppError, 404),
    (RateLimitAppError, 429),
    (UpstreamAppError, 502),
)


def status_for(exc: AppError) -> int:
    """Return the HTTP status for a domain error (500 if unmapped)."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def _error_body(code: str, message: str, details: object | None = None) -> dict:
    error: dict = {"code": code, "message": message, "request_id": get_request_id()}
    if details:
        error["details"] = details
    return {"error": error}


def _rate_limit_headers(request: Request, exc: RateLimitAppError) -> dict[str, str]:
    details = exc.details or {}
    headers = {"Retry-After": str(details.get("retry_after", 1))}
    if request.app.state.settings.rate_limit.include_headers:
        for header, key in (
            ("X-RateLimit-Limit", "limit"),
            ("X-RateLimit-Remaining", "remaining"),
            ("X-RateLimit-Reset", "reset_at"),
        ):
            if key in details:
                headers[header] = str(details[key])
    return headers


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render a domain error with its mapped status code.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the error envelope.
    """
    status_code = status_for(exc)
    logger.log(
        logging.ERROR if status_code >= 500 else logging.WARNING,
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
        },
    )

    headers = _rate_limit_headers(request, exc) if isinstance(exc, RateLimitAppError) else None
    return JSONResponse(
        status_code=status_code,
        content=_error_body(exc.code, exc.message, exc.details),
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI parameter/body validation failures as 400 errors."""
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    logger.warning(
        "app_error_handled",
        extra={"error_code": "invalid_request", "status_code": 400, "has_details": True},
    )
    return JSONResponse(
        status_code=400,
        content=_error_body(
            "invalid_request",
            "Request parameters failed validation",
            {"context": {"errors": errors}},
        ),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net)."""
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )
    return JSONResponse(
        status_code=500,
        content=_error_body(
            "internal_server_error",
            "An unexpected error occurred. Please try again later.",
        ),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(RequestValidationError)(request_validation_handler)
    app.exception_handler(Exception)(general_exception_handler)
