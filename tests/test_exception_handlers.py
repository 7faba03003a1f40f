"""Tests for global exception handlers.

Validates that all exception types are handled consistently with
proper HTTP status codes, error format, and no information leakage.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from skycache.core.errors import (
    AppError,
    ArtifactNotFoundAppError,
    AuthenticationAppError,
    BannedAppError,
    QuotaExceededAppError,
    UpstreamAppError,
    ValidationAppError,
)
from skycache.core.exception_handlers import (
    general_exception_handler,
    setup_exception_handlers,
    status_for,
)


@pytest.fixture
def app_with_handlers(make_settings) -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    app.state.settings = make_settings()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers)


def _raising(app: FastAPI, path: str, exc: Exception) -> None:
    @app.get(path)
    async def endpoint():
        raise exc


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (ValidationAppError(code="c", message="m"), 400),
        (AuthenticationAppError(code="c", message="m"), 403),
        (ArtifactNotFoundAppError(code="c", message="m"), 404),
        (QuotaExceededAppError(code="c", message="m"), 429),
        (BannedAppError(code="c", message="m"), 429),
        (UpstreamAppError(code="c", message="m"), 502),
        (AppError(code="c", message="m"), 500),
    ],
)
def test_status_mapping(error: AppError, expected: int) -> None:
    assert status_for(error) == expected


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    def test_validation_error_includes_details(self, client, app_with_handlers) -> None:
        _raising(
            app_with_handlers,
            "/validation",
            ValidationAppError(
                code="invalid_category",
                message="bad category",
                details={"category": "a b"},
            ),
        )

        response = client.get("/validation")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "invalid_category"
        assert error["details"] == {"category": "a b"}
        assert "request_id" in error

    def test_details_omitted_when_empty(self, client, app_with_handlers) -> None:
        _raising(app_with_handlers, "/missing", ArtifactNotFoundAppError(code="artifact_not_found", message="nope"))

        error = client.get("/missing").json()["error"]

        assert error["code"] == "artifact_not_found"
        assert "details" not in error

    def test_quota_error_carries_rate_limit_headers(self, client, app_with_handlers) -> None:
        _raising(
            app_with_handlers,
            "/limited",
            QuotaExceededAppError(
                code="rate_limit_exceeded",
                message="slow down",
                details={"limit": 5, "remaining": 0, "reset_at": 1_000_060, "retry_after": 42},
            ),
        )

        response = client.get("/limited")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "42"
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.headers["X-RateLimit-Reset"] == "1000060"

    def test_ban_without_details_still_sends_retry_after(self, client, app_with_handlers) -> None:
        _raising(app_with_handlers, "/banned", BannedAppError(code="client_banned", message="banned"))

        response = client.get("/banned")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "1"
        assert "X-RateLimit-Limit" not in response.headers

    def test_quota_headers_suppressed_when_disabled(self, make_settings) -> None:
        app = FastAPI()
        app.state.settings = make_settings(rate_limit={"include_headers": False})
        setup_exception_handlers(app)
        _raising(
            app,
            "/limited",
            QuotaExceededAppError(
                code="rate_limit_exceeded",
                message="slow down",
                details={"limit": 5, "remaining": 0, "reset_at": 1, "retry_after": 3},
            ),
        )

        response = TestClient(app).get("/limited")

        assert response.headers["Retry-After"] == "3"
        assert "X-RateLimit-Limit" not in response.headers

    def test_request_validation_errors_become_400(self, client, app_with_handlers) -> None:
        @app_with_handlers.get("/items")
        async def items(limit: int):
            return {"limit": limit}

        response = client.get("/items", params={"limit": "many"})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "invalid_request"
        assert error["details"]["context"]["errors"][0]["loc"] == ["query", "limit"]


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_general_exception_handler_hides_internals(self) -> None:
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = RuntimeError("sqlite file /var/cache/artifacts.sqlite3 is locked")
        response = asyncio.run(general_exception_handler(request, exc))

        data = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        assert "sqlite" not in json.dumps(data)
        assert "RuntimeError" not in json.dumps(data)

    def test_unexpected_exception_returns_500(self, app_with_handlers) -> None:
        _raising(app_with_handlers, "/boom", RuntimeError("boom"))

        response = TestClient(app_with_handlers, raise_server_exceptions=False).get("/boom")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "internal_server_error"

    def test_setup_registers_handlers(self, app_with_handlers) -> None:
        assert AppError in app_with_handlers.exception_handlers
        assert Exception in app_with_handlers.exception_handlers
