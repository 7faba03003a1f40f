from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from skycache.core.app_factory import create_app


@pytest.fixture
def client(make_settings, upstream) -> TestClient:
    return TestClient(create_app(make_settings(), upstream=upstream))


def test_preserves_incoming_request_id_header(client):
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID")
    assert resp.headers.get("X-Request-Duration-ms") is not None


def test_request_id_is_echoed_in_error_bodies(client):
    resp = client.get("/v1/artifacts/curiosity/missing", headers={"X-Request-ID": "corr-42"})

    assert resp.status_code == 404
    assert resp.json()["error"]["request_id"] == "corr-42"
    assert resp.headers["X-Request-ID"] == "corr-42"


def test_request_id_header_is_configurable(make_settings, upstream):
    settings = make_settings()
    settings.log.request_id_header = "X-Correlation-ID"
    client = TestClient(create_app(settings, upstream=upstream))

    resp = client.get("/health", headers={"X-Correlation-ID": "abc"})

    assert resp.headers["X-Correlation-ID"] == "abc"
