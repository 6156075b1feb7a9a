"""Tests for middleware functionality."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from catalink.app import create_app


@pytest.fixture
def client() -> TestClient:
    """Create test client."""
    return TestClient(create_app())


def test_trace_id_header_added_to_response(client: TestClient) -> None:
    response = client.get("/api/health")

    assert response.status_code == 200
    assert len(response.headers["X-Trace-ID"]) == 32  # UUID4 hex


def test_trace_id_header_preserved(client: TestClient) -> None:
    """An incoming X-Trace-ID is reused for the whole request."""
    trace_id = "custom-trace-id-1234567890"

    response = client.get("/api/health", headers={"X-Trace-ID": trace_id})

    assert response.headers["X-Trace-ID"] == trace_id
    assert response.json()["trace_id"] == trace_id


def test_trace_id_consistent_across_request(client: TestClient) -> None:
    response = client.get("/api/health")

    assert response.headers["X-Trace-ID"] == response.json()["trace_id"]


def test_trace_id_different_for_each_request(client: TestClient) -> None:
    first = client.get("/api/health").headers["X-Trace-ID"]
    second = client.get("/api/health").headers["X-Trace-ID"]

    assert first != second
