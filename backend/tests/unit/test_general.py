"""Tests for general routes."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from catalink import __version__
from catalink.app import create_app


@pytest.fixture
def client() -> TestClient:
    """Create test client."""
    return TestClient(create_app())


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["version"] == __version__
    assert isinstance(data["trace_id"], str)


def test_unknown_route(client: TestClient) -> None:
    assert client.get("/api/nope").status_code == 404
