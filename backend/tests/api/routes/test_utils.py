"""Tests for /api/utils routes (liveness and health-check)."""

from typing import Any
from unittest.mock import patch

from fastapi.testclient import TestClient

from app.core.config import settings


def test_liveness_returns_true(client: TestClient) -> None:
    r = client.get(f"{settings.API_V1_STR}/utils/liveness/")
    assert r.status_code == 200
    assert r.json() is True


def test_health_check_reports_registry_stats(client: TestClient) -> None:
    r = client.get(f"{settings.API_V1_STR}/utils/health-check/")
    assert r.status_code == 200
    data = r.json()
    assert data["success"] is True
    assert data["data"] == {"sessions": 0, "pools": {}}


def test_health_check_returns_503_when_readiness_fails(client: TestClient) -> None:
    """GET /health-check/ returns 503 with envelope when readiness_check fails."""
    with patch(
        "app.api.routes.utils.readiness_check", return_value=(False, ["registry"], {})
    ):
        r = client.get(f"{settings.API_V1_STR}/utils/health-check/")
    assert r.status_code == 503
    data: dict[str, Any] = r.json()
    assert data.get("success") is False
    assert "registry" in data["data"]
