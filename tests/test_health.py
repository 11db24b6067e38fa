from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.core import health
from app.main import app

client = TestClient(app)

OK = {"status": "ok"}


@pytest.fixture
def probes(monkeypatch):
    """Replace the database and Redis probes with canned answers."""
    monkeypatch.setattr(health.settings, "environment", "test")

    def _set(database: dict = OK, redis: dict = OK) -> None:
        async def _database():
            return database

        async def _redis():
            return redis

        monkeypatch.setattr(health, "_check_db", _database)
        monkeypatch.setattr(health, "_check_redis", _redis)

    return _set


def _data(path: str) -> dict:
    resp = client.get(path)
    assert resp.status_code == 200
    return resp.json()["data"]


def test_liveness_needs_no_dependencies():
    body = client.get("/api/v1/health/live").json()
    assert body["code"] == "ok"
    assert body["data"]["status"] == "ok"
    assert "timestamp" in body["data"]


def test_request_id_is_echoed():
    resp = client.get("/api/v1/health/live", headers={"X-Request-ID": "loan-req-42"})
    assert resp.headers["x-request-id"] == "loan-req-42"


def test_request_id_is_generated_when_absent():
    assert len(client.get("/api/v1/health/live").headers["x-request-id"]) == 32


def test_ready_when_database_and_redis_answer(probes):
    probes()
    data = _data("/api/v1/health/ready")

    assert (data["status"], data["ready"], data["environment"]) == ("ok", True, "test")
    assert data["checks"]["database"] == OK
    assert data["checks"]["redis"] == OK


def test_plain_health_reports_degraded_redis(probes):
    probes(redis={"status": "error", "error": "refused"})
    data = _data("/api/v1/health")

    assert data["status"] == "degraded"
    assert data["ready"] is False
    assert data["checks"]["redis"]["error"] == "refused"


def test_summary_carries_version_and_approval_policy(probes, monkeypatch):
    probes()
    monkeypatch.setattr(health.settings, "gm_review_threshold", Decimal("10000000"))
    data = _data("/api/v1/status/summary")

    assert data["version"] == health.APP_VERSION
    assert data["workflow"]["gm_review_threshold"] == "10000000"
    assert data["workflow"]["notifications_enabled"] is False
