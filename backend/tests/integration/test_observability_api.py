"""API tests for health, readiness, metrics and request correlation."""

import pytest

from observability import router as observability_router
from observability.health import ComponentHealth, HealthStatus


@pytest.fixture
def broker_health(monkeypatch):
    def _set(component: ComponentHealth):
        monkeypatch.setattr(observability_router, "check_broker_health", lambda url: component)

    return _set


class TestHealth:

    def test_healthy(self, client, broker_health):
        broker_health(ComponentHealth(status=HealthStatus.HEALTHY, message="Broker connection OK"))

        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["components"]["database"]["status"] == "healthy"

    def test_unreachable_broker_degrades(self, client, broker_health):
        broker_health(ComponentHealth(status=HealthStatus.DEGRADED, message="Broker error: refused"))

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["components"]["broker"]["message"] == "Broker error: refused"

    def test_ready(self, client):
        response = client.get("/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"


class TestMetrics:

    def test_exposes_worker_metrics(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "listingsync_integration_worker_running" in response.text


class TestRequestId:

    def test_echoes_incoming_request_id(self, client):
        response = client.get("/", headers={"X-Request-ID": "req-abc"})
        assert response.headers["X-Request-ID"] == "req-abc"

    def test_generates_request_id(self, client):
        first = client.get("/").headers["X-Request-ID"]
        second = client.get("/").headers["X-Request-ID"]

        assert first
        assert first != second


def test_root(client):
    body = client.get("/").json()
    assert body["name"] == "ListingSync API"
    assert body["status"] == "running"
