"""API tests for the integration log query endpoint."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from models import AUTH_FLOW_JOB_ID, IntegrationLog


T0 = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def trail(db_session, tenant_id):
    """Four entries for tenant_id, one minute apart, plus one foreign entry."""
    job_id = str(uuid4())
    rows = [
        ("olx", AUTH_FLOW_JOB_ID, "info", "OAuth connection established"),
        ("olx", job_id, "error", "Transport error, retry scheduled"),
        ("olx", job_id, "info", "Listing published"),
        ("demo", str(uuid4()), "info", "Listing published"),
    ]
    for minute, (portal_code, entry_job_id, level, message) in enumerate(rows):
        db_session.add(IntegrationLog(
            tenant_id=tenant_id,
            portal_code=portal_code,
            job_id=entry_job_id,
            level=level,
            message=message,
            created_at=T0 + timedelta(minutes=minute),
        ))
    db_session.add(IntegrationLog(
        tenant_id=uuid4(),
        portal_code="olx",
        job_id=AUTH_FLOW_JOB_ID,
        level="info",
        message="Other dealership",
        created_at=T0,
    ))
    db_session.commit()
    return job_id


def query(client, tenant_id, **params):
    response = client.get("/api/integrations/logs", params={"tenant_id": str(tenant_id), **params})
    assert response.status_code == 200, response.text
    return response.json()


class TestIntegrationLogQuery:

    def test_newest_first(self, client, trail, tenant_id):
        body = query(client, tenant_id)

        assert body["total"] == 4
        created = [entry["created_at"] for entry in body["entries"]]
        assert created == sorted(created, reverse=True)
        assert body["entries"][-1]["job_id"] == AUTH_FLOW_JOB_ID

    def test_tenant_isolation(self, client, trail, tenant_id):
        body = query(client, tenant_id)
        assert all(entry["tenant_id"] == str(tenant_id) for entry in body["entries"])
        assert "Other dealership" not in [entry["message"] for entry in body["entries"]]

    def test_filter_by_level(self, client, trail, tenant_id):
        body = query(client, tenant_id, level="error")

        assert body["total"] == 1
        assert body["entries"][0]["message"] == "Transport error, retry scheduled"

    def test_filter_by_job(self, client, trail, tenant_id):
        assert query(client, tenant_id, job_id=trail)["total"] == 2
        assert query(client, tenant_id, job_id=AUTH_FLOW_JOB_ID)["total"] == 1

    def test_filter_by_portal(self, client, trail, tenant_id):
        assert query(client, tenant_id, portal_code="demo")["total"] == 1

    def test_filter_by_date_range(self, client, trail, tenant_id):
        body = query(
            client,
            tenant_id,
            start_date=(T0 + timedelta(minutes=1)).isoformat(),
            end_date=(T0 + timedelta(minutes=2)).isoformat(),
        )
        assert body["total"] == 2

    def test_pagination(self, client, trail, tenant_id):
        body = query(client, tenant_id, per_page=3, page=2)

        assert body["total"] == 4
        assert len(body["entries"]) == 1
        assert body["entries"][0]["job_id"] == AUTH_FLOW_JOB_ID

    def test_invalid_level(self, client, tenant_id):
        response = client.get("/api/integrations/logs", params={"tenant_id": str(tenant_id), "level": "warning"})

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_tenant_required(self, client):
        assert client.get("/api/integrations/logs").status_code == 422

    def test_read_only(self, client, tenant_id):
        response = client.post("/api/integrations/logs", json={"tenant_id": str(tenant_id)})
        assert response.status_code == 405
