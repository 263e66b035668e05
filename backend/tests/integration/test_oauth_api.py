"""API tests for the portal OAuth endpoints."""

from urllib.parse import parse_qs, urlparse
from uuid import uuid4

import httpx
import pytest

from main import app
from models import PortalConnection
from oauth.router import get_oauth_service
from oauth.service import OAuthExchangeService
from oauth.state import decode_state, encode_state


@pytest.fixture
def mock_portal(client, make_transport, test_settings, cipher, clock):
    """Route the OAuth service's HTTP calls to `handler`; returns the recorder."""
    def _install(handler):
        transport, recorder = make_transport(handler)

        def override(portal_code: str):
            return OAuthExchangeService(
                portal_code,
                test_settings.portal_oauth(portal_code),
                cipher,
                httpx.Client(transport=transport),
                clock=clock,
            )

        app.dependency_overrides[get_oauth_service] = override
        return recorder

    return _install


class TestAuthUrlEndpoint:

    def test_returns_authorization_url(self, client, tenant_id):
        response = client.get("/api/integrations/olx/auth-url", params={"tenant_id": str(tenant_id)})

        assert response.status_code == 200
        url = urlparse(response.json()["url"])
        assert url.netloc == "auth.olx.test"
        assert decode_state(parse_qs(url.query)["state"][0]) == tenant_id

    def test_tenant_required(self, client):
        response = client.get("/api/integrations/olx/auth-url")

        assert response.status_code == 400
        assert response.json()["detail"] == "Tenant ID is required"

    def test_invalid_tenant(self, client):
        response = client.get("/api/integrations/olx/auth-url", params={"tenant_id": "dealer-1"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid tenant ID: dealer-1"

    def test_portal_without_oauth(self, client, tenant_id):
        response = client.get("/api/integrations/demo/auth-url", params={"tenant_id": str(tenant_id)})
        assert response.status_code == 404


class TestCallbackEndpoint:

    def test_success_redirects_to_frontend(self, client, mock_portal, db_session, tenant_id):
        mock_portal(lambda request: httpx.Response(
            200, json={"access_token": "a", "refresh_token": "r", "expires_in": 3600}
        ))

        response = client.get(
            "/api/integrations/olx/callback",
            params={"code": "auth-code", "state": encode_state(tenant_id)},
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert response.headers["location"] == "http://app.test/integrations?success=olx_connected"
        assert db_session.query(PortalConnection).filter_by(tenant_id=tenant_id).count() == 1

    def test_denied_redirects_with_error(self, client, mock_portal):
        recorder = mock_portal(lambda request: httpx.Response(500))

        response = client.get(
            "/api/integrations/olx/callback",
            params={"error": "access_denied"},
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert response.headers["location"] == "http://app.test/integrations?error=olx_denied"
        assert recorder.requests == []

    def test_failed_exchange_redirects_with_error(self, client, mock_portal, db_session, tenant_id):
        mock_portal(lambda request: httpx.Response(401, json={"error": "invalid_client"}))

        response = client.get(
            "/api/integrations/olx/callback",
            params={"code": "auth-code", "state": encode_state(tenant_id)},
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert response.headers["location"] == "http://app.test/integrations?error=olx_failed"
        assert db_session.query(PortalConnection).count() == 0


class TestIdentityEndpoint:

    def test_connected(self, client, mock_portal, make_connection, tenant_id):
        make_connection()
        mock_portal(lambda request: httpx.Response(200, json={"user_id": "42"}))

        response = client.get("/api/integrations/olx/me", params={"tenant_id": str(tenant_id)})

        assert response.status_code == 200
        body = response.json()
        assert body["connected"] is True
        assert body["user"] == {"user_id": "42"}
        assert body["expires_at"] is not None

    def test_not_connected(self, client, mock_portal, tenant_id):
        mock_portal(lambda request: httpx.Response(200, json={}))

        response = client.get("/api/integrations/olx/me", params={"tenant_id": str(tenant_id)})

        assert response.status_code == 404
        assert response.json()["detail"] == "Not connected"

    def test_rejected_token(self, client, mock_portal, make_connection, db_session, tenant_id):
        connection = make_connection()
        mock_portal(lambda request: httpx.Response(401))

        response = client.get("/api/integrations/olx/me", params={"tenant_id": str(tenant_id)})

        assert response.status_code == 500
        assert response.json()["needs_reauth"] is True
        db_session.refresh(connection)
        assert connection.needs_reauth is True

    def test_portal_unavailable(self, client, mock_portal, make_connection, tenant_id):
        make_connection()
        mock_portal(lambda request: httpx.Response(503))

        response = client.get("/api/integrations/olx/me", params={"tenant_id": str(tenant_id)})

        assert response.status_code == 502


class TestConnectionEndpoints:

    def test_status_has_no_secrets(self, client, make_connection, tenant_id):
        make_connection()

        response = client.get("/api/integrations/olx/connection", params={"tenant_id": str(tenant_id)})

        assert response.status_code == 200
        body = response.json()
        assert body["portal_code"] == "olx"
        assert body["active"] is True
        assert body["needs_reauth"] is False
        assert not any("token" in key for key in body)

    def test_status_not_connected(self, client, tenant_id):
        response = client.get("/api/integrations/olx/connection", params={"tenant_id": str(tenant_id)})
        assert response.status_code == 404

    def test_refresh(self, client, mock_portal, make_connection, tenant_id):
        make_connection()
        recorder = mock_portal(lambda request: httpx.Response(200, json={"access_token": "fresh", "expires_in": 60}))

        response = client.post("/api/integrations/olx/refresh", params={"tenant_id": str(tenant_id)})

        assert response.status_code == 200
        assert response.json()["needs_reauth"] is False
        assert len(recorder.requests) == 1

    def test_refresh_rejected(self, client, mock_portal, make_connection, tenant_id):
        make_connection()
        mock_portal(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))

        response = client.post("/api/integrations/olx/refresh", params={"tenant_id": str(tenant_id)})

        assert response.status_code == 500
        assert response.json()["needs_reauth"] is True

    def test_disconnect(self, client, make_connection, tenant_id):
        make_connection()

        first = client.delete("/api/integrations/olx/connection", params={"tenant_id": str(tenant_id)})
        second = client.delete("/api/integrations/olx/connection", params={"tenant_id": str(tenant_id)})

        assert first.status_code == 204
        assert second.status_code == 404

    def test_other_tenant_sees_nothing(self, client, make_connection):
        make_connection()
        response = client.get("/api/integrations/olx/connection", params={"tenant_id": str(uuid4())})
        assert response.status_code == 404
