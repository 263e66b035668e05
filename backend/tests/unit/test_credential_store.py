"""Unit tests for CredentialStore."""

from datetime import timedelta
from uuid import uuid4

import pytest

from credentials.store import CredentialStore
from infrastructure.encryption import TokenCipher
from models import PortalConnection
from portals.errors import DecryptionError


class TestCredentialStore:
    """Encrypted persistence of portal connections."""

    @pytest.fixture
    def store(self, db_session, cipher):
        return CredentialStore(db_session, cipher)

    def test_tokens_are_stored_encrypted(self, store, tenant_id, clock):
        connection = store.upsert(
            tenant_id, "olx", access_token="access-1", refresh_token="refresh-1",
            expires_in=3600, now=clock(),
        )

        assert connection.access_token_encrypted.startswith("v1.")
        assert "access-1" not in connection.access_token_encrypted
        assert "refresh-1" not in connection.refresh_token_encrypted
        assert connection.expires_at == clock() + timedelta(seconds=3600)
        assert connection.active is True
        assert connection.needs_reauth is False

    def test_load_credentials_decrypts(self, store, tenant_id):
        connection = store.upsert(tenant_id, "olx", access_token="access-1", refresh_token="refresh-1")

        credentials = store.load_credentials(connection)

        assert credentials.access_token == "access-1"
        assert credentials.portal_code == "olx"
        assert credentials.tenant_id == str(tenant_id)
        assert store.load_refresh_token(connection) == "refresh-1"

    def test_one_connection_per_tenant_and_portal(self, store, db_session, tenant_id):
        first = store.upsert(tenant_id, "olx", access_token="access-1")
        second = store.upsert(tenant_id, "olx", access_token="access-2")

        assert first.id == second.id
        assert db_session.query(PortalConnection).count() == 1
        assert store.load_credentials(second).access_token == "access-2"

    def test_tenants_are_isolated(self, store, tenant_id):
        store.upsert(tenant_id, "olx", access_token="access-1")
        assert store.get(uuid4(), "olx") is None
        assert store.get(tenant_id, "demo") is None

    def test_upsert_clears_needs_reauth(self, store, tenant_id):
        store.upsert(tenant_id, "olx", access_token="access-1")
        store.mark_needs_reauth(tenant_id, "olx")

        connection = store.upsert(tenant_id, "olx", access_token="access-2")

        assert connection.needs_reauth is False

    def test_refresh_keeps_existing_refresh_token(self, store, tenant_id, clock):
        store.upsert(tenant_id, "olx", access_token="access-1", refresh_token="refresh-1", now=clock())
        connected_at = store.get(tenant_id, "olx").connected_at
        clock.advance(60)

        connection = store.upsert(
            tenant_id, "olx", access_token="access-2", now=clock(), keep_refresh_token=True,
        )

        assert store.load_refresh_token(connection) == "refresh-1"
        assert connection.connected_at == connected_at

    def test_reconnect_without_refresh_token_clears_it(self, store, tenant_id):
        store.upsert(tenant_id, "olx", access_token="access-1", refresh_token="refresh-1")
        connection = store.upsert(tenant_id, "olx", access_token="access-2")
        assert store.load_refresh_token(connection) is None

    def test_mark_needs_reauth(self, store, tenant_id):
        store.upsert(tenant_id, "olx", access_token="access-1")

        assert store.mark_needs_reauth(tenant_id, "olx") is True
        assert store.get(tenant_id, "olx").needs_reauth is True

    def test_mark_needs_reauth_without_connection(self, store, tenant_id):
        assert store.mark_needs_reauth(tenant_id, "olx") is False

    def test_mark_needs_reauth_already_flagged(self, store, tenant_id):
        store.upsert(tenant_id, "olx", access_token="access-1")
        store.mark_needs_reauth(tenant_id, "olx")

        assert store.mark_needs_reauth(tenant_id, "olx") is False
        assert store.get(tenant_id, "olx").needs_reauth is True

    def test_delete(self, store, tenant_id):
        store.upsert(tenant_id, "olx", access_token="access-1")

        assert store.delete(tenant_id, "olx") is True
        assert store.get(tenant_id, "olx") is None
        assert store.delete(tenant_id, "olx") is False

    def test_wrong_key_cannot_decrypt(self, db_session, store, tenant_id):
        connection = store.upsert(tenant_id, "olx", access_token="access-1")
        other = CredentialStore(db_session, TokenCipher("z" * 40))

        with pytest.raises(DecryptionError):
            other.load_credentials(connection)
