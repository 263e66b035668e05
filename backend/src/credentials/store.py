"""Credential Store - persistence of portal OAuth connections.

Owns every read and write of portal_connection. Tokens go in and come out as
plaintext strings; encryption with TokenCipher happens here so no other
module handles ciphertext.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from infrastructure.encryption import TokenCipher
from models import PortalConnection, utcnow
from portals.ports import PortalCredentials

logger = logging.getLogger(__name__)


class CredentialStore:
    """Read and write PortalConnection records for one database session.

    Usage:
        store = CredentialStore(db, cipher)
        store.upsert(tenant_id, "olx", access_token="...", expires_in=3600)
        db.commit()

    Methods flush but never commit; the caller owns the transaction.
    """

    def __init__(self, db: Session, cipher: TokenCipher):
        self.db = db
        self.cipher = cipher

    def get(self, tenant_id: UUID, portal_code: str) -> Optional[PortalConnection]:
        """Connection for (tenant, portal), or None."""
        return self.db.query(PortalConnection).filter(
            PortalConnection.tenant_id == tenant_id,
            PortalConnection.portal_code == portal_code,
        ).first()

    def upsert(
        self,
        tenant_id: UUID,
        portal_code: str,
        access_token: str,
        refresh_token: Optional[str] = None,
        expires_in: Optional[int] = None,
        now: Optional[datetime] = None,
        keep_refresh_token: bool = False,
    ) -> PortalConnection:
        """Create or replace the tokens of a connection.

        Clears needs_reauth and re-activates the connection.

        Args:
            tenant_id: Tenant owning the connection
            portal_code: Portal identifier
            access_token: Plaintext access token
            refresh_token: Plaintext refresh token, if issued
            expires_in: Access token lifetime in seconds
            now: Current time (defaults to utcnow)
            keep_refresh_token: Keep the stored refresh token when none is
                issued (refresh grants often omit it)

        Returns:
            PortalConnection: The created or updated connection
        """
        now = now or utcnow()
        connection = self.get(tenant_id, portal_code)
        if connection is None:
            connection = PortalConnection(tenant_id=tenant_id, portal_code=portal_code)
            self.db.add(connection)

        connection.access_token_encrypted = self.cipher.encrypt(access_token)
        if refresh_token:
            connection.refresh_token_encrypted = self.cipher.encrypt(refresh_token)
        elif not keep_refresh_token:
            connection.refresh_token_encrypted = None

        connection.expires_at = now + timedelta(seconds=int(expires_in)) if expires_in else None
        connection.active = True
        connection.needs_reauth = False
        connection.updated_at = now
        if not keep_refresh_token:
            connection.connected_at = now

        self.db.flush()
        return connection

    def mark_needs_reauth(self, tenant_id: UUID, portal_code: str) -> bool:
        """Flag a connection as needing re-authorization.

        Single-column update. A connection that is already flagged is left
        untouched.

        Returns:
            True if the flag flipped, False if no connection exists or it was
            already flagged
        """
        updated = self.db.query(PortalConnection).filter(
            PortalConnection.tenant_id == tenant_id,
            PortalConnection.portal_code == portal_code,
            PortalConnection.needs_reauth.is_(False),
        ).update(
            {
                PortalConnection.needs_reauth: True,
                PortalConnection.updated_at: utcnow(),
            },
            synchronize_session="fetch",
        )
        self.db.flush()

        if updated:
            logger.warning(
                "Portal connection flagged for re-authorization",
                extra={"tenant_id": str(tenant_id), "portal_code": portal_code}
            )
        return bool(updated)

    def delete(self, tenant_id: UUID, portal_code: str) -> bool:
        """Remove a connection (explicit disconnect only).

        Returns:
            True if a connection was deleted
        """
        connection = self.get(tenant_id, portal_code)
        if connection is None:
            return False

        self.db.delete(connection)
        self.db.flush()
        return True

    def load_credentials(self, connection: PortalConnection) -> PortalCredentials:
        """Decrypt the access token of a connection.

        Raises:
            DecryptionError: If the stored token cannot be decrypted
        """
        access_token = self.cipher.decrypt(connection.access_token_encrypted)
        return PortalCredentials(
            tenant_id=str(connection.tenant_id),
            portal_code=connection.portal_code,
            access_token=access_token,
        )

    def load_refresh_token(self, connection: PortalConnection) -> Optional[str]:
        """Decrypt the refresh token, if the connection has one.

        Raises:
            DecryptionError: If the stored token cannot be decrypted
        """
        if not connection.refresh_token_encrypted:
            return None
        return self.cipher.decrypt(connection.refresh_token_encrypted)
