"""Portal Connection model - stores OAuth credentials per tenant and portal."""

import uuid

from sqlalchemy import Column, Text, Boolean, Index, Uuid

from .base import Base, UTCDateTime, utcnow


class PortalConnection(Base):
    """OAuth connection between a tenant and a listing portal.

    At most one connection exists per (tenant_id, portal_code). Tokens are
    stored encrypted with TokenCipher; plaintext tokens never reach the table.

    Attributes:
        id: Primary key UUID
        tenant_id: Dealership (tenant) owning this connection
        portal_code: Portal identifier (e.g., 'olx')
        access_token_encrypted: Encrypted OAuth access token
        refresh_token_encrypted: Encrypted OAuth refresh token, if issued
        expires_at: When the access token expires
        active: Whether this connection may be used by the worker
        needs_reauth: Set when the portal rejected the credentials
        connected_at: When the OAuth callback last completed
        created_at: When connection was created
        updated_at: When connection was last modified
    """

    __tablename__ = "portal_connection"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False)
    portal_code = Column(Text, nullable=False)
    access_token_encrypted = Column(Text, nullable=False)
    refresh_token_encrypted = Column(Text, nullable=True)
    expires_at = Column(UTCDateTime, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    needs_reauth = Column(Boolean, nullable=False, default=False)
    connected_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("uq_portal_connection_tenant_portal", tenant_id, portal_code, unique=True),
    )

    def is_expired(self, now) -> bool:
        """True when the access token has a known expiry in the past."""
        return self.expires_at is not None and self.expires_at <= now

    def __repr__(self):
        return (
            f"<PortalConnection(id={self.id}, tenant_id={self.tenant_id}, "
            f"portal={self.portal_code}, needs_reauth={self.needs_reauth})>"
        )
