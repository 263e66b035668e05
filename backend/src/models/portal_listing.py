"""PortalListing model - a vehicle's listing on an external portal."""

import uuid

from sqlalchemy import Column, Text, Boolean, Index, Uuid

from .base import Base, UTCDateTime, utcnow


class PortalListing(Base):
    """External listing created by a successful publish.

    Unique per (vehicle_id, portal_code). idempotency_key holds the key of the
    publish job that created the listing and acts as the fencing token that
    prevents a duplicate job from publishing twice.
    """

    __tablename__ = "portal_listing"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False)
    vehicle_id = Column(Uuid, nullable=False)
    portal_code = Column(Text, nullable=False)
    external_id = Column(Text, nullable=False)
    external_url = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="published")
    is_active = Column(Boolean, nullable=False, default=True)
    idempotency_key = Column(Text, nullable=True)
    last_sync_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("uq_portal_listing_vehicle_portal", vehicle_id, portal_code, unique=True),
        Index("idx_portal_listing_tenant", tenant_id),
    )

    def __repr__(self):
        return (
            f"<PortalListing(vehicle_id={self.vehicle_id}, portal={self.portal_code}, "
            f"external_id={self.external_id}, status={self.status})>"
        )
