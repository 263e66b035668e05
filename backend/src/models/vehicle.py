"""Vehicle inventory models (read by the integration worker).

The inventory tables are owned by the dealership application; this service
only reads them to build the portal-agnostic listing snapshot.
"""

import uuid

from sqlalchemy import Column, Integer, Numeric, Text, Boolean, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from .base import Base, PortableJSONB, UTCDateTime, utcnow


class Vehicle(Base):
    """Vehicle record as maintained by the dealership inventory."""

    __tablename__ = "vehicle"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False)
    brand = Column(Text, nullable=False)
    model = Column(Text, nullable=False)
    version = Column(Text, nullable=True)
    year_manufacture = Column(Integer, nullable=False)
    year_model = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=True)
    km = Column(Integer, nullable=False, default=0)
    fuel = Column(Text, nullable=False)
    transmission = Column(Text, nullable=False)
    color = Column(Text, nullable=True)
    title = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    features = Column(PortableJSONB, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    media = relationship(
        "VehicleMedia",
        back_populates="vehicle",
        order_by="VehicleMedia.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_vehicle_tenant", tenant_id),
    )

    def __repr__(self):
        return f"<Vehicle(id={self.id}, {self.brand} {self.model} {self.year_model})>"


class VehicleMedia(Base):
    """Photo attached to a vehicle, ordered by position."""

    __tablename__ = "vehicle_media"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    vehicle_id = Column(Uuid, ForeignKey("vehicle.id", ondelete="CASCADE"), nullable=False)
    url = Column(Text, nullable=False)
    is_cover = Column(Boolean, nullable=False, default=False)
    position = Column(Integer, nullable=False, default=0)

    vehicle = relationship("Vehicle", back_populates="media")
