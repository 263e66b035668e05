"""Build NormalizedVehicle snapshots from inventory records."""

import logging
from typing import Optional
from uuid import UUID

import pydantic
from sqlalchemy.orm import Session

from models import Vehicle
from portals.errors import NotFoundError, ValidationError
from .schemas import NormalizedVehicle, MediaItem

logger = logging.getLogger(__name__)


def load_vehicle(db: Session, vehicle_id: UUID, tenant_id: Optional[UUID] = None) -> Vehicle:
    """Fetch a vehicle, scoped to the tenant when given.

    Raises:
        NotFoundError: If the vehicle does not exist
    """
    query = db.query(Vehicle).filter(Vehicle.id == vehicle_id)
    if tenant_id is not None:
        query = query.filter(Vehicle.tenant_id == tenant_id)

    vehicle = query.first()
    if vehicle is None:
        raise NotFoundError(f"Vehicle {vehicle_id} not found")
    return vehicle


def build_normalized_vehicle(vehicle: Vehicle) -> NormalizedVehicle:
    """Convert an inventory record into the portal-agnostic snapshot.

    Media keeps the inventory ordering. When no photo is flagged as cover the
    first photo becomes the cover.

    Raises:
        ValidationError: If the record cannot form a valid snapshot
            (no photos, unknown fuel or transmission, ...)
    """
    media = [MediaItem(url=m.url, is_cover=bool(m.is_cover)) for m in vehicle.media]
    if media and not any(m.is_cover for m in media):
        media[0] = MediaItem(url=media[0].url, is_cover=True)

    title = vehicle.title or f"{vehicle.brand} {vehicle.model}"
    content_version = vehicle.updated_at.isoformat() if vehicle.updated_at else None

    try:
        return NormalizedVehicle(
            id=str(vehicle.id),
            tenant_id=str(vehicle.tenant_id),
            brand=vehicle.brand,
            model=vehicle.model,
            version=vehicle.version or "",
            year_manufacture=vehicle.year_manufacture,
            year_model=vehicle.year_model,
            price=float(vehicle.price) if vehicle.price is not None else None,
            km=vehicle.km or 0,
            fuel=vehicle.fuel,
            transmission=vehicle.transmission,
            color=vehicle.color,
            title=title,
            description=vehicle.description or "",
            media=media,
            features=list(vehicle.features or []),
            content_version=content_version,
        )
    except pydantic.ValidationError as e:
        violations = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        logger.warning(
            f"Vehicle {vehicle.id} cannot be normalized: {violations}",
            extra={"vehicle_id": str(vehicle.id)}
        )
        raise ValidationError.from_violations(violations)
