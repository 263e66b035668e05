"""Portal-agnostic vehicle snapshot.

NormalizedVehicle is built fresh for every job execution from the inventory
record and handed to the portal adapter. Only structural rules live here;
description length, price and photo count are portal rules enforced by
PortalAdapter.validate().
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FuelType(str, Enum):
    FLEX = "flex"
    GASOLINE = "gasoline"
    ETHANOL = "ethanol"
    DIESEL = "diesel"
    ELECTRIC = "electric"
    HYBRID = "hybrid"


class TransmissionType(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"
    CVT = "cvt"
    AUTOMATED = "automated"


class MediaItem(BaseModel):
    """One photo of the vehicle."""
    model_config = ConfigDict(frozen=True)

    url: str = Field(..., min_length=1)
    is_cover: bool = False


class NormalizedVehicle(BaseModel):
    """Snapshot of a vehicle in the shape every adapter understands."""
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    id: str
    tenant_id: str
    brand: str
    model: str
    version: str = ""
    year_manufacture: int
    year_model: int
    price: Optional[float] = None
    km: int = Field(0, ge=0)
    fuel: FuelType
    transmission: TransmissionType
    color: Optional[str] = None
    title: str
    description: str = ""
    media: List[MediaItem] = Field(..., min_length=1)
    features: List[str] = Field(default_factory=list)
    content_version: Optional[str] = None

    @property
    def cover(self) -> MediaItem:
        """Cover photo, falling back to the first photo."""
        for item in self.media:
            if item.is_cover:
                return item
        return self.media[0]
