"""Vehicle snapshot building for portal adapters."""

from .schemas import NormalizedVehicle, MediaItem, FuelType, TransmissionType

__all__ = [
    "NormalizedVehicle",
    "MediaItem",
    "FuelType",
    "TransmissionType",
]
