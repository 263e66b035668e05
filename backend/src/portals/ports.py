"""
PortalAdapter - Port interface for listing portals

This module defines the abstract interface that every marketplace adapter must
implement. The worker depends only on this port, never on a concrete portal.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from vehicles.schemas import NormalizedVehicle


@dataclass
class PublishResult:
    """
    Result of PortalAdapter.publish().

    Attributes:
        external_id: Listing id assigned by the portal
        external_url: Public URL of the listing
    """
    external_id: str
    external_url: str


@dataclass
class SyncStatusResult:
    """
    Result of PortalAdapter.sync_status().

    Attributes:
        status: Portal-reported listing status (e.g., 'active', 'paused')
        is_active: Whether the listing is currently visible to buyers
    """
    status: str
    is_active: bool


@dataclass(frozen=True)
class PortalCredentials:
    """Decrypted credentials handed to an adapter for a single job."""
    tenant_id: str
    portal_code: str
    access_token: str


class PortalAdapter(ABC):
    """
    Abstract interface for listing portals.

    Implementations:
    - OlxAdapter: OLX auto-upload HTTP API
    - DemoAdapter: In-memory portal for development and tests

    Error contract:
    - validate() never performs network I/O
    - network-facing methods raise portals.errors types: TransportError for
      transient failures, AuthError for rejected credentials,
      ValidationError/NotFoundError for permanent failures
    """

    code: str = ""
    name: str = ""

    @abstractmethod
    def validate(self, vehicle: NormalizedVehicle) -> List[str]:
        """
        Check portal-specific business rules.

        Returns:
            List of human-readable violations; empty means eligible
        """
        pass

    @abstractmethod
    def publish(
        self,
        vehicle: NormalizedVehicle,
        idempotency_key: Optional[str] = None,
    ) -> PublishResult:
        """
        Create a listing for the vehicle.

        Args:
            vehicle: Snapshot to publish
            idempotency_key: Job key, forwarded to portals that support it
        """
        pass

    @abstractmethod
    def update(self, external_id: str, vehicle: NormalizedVehicle) -> None:
        """Replace the listing content with the current snapshot."""
        pass

    @abstractmethod
    def pause(self, external_id: str) -> None:
        """Hide the listing without removing it."""
        pass

    @abstractmethod
    def remove(self, external_id: str) -> None:
        """Remove the listing from the portal."""
        pass

    @abstractmethod
    def sync_status(self, external_id: str) -> SyncStatusResult:
        """Read the portal's current status for the listing."""
        pass

    def close(self) -> None:
        """Release resources held by the adapter (HTTP clients)."""
