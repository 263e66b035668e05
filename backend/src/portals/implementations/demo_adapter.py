"""
Demo Adapter - In-memory portal for development and testing

Simulates a listing portal without any external system. Listings live in a
DemoPortal object shared by all adapter instances created for it, so a
publish followed by pause/sync in later jobs behaves like a real portal.
"""

import logging
import threading
from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Optional, Tuple

from vehicles.schemas import NormalizedVehicle
from ..base_adapter import BaseAdapter
from ..errors import NotFoundError
from ..ports import PortalCredentials, PublishResult, SyncStatusResult


logger = logging.getLogger(__name__)


class DemoPortal:
    """
    In-memory listing store backing DemoAdapter.

    Attributes:
        listings: external_id -> {"vehicle_id", "url", "status", "active",
            "idempotency_key"}
        calls: Ordered record of (operation, argument) for every network call

    Usage:
        portal = DemoPortal(start_id=123)
        portal.fail_next("publish", TransportError("gateway timeout"))
    """

    def __init__(self, start_id: int = 1, base_url: str = "https://demo"):
        self.base_url = base_url.rstrip("/")
        self.listings: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Tuple[str, Any]] = []
        self._next_id = start_id
        self._failures: Dict[str, Deque[Exception]] = defaultdict(deque)
        self._lock = threading.Lock()

    def fail_next(self, operation: str, error: Exception, times: int = 1) -> None:
        """Make the next `times` calls of `operation` raise `error`."""
        for _ in range(times):
            self._failures[operation].append(error)

    def calls_for(self, operation: str) -> List[Any]:
        return [arg for op, arg in self.calls if op == operation]

    def record(self, operation: str, argument: Any) -> None:
        with self._lock:
            self.calls.append((operation, argument))
            pending = self._failures.get(operation)
            error = pending.popleft() if pending else None
        if error is not None:
            raise error

    def create_listing(self, vehicle_id: str, idempotency_key: Optional[str] = None) -> Tuple[str, str, bool]:
        """Store a new active listing, deduplicated by idempotency key.

        A key seen before returns the listing it created, the way an
        idempotent portal API answers a replayed request.

        Returns:
            Tuple of (external_id, external_url, created)
        """
        with self._lock:
            if idempotency_key is not None:
                for external_id, listing in self.listings.items():
                    if listing.get("idempotency_key") == idempotency_key:
                        return external_id, listing["url"], False

            number = self._next_id
            self._next_id += 1
            external_id = f"demo-{number}"
            external_url = f"{self.base_url}/{number}"
            self.listings[external_id] = {
                "vehicle_id": vehicle_id,
                "url": external_url,
                "status": "active",
                "active": True,
                "idempotency_key": idempotency_key,
            }
        return external_id, external_url, True

    def get_listing(self, external_id: str) -> Dict[str, Any]:
        listing = self.listings.get(external_id)
        if listing is None:
            raise NotFoundError(f"Demo listing {external_id} not found")
        return listing


class DemoAdapter(BaseAdapter):
    """
    Adapter for the in-memory demo portal.

    Rules default to a description of at least 20 characters, a price of at
    least 1000 and one photo; all three are configurable per instance.
    """

    code = "demo"
    name = "Demo Portal"

    def __init__(
        self,
        portal: DemoPortal,
        credentials: Optional[PortalCredentials] = None,
        min_description_length: int = 20,
        min_photos: int = 1,
        min_price: Optional[float] = 1000,
    ):
        self.portal = portal
        self.credentials = credentials
        self.min_description_length = min_description_length
        self.min_photos = min_photos
        self.min_price = min_price

    def publish(
        self,
        vehicle: NormalizedVehicle,
        idempotency_key: Optional[str] = None,
    ) -> PublishResult:
        self.portal.record("publish", vehicle.id)

        external_id, external_url, created = self.portal.create_listing(vehicle.id, idempotency_key)
        if created:
            logger.info(f"DemoAdapter: published vehicle {vehicle.id} as {external_id}")
        else:
            logger.info(f"DemoAdapter: replayed publish of vehicle {vehicle.id}, returning {external_id}")

        return PublishResult(
            external_id=external_id,
            external_url=external_url,
        )

    def update(self, external_id: str, vehicle: NormalizedVehicle) -> None:
        self.portal.record("update", external_id)
        self.portal.get_listing(external_id)["vehicle_id"] = vehicle.id

    def pause(self, external_id: str) -> None:
        self.portal.record("pause", external_id)
        listing = self.portal.get_listing(external_id)
        listing.update(status="paused", active=False)

    def remove(self, external_id: str) -> None:
        self.portal.record("remove", external_id)
        self.portal.get_listing(external_id)
        del self.portal.listings[external_id]

    def sync_status(self, external_id: str) -> SyncStatusResult:
        self.portal.record("sync_status", external_id)
        listing = self.portal.get_listing(external_id)
        return SyncStatusResult(status=listing["status"], is_active=listing["active"])
