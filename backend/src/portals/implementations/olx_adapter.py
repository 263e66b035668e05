"""
OLX Adapter - OLX auto-upload API

Publishes and manages vehicle listings on OLX through its REST API using the
tenant's OAuth access token.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from vehicles.schemas import NormalizedVehicle
from ..base_adapter import BaseAdapter
from ..errors import TransportError
from ..ports import PortalCredentials, PublishResult, SyncStatusResult


logger = logging.getLogger(__name__)


class OlxAdapter(BaseAdapter):
    """
    Adapter for the OLX listing portal.

    Listing rules:
        - description of at least 50 characters
        - price of at least 1000
        - at least 2 photos

    Usage:
        adapter = OlxAdapter(credentials, base_url=settings.OLX_API_BASE_URL)
        try:
            result = adapter.publish(vehicle, idempotency_key=job.idempotency_key)
        finally:
            adapter.close()
    """

    code = "olx"
    name = "OLX"

    min_description_length = 50
    min_photos = 2
    min_price = 1000

    def __init__(
        self,
        credentials: PortalCredentials,
        base_url: str,
        client: Optional[httpx.Client] = None,
        timeout: float = 15.0,
    ):
        self.credentials = credentials
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout)

    def _headers(self, idempotency_key: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.credentials.access_token}",
            "Accept": "application/json",
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    def build_listing_payload(self, vehicle: NormalizedVehicle) -> Dict[str, Any]:
        """Map the snapshot onto the OLX listing document."""
        images: List[str] = [vehicle.cover.url]
        images.extend(m.url for m in vehicle.media if m.url != vehicle.cover.url)

        return {
            "id": vehicle.id,
            "category": "cars",
            "subject": vehicle.title,
            "body": vehicle.description,
            "price": int(round(vehicle.price)) if vehicle.price is not None else None,
            "params": {
                "vehicle_brand": vehicle.brand,
                "vehicle_model": vehicle.model,
                "vehicle_version": vehicle.version,
                "regdate": vehicle.year_model,
                "manufacture_year": vehicle.year_manufacture,
                "mileage": vehicle.km,
                "fuel": vehicle.fuel,
                "gearbox": vehicle.transmission,
                "carcolor": vehicle.color,
                "car_features": vehicle.features,
            },
            "images": images,
        }

    def publish(
        self,
        vehicle: NormalizedVehicle,
        idempotency_key: Optional[str] = None,
    ) -> PublishResult:
        logger.info(f"[OLX API] Publishing vehicle {vehicle.id}")
        response = self.request(
            self.client,
            "POST",
            f"{self.base_url}/listings",
            json=self.build_listing_payload(vehicle),
            headers=self._headers(idempotency_key),
        )
        body = _json_body(response)

        external_id = body.get("id") or body.get("list_id")
        if not external_id:
            raise TransportError("OLX publish response did not include a listing id")

        return PublishResult(
            external_id=str(external_id),
            external_url=body.get("url") or f"https://olx.com.br/autos/{vehicle.id}",
        )

    def update(self, external_id: str, vehicle: NormalizedVehicle) -> None:
        logger.info(f"[OLX API] Updating listing {external_id}")
        self.request(
            self.client,
            "PUT",
            f"{self.base_url}/listings/{external_id}",
            json=self.build_listing_payload(vehicle),
            headers=self._headers(),
        )

    def pause(self, external_id: str) -> None:
        logger.info(f"[OLX API] Pausing listing {external_id}")
        self.request(
            self.client,
            "POST",
            f"{self.base_url}/listings/{external_id}/pause",
            headers=self._headers(),
        )

    def remove(self, external_id: str) -> None:
        logger.info(f"[OLX API] Removing listing {external_id}")
        self.request(
            self.client,
            "DELETE",
            f"{self.base_url}/listings/{external_id}",
            headers=self._headers(),
        )

    def sync_status(self, external_id: str) -> SyncStatusResult:
        response = self.request(
            self.client,
            "GET",
            f"{self.base_url}/listings/{external_id}",
            headers=self._headers(),
        )
        body = _json_body(response)
        status = str(body.get("status", "unknown"))
        is_active = bool(body.get("active", status == "active"))
        return SyncStatusResult(status=status, is_active=is_active)

    def close(self) -> None:
        if self._owns_client:
            self.client.close()


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        raise TransportError(f"OLX returned a non-JSON response ({response.status_code})")
    return body if isinstance(body, dict) else {}
