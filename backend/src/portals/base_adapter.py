"""
Base Adapter - Common functionality for all portal adapters

Provides shared rule helpers, HTTP error mapping, latency measurement and
logging that concrete adapters build on.
"""

import logging
import time
from abc import ABC
from typing import Any, Dict, List, Optional

import httpx

from vehicles.schemas import NormalizedVehicle
from .errors import AuthError, NotFoundError, TransportError, ValidationError
from .ports import PortalAdapter


logger = logging.getLogger(__name__)


class BaseAdapter(PortalAdapter, ABC):
    """
    Base class for portal adapter implementations.

    Provides common functionality:
    - Listing rule helpers (description length, photo count, price)
    - HTTP request helper mapping responses to the error taxonomy
    - Timing/latency measurement

    Subclasses set the rule thresholds as class attributes and implement the
    network-facing methods of PortalAdapter.
    """

    min_description_length: int = 0
    min_photos: int = 1
    min_price: Optional[float] = None

    def collect_rule_violations(self, vehicle: NormalizedVehicle) -> List[str]:
        """
        Apply the threshold rules configured on the adapter.

        Args:
            vehicle: Snapshot to check

        Returns:
            List of violation messages (empty when eligible)
        """
        violations = []
        label = self.name or self.code

        if len(vehicle.description) < self.min_description_length:
            violations.append(
                f"{label} requires a description of at least "
                f"{self.min_description_length} characters"
            )

        if self.min_price is not None and (not vehicle.price or vehicle.price < self.min_price):
            violations.append(f"Invalid price for {label} (minimum {self.min_price:g})")

        if len(vehicle.media) < self.min_photos:
            violations.append(f"{label} requires at least {self.min_photos} photos")

        return violations

    def validate(self, vehicle: NormalizedVehicle) -> List[str]:
        return self.collect_rule_violations(vehicle)

    def request(
        self,
        client: httpx.Client,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Perform an HTTP request and map failures to the error taxonomy.

        Mapping:
            401, 403            -> AuthError
            400, 409, 422       -> ValidationError
            404                 -> NotFoundError
            408, 429, 5xx       -> TransportError
            timeouts/connection -> TransportError

        Returns:
            The successful (2xx/3xx) response
        """
        with self.measure_latency(f"{self.code} {method} {url}"):
            try:
                response = client.request(method, url, **kwargs)
            except httpx.TimeoutException as e:
                raise TransportError(f"{self.code} request timed out: {e}")
            except httpx.RequestError as e:
                raise TransportError(f"{self.code} request failed: {e}")

        status = response.status_code
        if status < 400:
            return response

        detail = _response_detail(response)
        message = f"{self.code} API returned {status}: {detail}"

        if status in (401, 403):
            raise AuthError(message)
        if status in (400, 409, 422):
            raise ValidationError(message, violations=[detail])
        if status == 404:
            raise NotFoundError(message)
        raise TransportError(message, status_code=status)

    def measure_latency(self, operation_name: str):
        """
        Context manager for measuring operation latency.

        Usage:
            with self.measure_latency("olx publish"):
                # perform operation
                pass
        """
        class LatencyMeasurer:
            def __init__(self, name: str):
                self.name = name
                self.start_time = None
                self.latency_ms = 0

            def __enter__(self):
                self.start_time = time.time()
                return self

            def __exit__(self, exc_type, exc_val, exc_tb):
                self.latency_ms = int((time.time() - self.start_time) * 1000)
                if exc_type is None:
                    logger.debug(f"{self.name} completed in {self.latency_ms}ms")
                else:
                    logger.warning(
                        f"{self.name} failed after {self.latency_ms}ms: {exc_val}"
                    )
                return False  # Don't suppress exceptions

        return LatencyMeasurer(operation_name)


def _response_detail(response: httpx.Response) -> str:
    """Short error description from a portal response body."""
    try:
        body: Dict[str, Any] = response.json()
    except ValueError:
        return response.text[:500] or response.reason_phrase

    if isinstance(body, dict):
        for key in ("message", "error_description", "error", "detail"):
            if body.get(key):
                return str(body[key])
    return str(body)[:500]
