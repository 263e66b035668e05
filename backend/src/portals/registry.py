"""
Adapter Registry - Registration and resolution of portal adapters

The AdapterRegistry maps portal codes to adapter factories. A registry is an
ordinary object handed to the worker, so tests and separate worker instances
can each use their own set of adapters.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from config import Settings
from .errors import ConfigurationError
from .ports import PortalAdapter, PortalCredentials
from .implementations import OlxAdapter, DemoAdapter, DemoPortal


AdapterFactory = Callable[[Optional[PortalCredentials]], PortalAdapter]


@dataclass
class _Registration:
    factory: AdapterFactory
    requires_credentials: bool


class AdapterRegistry:
    """
    Registry for portal adapter implementations.

    Usage:
        registry = AdapterRegistry()
        registry.register("olx", lambda creds: OlxAdapter(creds, base_url=...))

        # Per job
        adapter = registry.create("olx", credentials)
    """

    def __init__(self):
        self._registrations: Dict[str, _Registration] = {}

    def register(
        self,
        portal_code: str,
        factory: AdapterFactory,
        requires_credentials: bool = True,
    ) -> None:
        """
        Register an adapter factory.

        Args:
            portal_code: Unique portal identifier (e.g., 'olx')
            factory: Callable building an adapter from decrypted credentials
                (None when the portal needs no credentials)
            requires_credentials: Whether jobs need an active PortalConnection

        Raises:
            ValueError: If portal_code is empty or factory is not callable
            RuntimeError: If portal_code is already registered
        """
        if not portal_code or not portal_code.strip():
            raise ValueError("portal_code cannot be empty")

        if not callable(factory):
            raise ValueError(f"Adapter factory for '{portal_code}' must be callable")

        if portal_code in self._registrations:
            raise RuntimeError(
                f"Portal '{portal_code}' is already registered. "
                f"Use unregister() first if you need to replace it."
            )

        self._registrations[portal_code] = _Registration(factory, requires_credentials)

    def create(
        self,
        portal_code: str,
        credentials: Optional[PortalCredentials] = None,
    ) -> PortalAdapter:
        """
        Build an adapter for one job.

        Raises:
            ConfigurationError: If portal_code is not registered, or the
                portal requires credentials and none were given
        """
        registration = self._get(portal_code)
        if registration.requires_credentials and credentials is None:
            raise ConfigurationError(f"Portal '{portal_code}' requires credentials")
        return registration.factory(credentials)

    def requires_credentials(self, portal_code: str) -> bool:
        """
        Whether jobs for this portal need a PortalConnection.

        Raises:
            ConfigurationError: If portal_code is not registered
        """
        return self._get(portal_code).requires_credentials

    def list_available(self) -> list[str]:
        """List all registered portal codes."""
        return sorted(self._registrations.keys())

    def is_registered(self, portal_code: str) -> bool:
        return portal_code in self._registrations

    def unregister(self, portal_code: str) -> None:
        """
        Remove a portal from the registry.

        Raises:
            ValueError: If portal_code is not registered
        """
        if portal_code not in self._registrations:
            raise ValueError(f"Portal '{portal_code}' is not registered")

        del self._registrations[portal_code]

    def _get(self, portal_code: str) -> _Registration:
        registration = self._registrations.get(portal_code)
        if registration is None:
            available = ', '.join(self.list_available()) or 'none'
            raise ConfigurationError(
                f"Adapter not found for portal '{portal_code}'. "
                f"Available portals: {available}"
            )
        return registration


def build_default_registry(
    settings: Settings,
    demo_portal: Optional[DemoPortal] = None,
) -> AdapterRegistry:
    """
    Registry with every portal shipped with ListingSync.

    olx talks to the real OLX API; demo is the in-memory portal and does not
    need a PortalConnection.
    """
    registry = AdapterRegistry()
    registry.register(
        "olx",
        lambda credentials: OlxAdapter(
            credentials,
            base_url=settings.OLX_API_BASE_URL,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        ),
    )

    portal = demo_portal or DemoPortal()
    registry.register(
        "demo",
        lambda credentials: DemoAdapter(portal, credentials),
        requires_credentials=False,
    )
    return registry
