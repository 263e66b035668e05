"""Integration audit trail."""

from .service import log_integration_event, list_integration_events, LEVEL_INFO, LEVEL_ERROR

__all__ = [
    "log_integration_event",
    "list_integration_events",
    "LEVEL_INFO",
    "LEVEL_ERROR",
]
