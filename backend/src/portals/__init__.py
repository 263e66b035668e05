"""
Portals module - listing portal integration framework

Defines the PortalAdapter port every marketplace implements, the error
taxonomy the worker classifies failures with, and the registry that resolves
a job's portal code to an adapter.
"""

from .errors import (
    ErrorKind,
    IntegrationError,
    ValidationError,
    NotFoundError,
    ConfigurationError,
    TransportError,
    AuthError,
    DecryptionError,
    SystemicError,
    classify_exception,
)
from .ports import PortalAdapter, PortalCredentials, PublishResult, SyncStatusResult
from .base_adapter import BaseAdapter
from .registry import AdapterRegistry, build_default_registry

__all__ = [
    "ErrorKind",
    "IntegrationError",
    "ValidationError",
    "NotFoundError",
    "ConfigurationError",
    "TransportError",
    "AuthError",
    "DecryptionError",
    "SystemicError",
    "classify_exception",
    "PortalAdapter",
    "PortalCredentials",
    "PublishResult",
    "SyncStatusResult",
    "BaseAdapter",
    "AdapterRegistry",
    "build_default_registry",
]
