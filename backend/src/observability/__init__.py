"""Observability module for ListingSync.

Provides structured logging, request/job correlation ids, Prometheus metrics
and health checks.
"""

from .logging_config import configure_logging, get_logger
from .metrics import (
    integration_jobs_total,
    integration_job_duration_seconds,
    integration_worker_running,
    integration_worker_halts_total,
    oauth_callbacks_total,
    portal_reauth_flags_total,
)
from .request_id import (
    request_id_var,
    get_request_id,
    set_request_id,
    reset_request_id,
    generate_request_id,
)
from .health import HealthStatus, ComponentHealth
from .middleware import RequestIDMiddleware

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    # Metrics
    "integration_jobs_total",
    "integration_job_duration_seconds",
    "integration_worker_running",
    "integration_worker_halts_total",
    "oauth_callbacks_total",
    "portal_reauth_flags_total",
    # Request ID
    "request_id_var",
    "get_request_id",
    "set_request_id",
    "reset_request_id",
    "generate_request_id",
    # Health
    "HealthStatus",
    "ComponentHealth",
    # Middleware
    "RequestIDMiddleware",
]
