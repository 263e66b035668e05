"""Prometheus metrics for ListingSync.

Defines and exposes operational metrics for the integration pipeline.
"""

from prometheus_client import Counter, Histogram, Gauge

# Job outcomes
integration_jobs_total = Counter(
    "listingsync_integration_jobs_total",
    "Integration jobs processed by the worker",
    ["portal_code", "job_type", "outcome"]  # outcome: completed|retry|failed|skipped|cancelled
)

integration_job_duration_seconds = Histogram(
    "listingsync_integration_job_duration_seconds",
    "Time spent executing one integration job in seconds",
    ["portal_code", "job_type"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0]
)

# Worker state
integration_worker_running = Gauge(
    "listingsync_integration_worker_running",
    "1 while the integration worker poll loop is running",
    ["worker_id"]
)

integration_worker_halts_total = Counter(
    "listingsync_integration_worker_halts_total",
    "Times the worker stopped itself on a systemic failure",
    ["worker_id"]
)

# Credentials
oauth_callbacks_total = Counter(
    "listingsync_oauth_callbacks_total",
    "OAuth callbacks handled",
    ["portal_code", "outcome"]  # outcome: connected|denied|invalid_request|failed
)

portal_reauth_flags_total = Counter(
    "listingsync_portal_reauth_flags_total",
    "Connections flagged as needing re-authorization",
    ["portal_code", "source"]  # source: worker|identity|refresh
)
