"""Idempotency keys for integration jobs.

A key identifies one logical action on one version of a vehicle's content.
Enqueueing the same action twice for unchanged content yields the same key,
so the second enqueue returns the existing job.
"""

import hashlib
from typing import Optional
from uuid import UUID


def build_idempotency_key(
    vehicle_id: UUID,
    portal_code: str,
    action: str,
    content_version: Optional[str] = None,
) -> str:
    """SHA-256 hex digest of vehicle_id:portal_code:action:content_version.

    Args:
        vehicle_id: Vehicle the job acts on
        portal_code: Target portal
        action: Job type value (publish, update, ...)
        content_version: Version of the vehicle content, empty when unknown

    Returns:
        64-character hex digest
    """
    action = getattr(action, "value", action)
    raw = f"{vehicle_id}:{portal_code}:{action}:{content_version or ''}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
