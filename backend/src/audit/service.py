"""Integration log service.

This service is the single entry point for the human-readable integration
trail shown to dealership users. Entries are append-only: there is no update
or delete operation here.

Every entry is mirrored to the application log with tenant/job/portal
context, so operators see the same events in structured logs.

Events:
- Job completed / job failed / retry scheduled (worker)
- OAuth connection established / failed / disconnected (job_id = "auth-flow")
"""

import logging
from datetime import datetime
from typing import List, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from models import IntegrationLog, AUTH_FLOW_JOB_ID

logger = logging.getLogger(__name__)

LEVEL_INFO = "info"
LEVEL_ERROR = "error"


def log_integration_event(
    db: Session,
    tenant_id: UUID,
    portal_code: str,
    level: str,
    message: str,
    job_id: Optional[Union[UUID, str]] = None,
    vehicle_id: Optional[UUID] = None,
) -> IntegrationLog:
    """Append an integration log entry.

    The entry is flushed but not committed; it becomes durable together with
    the state change it describes.

    Args:
        db: Database session
        tenant_id: Tenant the event belongs to
        portal_code: Portal involved
        level: "info" or "error"
        message: Human-readable message
        job_id: Job the event belongs to; defaults to the OAuth sentinel
        vehicle_id: Vehicle involved, if any

    Returns:
        IntegrationLog: The created entry

    Raises:
        ValueError: If level is not "info" or "error"
    """
    if level not in (LEVEL_INFO, LEVEL_ERROR):
        raise ValueError(f"Invalid log level: {level}. Must be 'info' or 'error'")

    entry = IntegrationLog(
        tenant_id=tenant_id,
        portal_code=portal_code,
        job_id=str(job_id) if job_id is not None else AUTH_FLOW_JOB_ID,
        vehicle_id=vehicle_id,
        level=level,
        message=message,
    )

    db.add(entry)
    db.flush()  # Get ID without committing transaction

    extra = {
        "tenant_id": str(tenant_id),
        "portal_code": portal_code,
        "job_id": entry.job_id,
    }
    if level == LEVEL_ERROR:
        logger.error(message, extra=extra)
    else:
        logger.info(message, extra=extra)

    return entry


def list_integration_events(
    db: Session,
    tenant_id: UUID,
    portal_code: Optional[str] = None,
    job_id: Optional[str] = None,
    level: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    offset: int = 0,
    limit: int = 50,
) -> tuple[List[IntegrationLog], int]:
    """Query a tenant's integration trail, newest first.

    Returns:
        (entries, total) where total counts all entries matching the filters
    """
    query = db.query(IntegrationLog).filter(IntegrationLog.tenant_id == tenant_id)

    if portal_code:
        query = query.filter(IntegrationLog.portal_code == portal_code)
    if job_id:
        query = query.filter(IntegrationLog.job_id == job_id)
    if level:
        query = query.filter(IntegrationLog.level == level)
    if start_date:
        query = query.filter(IntegrationLog.created_at >= start_date)
    if end_date:
        query = query.filter(IntegrationLog.created_at <= end_date)

    total = query.count()
    entries = (
        query.order_by(IntegrationLog.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return entries, total
