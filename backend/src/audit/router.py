"""Integration log query endpoint.

Read-only: integration log entries are written by the worker and the OAuth
flow and can never be created, updated or deleted through the API.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from .schemas import IntegrationLogListResponse
from .service import list_integration_events


router = APIRouter(prefix="/api/integrations/logs", tags=["Integration Logs"])


@router.get(
    "",
    response_model=IntegrationLogListResponse,
    summary="Query the integration trail of a tenant",
)
def query_integration_logs(
    db: Session = Depends(get_db),
    tenant_id: UUID = Query(..., description="Tenant whose trail to read"),
    portal_code: Optional[str] = Query(None, description="Filter by portal"),
    job_id: Optional[str] = Query(None, description="Filter by job ID or 'auth-flow'"),
    level: Optional[str] = Query(None, pattern="^(info|error)$", description="Filter by level"),
    start_date: Optional[datetime] = Query(None, description="Minimum created_at (ISO 8601)"),
    end_date: Optional[datetime] = Query(None, description="Maximum created_at (ISO 8601)"),
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    per_page: int = Query(50, ge=1, le=100, description="Entries per page (max 100)"),
) -> IntegrationLogListResponse:
    """Query integration log entries with filtering and pagination.

    Results are ordered by created_at DESC (newest first).

    Example:
        GET /api/integrations/logs?tenant_id=...&level=error&page=1&per_page=50
    """
    entries, total = list_integration_events(
        db,
        tenant_id=tenant_id,
        portal_code=portal_code,
        job_id=job_id,
        level=level,
        start_date=start_date,
        end_date=end_date,
        offset=(page - 1) * per_page,
        limit=per_page,
    )

    return IntegrationLogListResponse(
        entries=entries,
        total=total,
        page=page,
        per_page=per_page,
    )
