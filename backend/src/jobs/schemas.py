"""Pydantic schemas for integration job endpoints."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from models import IntegrationJobStatus, IntegrationJobType


class EnqueueJobRequest(BaseModel):
    """Request to queue one portal action for a vehicle."""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "tenant_id": "7c9e6679-7425-40de-944b-e07fc1f90ae7",
                "vehicle_id": "550e8400-e29b-41d4-a716-446655440000",
                "portal_code": "olx",
                "job_type": "publish",
            }
        }
    )

    tenant_id: UUID
    vehicle_id: UUID
    portal_code: str = Field(..., min_length=1, max_length=50)
    job_type: IntegrationJobType
    content_version: Optional[str] = Field(
        None, description="Vehicle content version; defaults to the vehicle's updated_at"
    )
    max_attempts: Optional[int] = Field(None, ge=1, le=20)
    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=200)


class IntegrationJobResponse(BaseModel):
    """Integration job as stored."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    vehicle_id: UUID
    portal_code: str
    job_type: IntegrationJobType
    status: IntegrationJobStatus
    attempts: int
    max_attempts: int
    next_attempt_at: datetime
    error_message: Optional[str] = None
    error_kind: Optional[str] = None
    idempotency_key: str
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None


class EnqueueJobResponse(BaseModel):
    """Enqueue result; created=False when an identical job already existed."""
    job: IntegrationJobResponse
    created: bool


class IntegrationJobListResponse(BaseModel):
    """Paginated job list."""
    items: List[IntegrationJobResponse]
    total: int
    page: int
    per_page: int
