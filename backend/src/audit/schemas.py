"""Pydantic schemas for integration log endpoints.

Integration logs are read-only through the API.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class IntegrationLogResponse(BaseModel):
    """One entry of the integration trail."""
    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": "550e8400-e29b-41d4-a716-446655440000",
                "tenant_id": "7c9e6679-7425-40de-944b-e07fc1f90ae7",
                "portal_code": "olx",
                "job_id": "auth-flow",
                "vehicle_id": None,
                "level": "info",
                "message": "OAuth connection established",
                "created_at": "2025-01-04T12:00:00Z"
            }
        },
    )

    id: UUID = Field(..., description="Log entry unique identifier")
    tenant_id: UUID = Field(..., description="Tenant ID")
    portal_code: str = Field(..., description="Portal involved")
    job_id: str = Field(..., description="Job ID, or 'auth-flow' for OAuth events")
    vehicle_id: Optional[UUID] = Field(None, description="Vehicle involved")
    level: str = Field(..., description="info or error")
    message: str = Field(..., description="Human-readable message")
    created_at: datetime = Field(..., description="Event timestamp")


class IntegrationLogListResponse(BaseModel):
    """Paginated integration log query result."""
    entries: list[IntegrationLogResponse] = Field(..., description="Log entries, newest first")
    total: int = Field(..., description="Total number of entries matching filters")
    page: int = Field(..., description="Current page number")
    per_page: int = Field(..., description="Entries per page")
