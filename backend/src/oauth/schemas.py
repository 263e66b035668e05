"""Pydantic schemas for portal OAuth endpoints."""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AuthUrlResponse(BaseModel):
    """Authorization URL the frontend redirects the browser to."""
    url: str = Field(..., description="Portal authorization URL including state")


class IdentityResponse(BaseModel):
    """Result of validating the stored token against the portal."""
    connected: bool = Field(..., description="True when the portal accepted the token")
    user: Dict[str, Any] = Field(default_factory=dict, description="Portal profile of the account")
    expires_at: Optional[datetime] = Field(None, description="Access token expiry")


class ReauthRequiredResponse(BaseModel):
    """Body returned when the portal rejected the stored credentials."""
    error: str = Field(..., description="Error message")
    needs_reauth: bool = Field(True, description="Connection must be re-authorized")


class ConnectionStatusResponse(BaseModel):
    """Connection status without any secret material."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    portal_code: str
    active: bool
    needs_reauth: bool
    expires_at: Optional[datetime] = None
    connected_at: Optional[datetime] = None
    updated_at: datetime
