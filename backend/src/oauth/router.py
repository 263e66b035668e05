"""Portal OAuth endpoints.

Mounted per portal at /api/integrations/{portal_code}. The callback always
answers with a redirect to the frontend; the other endpoints answer JSON.
"""

from typing import Iterator, Optional
from uuid import UUID

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from config import Settings, get_settings
from database import get_db
from infrastructure.encryption import get_cipher
from portals.errors import AuthError, NotFoundError, TransportError
from .schemas import (
    AuthUrlResponse,
    ConnectionStatusResponse,
    IdentityResponse,
    ReauthRequiredResponse,
)
from .service import OAuthExchangeService


router = APIRouter(prefix="/api/integrations/{portal_code}", tags=["Portal OAuth"])


def get_oauth_service(
    portal_code: str,
    settings: Settings = Depends(get_settings),
) -> Iterator[OAuthExchangeService]:
    """Dependency building the OAuth service for the portal in the path.

    The HTTP client lives for the duration of the request.
    """
    try:
        oauth_settings = settings.portal_oauth(portal_code)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Portal '{portal_code}' does not support OAuth",
        )

    with httpx.Client(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
        yield OAuthExchangeService(portal_code, oauth_settings, get_cipher(), client)


def _require_tenant_id(tenant_id: Optional[str]) -> UUID:
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Tenant ID is required",
        )
    try:
        return UUID(tenant_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid tenant ID: {tenant_id}",
        )


def _reauth_response(error: AuthError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ReauthRequiredResponse(error=error.message).model_dump(),
    )


@router.get("/auth-url", response_model=AuthUrlResponse)
def get_auth_url(
    tenant_id: Optional[str] = Query(None, description="Tenant starting the connection"),
    service: OAuthExchangeService = Depends(get_oauth_service),
) -> AuthUrlResponse:
    """Build the portal authorization URL for a tenant."""
    tenant = _require_tenant_id(tenant_id)
    return AuthUrlResponse(url=service.build_authorization_url(tenant))


@router.get("/callback", response_class=RedirectResponse, status_code=status.HTTP_302_FOUND)
def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    service: OAuthExchangeService = Depends(get_oauth_service),
) -> RedirectResponse:
    """Authorization server redirect target.

    Redirects to {APP_URL}/integrations with success={portal}_connected or
    error={portal}_denied / {portal}_invalid_request / {portal}_failed.
    """
    result = service.handle_callback(db, code=code, state=state, error=error)
    return RedirectResponse(url=result.redirect_url, status_code=status.HTTP_302_FOUND)


@router.get(
    "/me",
    response_model=IdentityResponse,
    responses={
        404: {"description": "Tenant is not connected"},
        500: {"model": ReauthRequiredResponse, "description": "Re-authorization required"},
        502: {"description": "Portal unreachable"},
    },
)
def get_identity(
    tenant_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    service: OAuthExchangeService = Depends(get_oauth_service),
):
    """Validate the stored token and return the portal account profile.

    A rejected or undecryptable token flags the connection with
    needs_reauth=true before the error is returned.
    """
    tenant = _require_tenant_id(tenant_id)
    try:
        result = service.fetch_identity(db, tenant)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthError as e:
        return _reauth_response(e)
    except TransportError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)

    return IdentityResponse(
        connected=result.connected,
        user=result.profile,
        expires_at=result.expires_at,
    )


@router.get("/connection", response_model=ConnectionStatusResponse)
def get_connection_status(
    tenant_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    service: OAuthExchangeService = Depends(get_oauth_service),
) -> ConnectionStatusResponse:
    """Connection status of a tenant without secret material."""
    tenant = _require_tenant_id(tenant_id)
    connection = service.get_connection(db, tenant)
    if connection is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not connected")
    return ConnectionStatusResponse.model_validate(connection)


@router.post(
    "/refresh",
    response_model=ConnectionStatusResponse,
    responses={500: {"model": ReauthRequiredResponse}},
)
def refresh_connection(
    tenant_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    service: OAuthExchangeService = Depends(get_oauth_service),
):
    """Exchange the stored refresh token for a new access token."""
    tenant = _require_tenant_id(tenant_id)
    try:
        connection = service.refresh_access_token(db, tenant)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthError as e:
        return _reauth_response(e)
    except TransportError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)

    return ConnectionStatusResponse.model_validate(connection)


@router.delete("/connection", status_code=status.HTTP_204_NO_CONTENT)
def delete_connection(
    tenant_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    service: OAuthExchangeService = Depends(get_oauth_service),
) -> Response:
    """Disconnect the tenant from the portal."""
    tenant = _require_tenant_id(tenant_id)
    if not service.disconnect(db, tenant):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not connected")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
