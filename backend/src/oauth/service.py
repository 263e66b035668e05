"""OAuth Exchange Service - portal authorization and token lifecycle.

Handles the three-legged OAuth flow against a portal's authorization server:
- Build the authorization URL carrying the tenant in the state parameter
- Exchange the callback code for tokens and store them encrypted
- Validate stored tokens against the portal identity endpoint
- Refresh expired access tokens
- Disconnect (delete) a connection on request

Credential problems detected here (401 from the portal, undecryptable token,
rejected refresh token) flag the connection with needs_reauth=True.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode
from uuid import UUID

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from audit.service import log_integration_event, LEVEL_ERROR, LEVEL_INFO
from config import PortalOAuthSettings
from credentials.store import CredentialStore
from infrastructure.encryption import TokenCipher
from models import PortalConnection, utcnow
from observability.metrics import oauth_callbacks_total, portal_reauth_flags_total
from portals.errors import AuthError, DecryptionError, NotFoundError, TransportError
from .state import encode_state, decode_state

logger = logging.getLogger(__name__)


@dataclass
class TokenResponse:
    """Tokens issued by the portal's token endpoint."""
    access_token: str
    refresh_token: Optional[str]
    expires_in: Optional[int]


@dataclass
class CallbackResult:
    """Outcome of an OAuth callback: where to send the browser."""
    redirect_url: str
    success: bool
    tenant_id: Optional[UUID] = None


@dataclass
class IdentityResult:
    """Portal account behind a tenant's stored access token."""
    connected: bool
    profile: Dict[str, Any]
    expires_at: Optional[datetime]


class OAuthExchangeService:
    """OAuth client for one portal.

    Usage:
        service = OAuthExchangeService("olx", settings.portal_oauth("olx"), cipher, client)
        url = service.build_authorization_url(tenant_id)
        ...
        result = service.handle_callback(db, code, state)
        return RedirectResponse(result.redirect_url)
    """

    def __init__(
        self,
        portal_code: str,
        oauth_settings: PortalOAuthSettings,
        cipher: TokenCipher,
        http_client: httpx.Client,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.portal_code = portal_code
        self.settings = oauth_settings
        self.cipher = cipher
        self.http = http_client
        self.clock = clock

    @property
    def redirect_uri(self) -> str:
        return f"{self.settings.app_url}/api/integrations/{self.portal_code}/callback"

    def _frontend_redirect(self, **params: str) -> str:
        return f"{self.settings.app_url}/integrations?{urlencode(params)}"

    def build_authorization_url(self, tenant_id: UUID) -> str:
        """Authorization URL the tenant's browser is sent to.

        Args:
            tenant_id: Tenant starting the connection

        Returns:
            Fully-qualified authorization URL
        """
        query = urlencode({
            "response_type": "code",
            "client_id": self.settings.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": self.settings.scope,
            "state": encode_state(tenant_id),
        })
        return f"{self.settings.auth_url}?{query}"

    def handle_callback(
        self,
        db: Session,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
    ) -> CallbackResult:
        """Complete the authorization flow.

        Never raises: every failure becomes a redirect with an error flag.
        On failure nothing is written to portal_connection.

        Args:
            db: Database session
            code: Authorization code from the portal
            state: State value produced by build_authorization_url
            error: Error reported by the authorization server, if any

        Returns:
            CallbackResult with the frontend redirect URL
        """
        if error:
            logger.warning(f"{self.portal_code} authorization denied: {error}")
            oauth_callbacks_total.labels(portal_code=self.portal_code, outcome="denied").inc()
            return CallbackResult(
                redirect_url=self._frontend_redirect(error=f"{self.portal_code}_denied"),
                success=False,
            )

        if not code or not state:
            oauth_callbacks_total.labels(portal_code=self.portal_code, outcome="invalid_request").inc()
            return CallbackResult(
                redirect_url=self._frontend_redirect(error=f"{self.portal_code}_invalid_request"),
                success=False,
            )

        tenant_id: Optional[UUID] = None
        try:
            tenant_id = decode_state(state)
            tokens = self._exchange_code(code)

            store = CredentialStore(db, self.cipher)
            store.upsert(
                tenant_id,
                self.portal_code,
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                expires_in=tokens.expires_in,
                now=self.clock(),
            )
            log_integration_event(
                db, tenant_id, self.portal_code, LEVEL_INFO,
                "OAuth connection established successfully",
            )
            db.commit()

        except Exception as e:
            db.rollback()
            logger.error(
                f"{self.portal_code} OAuth callback failed: {e}",
                exc_info=True,
                extra={"tenant_id": str(tenant_id) if tenant_id else None},
            )
            if tenant_id is not None:
                self._log_callback_failure(db, tenant_id, e)
            oauth_callbacks_total.labels(portal_code=self.portal_code, outcome="failed").inc()
            return CallbackResult(
                redirect_url=self._frontend_redirect(error=f"{self.portal_code}_failed"),
                success=False,
                tenant_id=tenant_id,
            )

        oauth_callbacks_total.labels(portal_code=self.portal_code, outcome="connected").inc()
        return CallbackResult(
            redirect_url=self._frontend_redirect(success=f"{self.portal_code}_connected"),
            success=True,
            tenant_id=tenant_id,
        )

    def _log_callback_failure(self, db: Session, tenant_id: UUID, exc: Exception) -> None:
        try:
            log_integration_event(
                db, tenant_id, self.portal_code, LEVEL_ERROR,
                f"OAuth connection failed: {exc}",
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.error("Could not record OAuth failure in integration log", exc_info=True)

    def get_connection(self, db: Session, tenant_id: UUID) -> Optional[PortalConnection]:
        return CredentialStore(db, self.cipher).get(tenant_id, self.portal_code)

    def fetch_identity(self, db: Session, tenant_id: UUID) -> IdentityResult:
        """Validate the stored access token against the portal.

        Raises:
            NotFoundError: If the tenant has no connection for this portal
            AuthError: If the portal rejects the token (connection flagged)
            DecryptionError: If the stored token is corrupt (connection flagged)
            TransportError: On network errors or other non-2xx responses
        """
        store = CredentialStore(db, self.cipher)
        connection = store.get(tenant_id, self.portal_code)
        if connection is None or not connection.access_token_encrypted:
            raise NotFoundError("Not connected")

        try:
            credentials = store.load_credentials(connection)
        except DecryptionError:
            self._flag_reauth(db, store, tenant_id, source="identity")
            raise

        try:
            response = self.http.get(
                self.settings.identity_url,
                params={"access_token": credentials.access_token},
            )
        except httpx.RequestError as e:
            raise TransportError(f"Identity request failed: {e}")

        if response.status_code == 401:
            self._flag_reauth(db, store, tenant_id, source="identity")
            raise AuthError(f"{self.portal_code} rejected the access token")

        if response.status_code >= 400:
            raise TransportError(
                f"Identity endpoint returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            profile = response.json()
        except ValueError:
            raise TransportError("Identity endpoint returned a non-JSON response")

        return IdentityResult(
            connected=True,
            profile=profile,
            expires_at=connection.expires_at,
        )

    def refresh_access_token(self, db: Session, tenant_id: UUID) -> PortalConnection:
        """Exchange the stored refresh token for a new access token.

        Commits the new tokens. A rejected or missing refresh token flags the
        connection for re-authorization.

        Raises:
            NotFoundError: If the tenant has no connection
            AuthError: If there is no usable refresh token or it was rejected
            TransportError: On network errors or 5xx responses
        """
        store = CredentialStore(db, self.cipher)
        connection = store.get(tenant_id, self.portal_code)
        if connection is None:
            raise NotFoundError("Not connected")

        try:
            refresh_token = store.load_refresh_token(connection)
        except DecryptionError:
            self._flag_reauth(db, store, tenant_id, source="refresh")
            raise

        if not refresh_token:
            self._flag_reauth(db, store, tenant_id, source="refresh")
            raise AuthError(f"No refresh token stored for {self.portal_code}")

        try:
            tokens = self._post_token({
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.settings.client_id,
                "client_secret": self.settings.client_secret,
            })
        except AuthError:
            self._flag_reauth(db, store, tenant_id, source="refresh")
            raise

        connection = store.upsert(
            tenant_id,
            self.portal_code,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_in=tokens.expires_in,
            now=self.clock(),
            keep_refresh_token=True,
        )
        log_integration_event(
            db, tenant_id, self.portal_code, LEVEL_INFO, "Access token refreshed",
        )
        db.commit()
        return connection

    def disconnect(self, db: Session, tenant_id: UUID) -> bool:
        """Delete the tenant's connection.

        Returns:
            True if a connection existed and was deleted
        """
        store = CredentialStore(db, self.cipher)
        deleted = store.delete(tenant_id, self.portal_code)
        if deleted:
            log_integration_event(
                db, tenant_id, self.portal_code, LEVEL_INFO, "Portal disconnected",
            )
            db.commit()
        return deleted

    def _exchange_code(self, code: str) -> TokenResponse:
        return self._post_token({
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
            "redirect_uri": self.redirect_uri,
        })

    def _post_token(self, form: Dict[str, str]) -> TokenResponse:
        """POST a form-encoded grant to the token endpoint.

        Raises:
            AuthError: On 400/401 (invalid grant or client)
            TransportError: On network errors, other failures or a malformed body
        """
        try:
            response = self.http.post(
                self.settings.token_url,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.RequestError as e:
            raise TransportError(f"Token request failed: {e}")

        if response.status_code in (400, 401):
            raise AuthError(
                f"Token endpoint rejected the {form['grant_type']} grant: {response.text[:200]}"
            )
        if response.status_code >= 400:
            raise TransportError(
                f"Token endpoint returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            raise TransportError("Token endpoint returned a non-JSON response")

        access_token = body.get("access_token")
        if not access_token:
            raise TransportError("Token endpoint response is missing access_token")

        expires_in = body.get("expires_in")
        return TokenResponse(
            access_token=access_token,
            refresh_token=body.get("refresh_token"),
            expires_in=int(expires_in) if expires_in is not None else None,
        )

    def _flag_reauth(self, db: Session, store: CredentialStore, tenant_id: UUID, source: str) -> None:
        flagged = store.mark_needs_reauth(tenant_id, self.portal_code)
        log_integration_event(
            db, tenant_id, self.portal_code, LEVEL_ERROR,
            "Portal credentials rejected; reconnect required",
        )
        db.commit()
        if flagged:
            portal_reauth_flags_total.labels(portal_code=self.portal_code, source=source).inc()
