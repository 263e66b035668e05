"""OAuth state parameter encoding.

The state carries the tenant id through the authorization server so the
callback can recover it without server-side session storage. It is an opaque
base64 encoding of {"tenantId": "<uuid>"}.

Known gap: the state holds no anti-forgery nonce. Adding one changes the
callback contract and is tracked separately.
"""

import base64
import binascii
import json
from uuid import UUID


class InvalidStateError(ValueError):
    """Raised when a callback state cannot be decoded into a tenant id."""


def encode_state(tenant_id: UUID) -> str:
    """Encode a tenant id into an OAuth state value."""
    payload = json.dumps({"tenantId": str(tenant_id)}, separators=(",", ":"))
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def decode_state(state: str) -> UUID:
    """Recover the tenant id from an OAuth state value.

    Accepts both standard and URL-safe base64, padded or not.

    Raises:
        InvalidStateError: If the state is not base64 JSON with a tenantId
    """
    padded = state + "=" * (-len(state) % 4)
    try:
        raw = base64.b64decode(padded.replace("-", "+").replace("_", "/"), validate=True)
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError, UnicodeDecodeError) as e:
        raise InvalidStateError(f"Malformed OAuth state: {e}")

    tenant_id = data.get("tenantId") if isinstance(data, dict) else None
    if not tenant_id:
        raise InvalidStateError("Tenant ID missing in state")

    try:
        return UUID(str(tenant_id))
    except ValueError:
        raise InvalidStateError(f"Invalid tenant ID in state: {tenant_id}")
