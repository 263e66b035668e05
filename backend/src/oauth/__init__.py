"""Portal OAuth flow: authorization, token exchange, identity and refresh."""

from .service import OAuthExchangeService, CallbackResult, IdentityResult, TokenResponse
from .state import InvalidStateError, encode_state, decode_state

__all__ = [
    "OAuthExchangeService",
    "CallbackResult",
    "IdentityResult",
    "TokenResponse",
    "InvalidStateError",
    "encode_state",
    "decode_state",
]
