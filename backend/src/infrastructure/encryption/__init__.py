"""Infrastructure encryption utilities."""

from .token_cipher import TokenCipher, get_cipher, MIN_SECRET_LENGTH

__all__ = [
    "TokenCipher",
    "get_cipher",
    "MIN_SECRET_LENGTH",
]
