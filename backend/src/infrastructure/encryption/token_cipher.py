"""OAuth token encryption using AES-256-GCM.

Portal access and refresh tokens are encrypted before they are written to
portal_connection and decrypted only for the duration of a job or an identity
check.

Security considerations:
- AES-256-GCM authenticated encryption; tampering fails the tag check
- 256-bit key derived once per cipher from TOKEN_ENCRYPTION_SECRET via HKDF
- Fresh random 96-bit nonce per encryption, stored with the ciphertext
- Optional associated data binds a ciphertext to its connection

Storage format:
    "v1." + urlsafe_base64(nonce (12 bytes) || ciphertext || tag (16 bytes))

The plaintext is never split or delimited, so tokens containing "." or ":"
(or empty tokens) round-trip unchanged.
"""

import base64
import binascii
import logging
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from config import Settings, get_settings
from portals.errors import ConfigurationError, DecryptionError

logger = logging.getLogger(__name__)

MIN_SECRET_LENGTH = 32
NONCE_SIZE = 12
TAG_SIZE = 16
FORMAT_PREFIX = "v1."


class TokenCipher:
    """AES-256-GCM cipher for OAuth tokens at rest.

    Example:
        cipher = TokenCipher(secret)
        stored = cipher.encrypt(access_token)
        ...
        access_token = cipher.decrypt(stored)
    """

    # Fixed salt: the derived key, not the salt, is the secret boundary
    HKDF_SALT = b"listingsync-portal-tokens"
    HKDF_INFO = b"listingsync-token-encryption-v1"

    def __init__(self, secret: str):
        """Derive the encryption key from the configured secret.

        Args:
            secret: TOKEN_ENCRYPTION_SECRET value

        Raises:
            ConfigurationError: If the secret is missing or shorter than 32 characters
        """
        if not secret or len(secret) < MIN_SECRET_LENGTH:
            raise ConfigurationError(
                f"TOKEN_ENCRYPTION_SECRET must be at least {MIN_SECRET_LENGTH} characters. "
                "Generate one with: python -c 'import secrets; print(secrets.token_urlsafe(48))'"
            )

        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=32,  # 256 bits
            salt=self.HKDF_SALT,
            info=self.HKDF_INFO,
        )
        self._aesgcm = AESGCM(hkdf.derive(secret.encode("utf-8")))

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "TokenCipher":
        settings = settings or get_settings()
        return cls(settings.TOKEN_ENCRYPTION_SECRET or "")

    def encrypt(self, plaintext: str, context: Optional[str] = None) -> str:
        """Encrypt a token.

        Args:
            plaintext: Token to encrypt (any string, including empty)
            context: Optional associated data; must match on decrypt

        Returns:
            Self-contained ciphertext string
        """
        nonce = os.urandom(NONCE_SIZE)
        associated_data = context.encode("utf-8") if context else None
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), associated_data)
        return FORMAT_PREFIX + base64.urlsafe_b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, ciphertext: str, context: Optional[str] = None) -> str:
        """Decrypt a token produced by encrypt().

        Raises:
            DecryptionError: If the value is malformed, was encrypted with a
                different key or context, or has been tampered with
        """
        if not isinstance(ciphertext, str) or not ciphertext.startswith(FORMAT_PREFIX):
            raise DecryptionError("Encrypted token has an unknown format")

        try:
            raw = base64.urlsafe_b64decode(ciphertext[len(FORMAT_PREFIX):].encode("ascii"))
        except (binascii.Error, ValueError, UnicodeEncodeError) as e:
            raise DecryptionError(f"Encrypted token is not valid base64: {e}")

        if len(raw) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionError("Encrypted token is too short")

        nonce, sealed = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
        associated_data = context.encode("utf-8") if context else None

        try:
            plaintext = self._aesgcm.decrypt(nonce, sealed, associated_data)
        except InvalidTag:
            logger.error("Token decryption failed: authentication tag verification failed")
            raise DecryptionError(
                "Token decryption failed: data has been tampered with or wrong encryption key"
            )

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError(f"Decrypted token is not valid UTF-8: {e}")


# Module-level cipher instance (lazy initialization)
_cipher: Optional[TokenCipher] = None


def get_cipher() -> TokenCipher:
    """Get or create the module-level cipher from settings."""
    global _cipher
    if _cipher is None:
        _cipher = TokenCipher.from_settings()
    return _cipher
