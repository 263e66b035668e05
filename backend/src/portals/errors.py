"""
Integration error taxonomy

Every failure inside the job pipeline is expressed as an IntegrationError
carrying an ErrorKind. The worker decides retry/fail/halt from the kind alone,
never from message text.
"""

from enum import Enum
from typing import Iterable, Optional


class ErrorKind(str, Enum):
    """Classification of integration failures."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFIGURATION = "configuration"
    TRANSPORT = "transport"
    AUTH = "auth"
    SYSTEMIC = "systemic"


class IntegrationError(Exception):
    """
    Base exception for integration pipeline errors.

    Attributes:
        kind: ErrorKind used for classification
        message: Human-readable message stored on the job and in the log
    """

    kind: ErrorKind = ErrorKind.TRANSPORT

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def retryable(self) -> bool:
        """Only transport failures are worth retrying."""
        return self.kind == ErrorKind.TRANSPORT


class ValidationError(IntegrationError):
    """Business-rule violation detected before any network call (permanent)."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, violations: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.violations = list(violations or [])

    @classmethod
    def from_violations(cls, violations: Iterable[str]) -> "ValidationError":
        violations = list(violations)
        return cls(", ".join(violations), violations=violations)


class NotFoundError(IntegrationError):
    """Referenced vehicle, listing or connection does not exist (permanent)."""

    kind = ErrorKind.NOT_FOUND


class ConfigurationError(IntegrationError):
    """Unknown portal code or missing credentials (permanent)."""

    kind = ErrorKind.CONFIGURATION


class TransportError(IntegrationError):
    """Network failure, timeout or 5xx from the portal (retryable)."""

    kind = ErrorKind.TRANSPORT

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthError(IntegrationError):
    """Portal rejected the credentials; the connection needs re-authorization."""

    kind = ErrorKind.AUTH


class DecryptionError(AuthError):
    """Stored token cannot be decrypted; treated like rejected credentials."""


class SystemicError(IntegrationError):
    """Storage or infrastructure failure that makes polling itself unsafe."""

    kind = ErrorKind.SYSTEMIC


# PostgreSQL SQLSTATE raised by row-level security policies that recurse
_SYSTEMIC_SQLSTATES = {"42P17"}


def detect_systemic_error(exc: BaseException) -> Optional[SystemicError]:
    """
    Recognize storage-layer failures that must halt the worker.

    Checks the DBAPI SQLSTATE (``pgcode`` on psycopg2, ``sqlstate`` on
    psycopg 3) of SQLAlchemy DBAPIError wrappers and the raw driver exception.

    Returns:
        SystemicError if exc signals a systemic failure, None otherwise
    """
    if isinstance(exc, SystemicError):
        return exc

    candidates = [c for c in (exc, getattr(exc, "orig", None)) if c is not None]
    for candidate in candidates:
        code = getattr(candidate, "pgcode", None) or getattr(candidate, "sqlstate", None)
        if isinstance(code, str) and code in _SYSTEMIC_SQLSTATES:
            return SystemicError(f"Storage misconfiguration ({code}): {exc}")
    for candidate in candidates:
        if "infinite recursion" in str(candidate).lower():
            return SystemicError(f"Storage misconfiguration (infinite recursion): {exc}")
    return None


def classify_exception(exc: BaseException) -> IntegrationError:
    """
    Convert any exception raised while executing a job into the taxonomy.

    IntegrationError instances are returned unchanged; systemic storage
    errors become SystemicError; anything else is treated as a transient
    transport failure.
    """
    if isinstance(exc, IntegrationError):
        return exc

    systemic = detect_systemic_error(exc)
    if systemic is not None:
        return systemic

    return TransportError(f"{type(exc).__name__}: {exc}")
