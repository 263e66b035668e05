"""Request ID management for request and job correlation.

HTTP requests get their id from RequestIDMiddleware; the integration worker
sets job-<id> for the duration of each job so every log line of a job
carries the same correlation id.
"""

import uuid
from contextvars import ContextVar, Token
from typing import Optional

# Context variable for request_id (async-safe)
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def generate_request_id() -> str:
    """Generate a new unique request ID.

    Returns:
        str: UUID v4 request ID
    """
    return str(uuid.uuid4())


def get_request_id() -> str:
    """Get current request ID from context.

    Returns:
        str: Current request ID or "no-request-id" if not set
    """
    return request_id_var.get() or "no-request-id"


def set_request_id(request_id: str) -> Token:
    """Set request ID in current context.

    Returns:
        Token to pass to reset_request_id()
    """
    return request_id_var.set(request_id)


def reset_request_id(token: Token) -> None:
    """Restore the request ID that was current before set_request_id()."""
    request_id_var.reset(token)
