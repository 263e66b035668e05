"""FastAPI middleware for observability.

Assigns every HTTP request a correlation id (from X-Request-ID or freshly
generated), logs request completion, and echoes the id in the response.
"""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .request_id import generate_request_id, set_request_id, reset_request_id
from .logging_config import get_logger

logger = get_logger(__name__)

# Probes and scrapes would drown the log
QUIET_PATHS = frozenset({"/health", "/ready", "/metrics"})


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware to generate and inject request IDs."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        token = set_request_id(request_id)
        start_time = time.time()

        try:
            try:
                response = await call_next(request)
            except Exception as e:
                duration_ms = (time.time() - start_time) * 1000
                logger.error(
                    f"{request.method} {request.url.path} failed: {e}",
                    extra={"duration_ms": round(duration_ms, 2)},
                    exc_info=True
                )
                raise

            if request.url.path not in QUIET_PATHS:
                duration_ms = (time.time() - start_time) * 1000
                logger.info(
                    f"{request.method} {request.url.path} -> {response.status_code}",
                    extra={
                        "status_code": response.status_code,
                        "duration_ms": round(duration_ms, 2),
                    }
                )

            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            reset_request_id(token)
