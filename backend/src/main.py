"""ListingSync Backend - Main FastAPI Application

Marketplace integration pipeline for multi-tenant dealerships.

This module creates and configures the main FastAPI application, including:
- API routers (portal OAuth, integration jobs, integration logs)
- Middleware (request ID correlation, CORS)
- Exception handlers mapping integration errors to HTTP responses
- Health and observability endpoints
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError

from config import get_settings
from infrastructure.encryption import get_cipher
from portals.errors import ErrorKind, IntegrationError

# Observability
from observability.logging_config import configure_logging
from observability.middleware import RequestIDMiddleware
from observability.router import router as observability_router

# Domain Routers
from jobs.router import router as jobs_router
from audit.router import router as integration_logs_router
from oauth.router import router as oauth_router

settings = get_settings()

configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

logger = logging.getLogger(__name__)

# HTTP status per integration error kind
ERROR_KIND_STATUS = {
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFIGURATION: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.TRANSPORT: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.AUTH: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.SYSTEMIC: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    Startup fails when TOKEN_ENCRYPTION_SECRET is missing or too short.
    """
    logger.info("ListingSync API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    get_cipher()

    yield

    logger.info("ListingSync API shutting down...")


is_production = settings.ENVIRONMENT == "production"

app = FastAPI(
    title="ListingSync API",
    description="Vehicle listing publication to third-party marketplaces",
    version="0.1.0",
    docs_url=None if is_production else "/docs",
    redoc_url=None if is_production else "/redoc",
    openapi_url=None if is_production else "/openapi.json",
    lifespan=lifespan,
)


# =============================================================================
# MIDDLEWARE CONFIGURATION
# =============================================================================

# Request ID Middleware (must be first for proper correlation)
app.add_middleware(RequestIDMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

@app.exception_handler(IntegrationError)
async def integration_exception_handler(
    request: Request,
    exc: IntegrationError
) -> JSONResponse:
    """Map integration errors to HTTP status codes by kind."""
    status_code = ERROR_KIND_STATUS.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    log = logger.error if status_code >= 500 else logger.warning
    log(f"{exc.kind.value} error on {request.method} {request.url.path}: {exc.message}")

    content = {"error": exc.kind.value, "message": exc.message}
    violations = getattr(exc, "violations", None)
    if violations:
        content["violations"] = violations
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors with field-level details."""
    logger.warning(f"Validation error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_error",
            "message": "Request validation failed",
            "details": jsonable_errors(exc),
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold exception instances that are not JSON serializable
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(
    request: Request,
    exc: SQLAlchemyError
) -> JSONResponse:
    """Handle database errors.

    Logs the full error but returns a generic message to prevent
    information leakage.
    """
    logger.error(
        f"Database error on {request.method} {request.url.path}",
        exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "database_error",
            "message": "A database error occurred. Please try again later.",
        },
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

# Observability (health, metrics, ready)
app.include_router(observability_router)

# Fixed /api/integrations/* paths first: the OAuth router matches any
# /api/integrations/{portal_code}/...
app.include_router(jobs_router)
app.include_router(integration_logs_router)
app.include_router(oauth_router)


@app.get("/", include_in_schema=False)
async def root() -> dict[str, Any]:
    """Root endpoint - API information."""
    return {
        "name": "ListingSync API",
        "version": "0.1.0",
        "status": "running",
        "docs": None if is_production else "/docs",
    }


if __name__ == "__main__":
    import os
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower(),
    )
