"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from keygate.api.v1 import api_router
from keygate.core.config import settings
from keygate.core.errors import (
    APIException,
    KeyGateError,
    api_exception_handler,
    http_exception_handler,
    keygate_exception_handler,
)
from keygate.core.middleware import (
    SecurityHeadersMiddleware,
    TokenRedactionMiddleware,
    install_token_redaction_logging,
    redact_exception_args,
    redact_tokens,
)
from keygate.core.rate_limit import limiter
from keygate.db.session import AsyncSessionLocal, Base, engine
from keygate.schemas.common import HealthResponse

# Import models so they're registered with Base.metadata
from keygate.models import access_token  # noqa: F401

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    from keygate.core.logging_config import configure_logging

    configure_logging()
    install_token_redaction_logging()

    logger.info(
        "Starting %s v%s",
        settings.APP_NAME,
        settings.APP_VERSION,
        extra={
            "event_type": "system.startup",
            "environment": settings.ENVIRONMENT,
            "gate_provider": settings.GATE_PROVIDER,
        },
    )

    # Only auto-create tables outside production
    if settings.ENVIRONMENT in ("local", "development", "dev", "test"):
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created/verified", extra={"event_type": "system.startup.db"})
    else:
        logger.info(
            "Production mode: skipping table auto-create",
            extra={"event_type": "system.startup.db"},
        )

    yield

    logger.info("Shutting down", extra={"event_type": "system.shutdown"})
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Device-bound, time-limited access tokens granted through an external redirect gate",
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    docs_url=f"{settings.API_V1_PREFIX}/docs",
    redoc_url=f"{settings.API_V1_PREFIX}/redoc",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Error envelope
app.add_exception_handler(KeyGateError, keygate_exception_handler)
app.add_exception_handler(APIException, api_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Operator-Key", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)

app.add_middleware(SecurityHeadersMiddleware)

# Referrer-Policy: no-referrer on endpoints that carry token ids
app.add_middleware(TokenRedactionMiddleware)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions without leaking token ids."""
    exc = redact_exception_args(exc)

    logger.error(
        "Unhandled error on %s: %s",
        redact_tokens(request.url.path),
        type(exc).__name__,
        extra={"event_type": "api.unhandled_error"},
    )

    error_details = None
    if settings.DEBUG:
        error_details = redact_tokens(str(exc))

    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred",
            "details": error_details,
        },
    )


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """
    Health check endpoint with database connectivity verification.

    Returns 503 Service Unavailable if the token store is unreachable.
    """
    is_production = settings.ENVIRONMENT == "production"
    db_status = "disconnected"
    overall_status = "healthy"

    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
            db_status = "connected"
    except (SQLAlchemyError, OSError) as e:
        db_status = "error" if is_production else f"error: {str(e)[:50]}"
        overall_status = "unhealthy"

    response = HealthResponse(
        status=overall_status,
        version=settings.APP_VERSION,
        database=db_status,
        timestamp=datetime.now(timezone.utc),
    )

    if overall_status == "unhealthy":
        return JSONResponse(
            status_code=503,
            content=response.model_dump(mode="json"),
        )

    return response


app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": f"{settings.API_V1_PREFIX}/docs",
    }
