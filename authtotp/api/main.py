"""
AUTHTOTP REST API - Main Application.

FastAPI-based REST API for TOTP second factors and recovery codes.

Usage:
    # Development
    uvicorn authtotp.api.main:app --reload --port 8080

    # Production
    uvicorn authtotp.api.main:app --host 0.0.0.0 --port 8080 --workers 1

Rate limiting is per process: with several workers each one enforces its
own limit.
"""
import math
import os
import time
import uuid
import logging
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from .routes import totp_router, health_router
from .models import ErrorResponse
from .deps import build_service
from .. import __version__
from ..auth.errors import RateLimited, TwoFactorError
from ..auth.service import TwoFactorService
from ..utils.config import Settings, load_settings

# Configure logging with request context support; the level comes from
# Settings.log_level once settings are loaded
LOG_FORMAT = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
)


# Custom filter to add request_id to all log records
class RequestIdFilter(logging.Filter):
    """Add request_id to log records."""
    def filter(self, record):
        if not hasattr(record, 'request_id'):
            record.request_id = '-'
        return True


logging.basicConfig(
    level=logging.INFO,
    format=LOG_FORMAT,
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(RequestIdFilter())
logger = logging.getLogger(__name__)


def apply_log_level(level: str) -> None:
    """Set the root logger level from a name such as "DEBUG" or "warning"."""
    logging.getLogger().setLevel(getattr(logging, level.upper(), logging.INFO))


# API metadata
API_TITLE = "AUTHTOTP API"
API_DESCRIPTION = """
**TOTP second factors and recovery codes**

- **Enroll** - `POST /totp/enroll` returns secret, QR code and recovery codes
- **Verify** - `POST /totp/verify` confirms enrollment with the first code
- **Validate** - `POST /totp/validate` checks a code at login
- **Recover** - `POST /totp/recover` consumes a one-time recovery code

## Rate Limits

Every endpoint is limited per user identity (token bucket, default
3 attempts, one more every 30 seconds).
"""


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Runs on startup and shutdown.
    """
    logger.info(f"Starting AUTHTOTP API v{__version__}")

    if getattr(app.state, "service", None) is None:
        if getattr(app.state, "settings", None) is None:
            app.state.settings = load_settings()
        app.state.service = build_service(app.state.settings)

    if getattr(app.state, "settings", None) is not None:
        apply_log_level(app.state.settings.log_level)

    yield

    logger.info("Shutting down AUTHTOTP API")


def create_app(
    service: Optional[TwoFactorService] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        service: Pre-built two-factor service. Built from settings on
            startup (or first request) when omitted.
        settings: Settings used to build the service. Loaded from the
            environment when omitted.

    Returns:
        Configured FastAPI instance.
    """
    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.service = service
    app.state.settings = settings

    # Request tracking and security headers middleware
    @app.middleware("http")
    async def add_request_tracking_and_security(request: Request, call_next):
        # Generate or extract request ID for tracing
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request.state.request_id = request_id

        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"[{request_id}] Request failed: {e}", exc_info=True)
            raise

        process_time = (time.time() - start_time) * 1000

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time-Ms"] = f"{process_time:.2f}"

        # Skip health checks to reduce noise
        if not request.url.path.startswith("/health"):
            logger.info(
                f"[{request_id}] {request.method} {request.url.path} "
                f"-> {response.status_code} ({process_time:.1f}ms)"
            )

        # Security headers
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        return response

    # Exception handlers
    @app.exception_handler(TwoFactorError)
    async def two_factor_exception_handler(request: Request, exc: TwoFactorError):
        request_id = getattr(request.state, 'request_id', 'unknown')

        if exc.internal:
            # Corruption or tampering: log details, never echo them
            logger.error(f"[{request_id}] Internal two-factor error ({exc.code}): {exc}")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=ErrorResponse(
                    error="Internal Server Error",
                    detail=f"request_id={request_id}",
                    code="INTERNAL_ERROR",
                ).model_dump(),
            )

        headers = {}
        if isinstance(exc, RateLimited) and exc.retry_after:
            headers["Retry-After"] = str(math.ceil(exc.retry_after))

        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=HTTPStatus(exc.status_code).phrase,
                detail=str(exc),
                code=exc.code,
            ).model_dump(),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = []
        for error in exc.errors():
            loc = " -> ".join(str(part) for part in error["loc"])
            errors.append(f"{loc}: {error['msg']}")

        return JSONResponse(
            status_code=422,
            content=ErrorResponse(
                error="Validation Error",
                detail="; ".join(errors),
                code="VALIDATION_ERROR",
            ).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        request_id = getattr(request.state, 'request_id', 'unknown')
        logger.error(f"[{request_id}] Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal Server Error",
                "request_id": request_id,
                "detail": str(exc) if os.getenv("APP_ENV") == "development" else None,
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(totp_router)

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "name": API_TITLE,
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = load_settings()
    uvicorn.run(
        create_app(settings=settings),
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
