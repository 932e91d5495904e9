"""
Bluhatch FastAPI Application

Main entry point for the Bluhatch evidence service: contractors record
photographic and document evidence against jobs, each artifact is hashed,
stored and externally timestamped, clients sign off on items, and a
dispute protection report summarizes the lot.

Example usage:
    # Start the server
    uvicorn app:app --host 0.0.0.0 --port 8000 --reload

    # Health check
    curl http://localhost:8000/health
"""

import os
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.httpsredirect import HTTPSRedirectMiddleware

from api.routes.approvals import router as approvals_router
from api.routes.evidence import router as evidence_router
from api.routes.jobs import router as jobs_router
from api.routes.reports import router as reports_router
from core import config
from core.db import close_db, init_db, ping_db
from core.errors import register_error_handlers
from core.logging import RequestLoggingMiddleware, get_logger, setup_logging
from middleware.rate_limit import limiter, rate_limit_exceeded_handler

VERSION = "0.1.0"

# Configure logging
setup_logging(level=config.LOG_LEVEL, format_type=config.LOG_FORMAT)
logger = get_logger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers to all HTTP responses.

    Example:
        app.add_middleware(SecurityHeadersMiddleware)
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        # Prevent MIME type sniffing attacks
        response.headers["X-Content-Type-Options"] = "nosniff"

        # Clickjacking protection
        response.headers["X-Frame-Options"] = "SAMEORIGIN"

        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # Reports carry their own inline styles and nothing else
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "img-src 'self' data: https:; "
            "style-src 'self' 'unsafe-inline';"
        )

        if config.is_production():
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    config.BLOB_STORAGE_DIR.mkdir(parents=True, exist_ok=True)
    logger.info(
        "Bluhatch started",
        extra={"environment": config.ENVIRONMENT, "timestamp_backend": config.TIMESTAMP_BACKEND},
    )
    yield
    await close_db()
    logger.info("Bluhatch stopped")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Returns:
        FastAPI: Configured FastAPI application instance

    Raises:
        RuntimeError: If the environment is insecure for production

    Example:
        >>> app = create_app()
        >>> # App is ready to use with uvicorn
    """
    tags_metadata = [
        {"name": "jobs", "description": "Jobs, job-scoped evidence and report generation"},
        {"name": "evidence", "description": "Evidence upload, lookup and timestamp verification"},
        {"name": "approvals", "description": "Client sign-off on evidence items"},
        {"name": "reports", "description": "Dispute protection reports"},
        {"name": "health", "description": "System health and status endpoints"},
    ]

    # Fail fast on insecure configuration
    config.validate_environment()

    app = FastAPI(
        title="Bluhatch",
        description="Tamper-evident job evidence and dispute protection reports",
        version=VERSION,
        docs_url="/api-docs",
        redoc_url="/redoc",
        openapi_tags=tags_metadata,
        lifespan=lifespan,
    )

    if config.is_production() and os.environ.get("FORCE_HTTPS", "true").lower() in ["1", "true", "yes"]:
        app.add_middleware(HTTPSRedirectMiddleware)

    app.add_middleware(SecurityHeadersMiddleware)

    # With credentials, browsers require explicit origins (not *)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o for o in config.CORS_ORIGINS if o != "*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        max_age=3600,
    )

    app.add_middleware(RequestLoggingMiddleware)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    register_error_handlers(app)

    app.include_router(jobs_router)
    app.include_router(evidence_router)
    app.include_router(approvals_router)
    app.include_router(reports_router)

    # Stored blobs resolve under BLOB_PUBLIC_PATH
    app.mount(
        config.BLOB_PUBLIC_PATH,
        StaticFiles(directory=str(config.BLOB_STORAGE_DIR), check_dir=False),
        name="evidence-files",
    )

    @app.get("/health", tags=["health"])
    async def health_check() -> JSONResponse:
        """
        Health check endpoint for monitoring and load balancer readiness.

        Returns:
            JSONResponse: 200 when the database answers, 503 otherwise
        """
        health_data: Dict[str, Any] = {
            "status": "healthy",
            "service": "bluhatch",
            "version": VERSION,
            "database": "connected",
        }
        try:
            await ping_db()
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            health_data.update(status="unhealthy", database="unavailable")
            return JSONResponse(content=health_data, status_code=503)
        return JSONResponse(content=health_data, status_code=200)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
        reload=not config.is_production(),
    )
