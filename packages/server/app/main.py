"""
Teamspace API Server

Entry point for the FastAPI application.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.api import router as api_router
from app.core import dispatch
from app.core.config import get_settings
from app.core.database import engine
from app.core.errors import DATABASE_UNAVAILABLE, APIError, register_error_handlers
from app.core.logging import configure_logging
from app.core.middleware import RequestContextMiddleware, SecurityHeadersMiddleware

settings = get_settings()
log = structlog.get_logger()

SHUTDOWN_DRAIN_SECONDS = 10.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("Teamspace starting", email_backend=settings.email_backend)
    yield
    log.info("Teamspace shutting down", pending_tasks=dispatch.pending_count())
    await dispatch.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(json_format=settings.log_json, log_level=settings.log_level)

    app = FastAPI(
        title="Teamspace",
        description="Organizations, memberships and invitations for multi-tenant apps.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Middleware (last added is outermost)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )
    app.add_middleware(RequestContextMiddleware)

    register_error_handlers(app)
    app.include_router(api_router)

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: the database answers a trivial query."""
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            log.warning("readiness.database_unavailable", error=str(exc))
            raise APIError(DATABASE_UNAVAILABLE) from exc
        return {"status": "ready"}

    return app


app = create_app()
