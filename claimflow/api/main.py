"""
FastAPI Main Application
Entry point for the claim lifecycle API server
Source: https://fastapi.tiangolo.com/
Verified: 2026-10-19
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from claimflow.api.config import settings
from claimflow.api.errors import register_exception_handlers
from claimflow.api.routes import claims, health
from claimflow.core.config import get_claims_settings
from claimflow.db.connection import close_db_connection
from claimflow.services.dependencies import close_claim_engine
from claimflow.utils.logging import get_logger, setup_logging

# Setup logging
setup_logging(
    level=settings.LOG_LEVEL,
    log_file=settings.LOG_FILE,
    json_logs=settings.is_production,
)

logger = get_logger(__name__)

API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore[no-untyped-def]  # noqa: ARG001
    """
    Application lifespan manager.

    Evidence: Lifespan events for startup/shutdown tasks
    Source: https://fastapi.tiangolo.com/advanced/events/
    Verified: 2026-10-19
    """
    # Startup
    logger.info(f"Starting application in {settings.ENVIRONMENT} mode")
    logger.info(f"Clearinghouse integration mode: {get_claims_settings().INTEGRATION_MODE.value}")

    yield

    # Shutdown
    logger.info("Shutting down application")
    await close_claim_engine()
    await close_db_connection()
    logger.info("Database connections closed")


app = FastAPI(
    title="Claim Lifecycle API",
    description="Healthcare claim creation, validation, submission, adjudication and aging",
    version=API_VERSION,
    docs_url="/docs" if not settings.is_production else None,  # Disable docs in production
    redoc_url="/redoc" if not settings.is_production else None,
    openapi_url="/openapi.json" if not settings.is_production else None,
    lifespan=lifespan,
)

# CORS middleware
# Source: https://fastapi.tiangolo.com/tutorial/cors/
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_CREDENTIALS,
    allow_methods=settings.CORS_METHODS,
    allow_headers=settings.CORS_HEADERS,
)

register_exception_handlers(app)

# Include routers
app.include_router(health.router)
app.include_router(claims.router)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint with API information."""
    return {
        "name": "Claim Lifecycle API",
        "version": API_VERSION,
        "environment": settings.ENVIRONMENT,
        "docs": "/docs" if not settings.is_production else "disabled",
    }
