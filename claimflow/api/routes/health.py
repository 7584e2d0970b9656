"""
Health Check Routes
Service health monitoring endpoints
Source: https://microservices.io/patterns/observability/health-check-api.html
Verified: 2026-10-19
"""

from typing import Any

from fastapi import APIRouter

from claimflow.core.config import get_claims_settings
from claimflow.db.connection import check_db_connection
from claimflow.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])

SERVICE_NAME = "claimflow-api"


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """
    Basic health check endpoint.

    Evidence: Health check pattern for load balancers and monitoring
    Source: https://docs.docker.com/engine/reference/builder/#healthcheck
    Verified: 2026-10-19
    """
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
    }


@router.get("/health/detailed")
async def detailed_health_check() -> dict[str, Any]:
    """
    Detailed health check with dependency status.

    The clearinghouse is reported by mode only; it is not called here.
    """
    db_healthy = await check_db_connection()
    claims_settings = get_claims_settings()

    overall_status = "healthy" if db_healthy else "unhealthy"
    if not db_healthy:
        logger.warning("Detailed health check: database unreachable")

    return {
        "status": overall_status,
        "service": SERVICE_NAME,
        "checks": {
            "database": "healthy" if db_healthy else "unhealthy",
            "clearinghouse": claims_settings.INTEGRATION_MODE.value,
        },
    }
