"""
Health Check Endpoints Router

Provides health check endpoints for monitoring and load balancers.
"""
from datetime import datetime

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from storeops.core.database import check_database_health
from storeops.middleware.logging_config import get_logger
from storeops.middleware.metrics import METRICS_ENABLED, metrics_endpoint

logger = get_logger(__name__)

# Router
router = APIRouter(
    tags=["health"],
    responses={404: {"description": "Not found"}},
)


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint.

    Returns 200 if service is running.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/health/ready")
async def readiness_check():
    """
    Readiness check.

    Returns 200 when the database answers, 503 otherwise.
    """
    database = await check_database_health()

    if database["health"] == "healthy":
        return {
            "status": "ready",
            "database": "healthy",
            "timestamp": datetime.utcnow().isoformat()
        }

    logger.warning("readiness_check_failed", error=database.get("health_error"))
    return JSONResponse(
        status_code=503,
        content={
            "status": "not_ready",
            "database": "unhealthy",
            "timestamp": datetime.utcnow().isoformat()
        },
    )


if METRICS_ENABLED:
    router.add_api_route("/metrics", metrics_endpoint, methods=["GET"], include_in_schema=False)
