"""
StoreOps Customer Analytics API

FastAPI application serving the operations dashboard:
1. Customer analytics (segments, RFM, cohorts, purchase frequency,
   product affinity, order timing)
2. Batch operations (RFM calculation, segment updates, zero-order correction)
3. Health checks and optional Prometheus metrics

Version: 1.0.0
"""

import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from storeops import __version__
from storeops.api.routers import analytics_router, health_router
from storeops.core.config import get_settings
from storeops.core.database import close_db, init_db
from storeops.core.exceptions import StoreOpsError
from storeops.middleware.error_handling import (
    APIError,
    api_error_handler,
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from storeops.middleware.logging_config import configure_logging, correlation_id_middleware, get_logger
from storeops.middleware.metrics import METRICS_ENABLED, metrics_middleware

settings = get_settings()

# Configure structured logging
configure_logging(log_level=settings.log_level, json_logs=settings.json_logs)

logger = get_logger(__name__)


# ==================== Application Lifespan ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info("application_starting", version=__version__, environment=settings.environment)

    if settings.environment == "production" and not settings.admin_key:
        logger.error("security_validation_failed", missing_secrets=["ADMIN_KEY"])
        raise RuntimeError("Missing required secret: ADMIN_KEY")

    await init_db()
    logger.info("application_started")

    yield

    await close_db()
    logger.info("application_stopped")


app = FastAPI(
    title="StoreOps Customer Analytics API",
    description="Customer segmentation, RFM, cohort and basket analytics for the operations dashboard.",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {
            "name": "analytics",
            "description": "Customer analytics and batch segmentation operations"
        },
        {
            "name": "health",
            "description": "Health check and system status endpoints"
        },
    ]
)

# ==================== Exception Handlers ====================

app.add_exception_handler(APIError, api_error_handler)
app.add_exception_handler(StoreOpsError, api_error_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# ==================== Middleware ====================

ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:3000,http://localhost:5173"
).split(",")

# Correlation ID middleware (must be FIRST for proper logging context)
app.middleware("http")(correlation_id_middleware)

if METRICS_ENABLED:
    app.middleware("http")(metrics_middleware)
    logger.info("prometheus_middleware_enabled")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-API-Key", "X-Correlation-ID", "Accept", "Origin"],
    expose_headers=["Content-Type", "X-Correlation-ID"],
)

# ==================== Routers ====================

app.include_router(health_router)
app.include_router(analytics_router)


@app.get("/")
async def root():
    """Root endpoint with service information."""
    return {
        "service": "StoreOps Customer Analytics API",
        "version": __version__,
        "status": "operational",
        "endpoints": {
            "health": "/health",
            "customer_analytics": "/api/analytics/customers",
            "docs": "/docs"
        }
    }


if __name__ == "__main__":
    uvicorn.run(
        "storeops.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        log_level=settings.log_level.lower(),
    )
