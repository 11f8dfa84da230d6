"""
API Dependencies

Shared dependencies for FastAPI endpoints: API key authentication and the
analytics engine.
"""
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader

from storeops.analytics.engine import CustomerAnalyticsEngine
from storeops.core.config import Settings, get_settings
from storeops.core.database import get_session_factory
from storeops.middleware.logging_config import get_logger

logger = get_logger(__name__)

# API Key header scheme
api_key_header_scheme = APIKeyHeader(name="X-API-Key", auto_error=False)


async def require_api_key(
    api_key: Optional[str] = Depends(api_key_header_scheme),
    settings: Settings = Depends(get_settings),
):
    """
    Dependency that requires valid API key authentication.

    Checks the X-API-Key header against the ADMIN_KEY setting. When no key is
    configured authentication is disabled (local development).

    Raises:
        HTTPException: 401 if missing, 403 if invalid
    """
    expected_key = settings.admin_key

    if not expected_key:
        logger.warning("no_api_key_configured",
                      message="ADMIN_KEY not set - authentication disabled")
        return None

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-Key header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if api_key != expected_key:
        logger.warning("invalid_api_key_attempted",
                      key_prefix=api_key[:4])
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    logger.debug("api_key_validated")
    return {"authenticated": True}


def get_analytics_engine(settings: Settings = Depends(get_settings)) -> CustomerAnalyticsEngine:
    """Engine bound to the process-wide session factory."""
    return CustomerAnalyticsEngine(get_session_factory(), settings)
