"""
Standardized Error Handling

Provides:
- API exception classes for the analytics endpoints
- Consistent error response format
- Correlation ID tracking in errors
- Translation of engine errors (StoreOpsError) into HTTP responses
"""

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

from storeops.core.exceptions import (
    StoreOpsError,
    DataSourceUnavailableError,
    InvalidDateRangeError,
)

logger = structlog.get_logger(__name__)


# ==================== Custom Exceptions ====================

class APIError(Exception):
    """Base class for API errors."""
    def __init__(
        self,
        message: str,
        error_code: str = None,
        status_code: int = 500,
        details: Dict[str, Any] = None
    ):
        self.message = message
        self.error_code = error_code or "INTERNAL_ERROR"
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(APIError):
    """Input validation error (400)."""
    def __init__(self, message: str, field: str = None, **kwargs):
        details = {"field": field} if field else {}
        details.update(kwargs)
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            status_code=400,
            details=details
        )


class ServiceUnavailableError(APIError):
    """Service temporarily unavailable (503)."""
    def __init__(self, message: str = "Service temporarily unavailable", retry_after: int = None, **kwargs):
        details = kwargs.copy()
        if retry_after:
            details["retry_after_seconds"] = retry_after

        super().__init__(
            message=message,
            error_code="SERVICE_UNAVAILABLE",
            status_code=503,
            details=details
        )


def api_error_from_engine_error(error: StoreOpsError) -> APIError:
    """Map an engine exception onto the API error taxonomy."""
    if isinstance(error, DataSourceUnavailableError):
        return ServiceUnavailableError(message=error.message, **error.details)
    if isinstance(error, InvalidDateRangeError):
        return ValidationError(message=error.message, **error.details)
    return APIError(message=error.message, details=error.details)


# ==================== Error Response Format ====================

def create_error_response(
    error: Exception,
    correlation_id: Optional[str] = None,
) -> tuple[Dict[str, Any], int]:
    """
    Create standardized error response.

    Format:
    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable message",
            "details": {...},
            "correlation_id": "uuid"
        },
        "timestamp": "2026-10-18T10:30:45Z"
    }
    """
    if isinstance(error, StoreOpsError):
        error = api_error_from_engine_error(error)

    if isinstance(error, APIError):
        error_code = error.error_code
        message = error.message
        details = error.details
        status_code = error.status_code
    elif isinstance(error, StarletteHTTPException):
        error_code = "HTTP_ERROR"
        message = error.detail
        details = {}
        status_code = error.status_code
    else:
        error_code = "INTERNAL_ERROR"
        message = "An unexpected error occurred. Please try again later."
        details = {"error_type": type(error).__name__}
        status_code = 500

    response = {
        "error": {
            "code": error_code,
            "message": message,
            "details": details
        },
        "timestamp": datetime.utcnow().isoformat() + "Z"
    }

    if correlation_id:
        response["error"]["correlation_id"] = correlation_id

    return response, status_code


# ==================== Exception Handlers ====================

async def api_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle API errors and engine errors."""
    correlation_id = getattr(request.state, "correlation_id", None)

    response_data, status_code = create_error_response(exc, correlation_id=correlation_id)

    logger.error(
        "api_error",
        error_code=response_data["error"]["code"],
        error_message=response_data["error"]["message"],
        status_code=status_code,
        path=request.url.path
    )

    return JSONResponse(status_code=status_code, content=response_data)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle standard HTTP exceptions."""
    correlation_id = getattr(request.state, "correlation_id", None)

    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path
    )

    response_data, status_code = create_error_response(exc, correlation_id=correlation_id)

    return JSONResponse(status_code=status_code, content=response_data)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors (422)."""
    correlation_id = getattr(request.state, "correlation_id", None)

    validation_errors = []
    for error in exc.errors():
        validation_errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    logger.warning(
        "validation_error",
        path=request.url.path,
        errors=validation_errors
    )

    response_data = {
        "error": {
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": {
                "validation_errors": validation_errors
            }
        },
        "timestamp": datetime.utcnow().isoformat() + "Z"
    }

    if correlation_id:
        response_data["error"]["correlation_id"] = correlation_id

    return JSONResponse(status_code=422, content=response_data)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions (500)."""
    correlation_id = getattr(request.state, "correlation_id", None)

    logger.error(
        "unexpected_error",
        error_type=type(exc).__name__,
        error_message=str(exc),
        path=request.url.path,
        exc_info=True
    )

    response_data, status_code = create_error_response(exc, correlation_id=correlation_id)
    if correlation_id:
        response_data["error"]["message"] += f" Reference: {correlation_id}"

    return JSONResponse(status_code=status_code, content=response_data)
