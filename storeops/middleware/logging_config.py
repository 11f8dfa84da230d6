"""
Structured Logging Configuration

All StoreOps output goes through structlog so a dashboard request, a batch
refresh and a command line run can be followed by their bound context:

- HTTP requests carry a correlation id (taken from X-Correlation-ID /
  X-Request-ID, or generated) plus method, path and any reporting window
- Command line runs bind their own context via log_with_context
- Analytics milestones are logged as `analytics_event` rows
- Store queries are timed; slow ones are logged as warnings
"""

import logging
import time
import uuid

import structlog
from fastapi import Request

SLOW_QUERY_SECONDS = 1.0

WINDOW_PARAMS = ("start_date", "end_date")


# ==================== Configuration ====================

def _shared_processors(timestamp_format: str, utc: bool) -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt=timestamp_format, utc=utc),
    ]


def configure_logging(log_level: str = "INFO", json_logs: bool = True):
    """
    Configure structlog and the standard library root logger.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: JSON lines when True, coloured console output otherwise
    """
    level = getattr(logging, log_level.upper())

    if json_logs:
        processors = _shared_processors("iso", utc=True) + [structlog.processors.JSONRenderer()]
    else:
        processors = _shared_processors("%Y-%m-%d %H:%M:%S", utc=False) + [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # SQLAlchemy and uvicorn log through the stdlib
    logging.basicConfig(format="%(message)s", level=level, force=True)


# ==================== Correlation ID Middleware ====================

async def correlation_id_middleware(request: Request, call_next):
    """
    Bind a correlation id and the request's reporting window for its lifetime.

    The id is echoed back in the X-Correlation-ID response header and kept on
    request.state for the error handlers.
    """
    correlation_id = (
        request.headers.get("X-Correlation-ID")
        or request.headers.get("X-Request-ID")
        or str(uuid.uuid4())
    )
    window = {name: request.query_params[name] for name in WINDOW_PARAMS if name in request.query_params}

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        correlation_id=correlation_id,
        method=request.method,
        path=request.url.path,
        **window,
    )
    request.state.correlation_id = correlation_id

    logger = structlog.get_logger()
    start_time = time.time()
    logger.info("request_started")

    try:
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_seconds=round(time.time() - start_time, 3),
        )
        return response
    except Exception as e:
        logger.error(
            "request_failed",
            error=str(e),
            error_type=type(e).__name__,
            duration_seconds=round(time.time() - start_time, 3),
            exc_info=True,
        )
        raise
    finally:
        structlog.contextvars.clear_contextvars()


# ==================== Helper Functions ====================

def get_logger(name: str = None):
    """
    Usage:
        logger = get_logger(__name__)
        logger.info("rfm_batch_inserted", batch_index=0, rows=100)
    """
    return structlog.get_logger(name)


def log_with_context(**context):
    """Bind context that every later log line in this request or run carries."""
    structlog.contextvars.bind_contextvars(**context)


def log_database_query(query_type: str, duration: float, row_count: int = None, error: str = None):
    """
    Log a timed store query.

    Failures log at error level and queries taking SLOW_QUERY_SECONDS or more
    at warning level.

    Usage:
        log_database_query("rfm_latest_snapshot", duration=0.043, row_count=1200)
    """
    logger = structlog.get_logger()
    duration_seconds = round(duration, 3)

    if error:
        logger.error("database_query_failed", query_type=query_type, duration_seconds=duration_seconds, error=error)
    elif duration >= SLOW_QUERY_SECONDS:
        logger.warning("database_query_slow", query_type=query_type, duration_seconds=duration_seconds, row_count=row_count)
    else:
        logger.info("database_query_completed", query_type=query_type, duration_seconds=duration_seconds, row_count=row_count)


def log_business_event(event_type: str, **details):
    """
    Log an analytics milestone (RFM snapshot written, segments updated, ...).

    Usage:
        log_business_event("customer_segments_updated", updated=412, failed=0)
    """
    structlog.get_logger().info("analytics_event", event_type=event_type, **details)
