"""
Prometheus Metrics for the StoreOps analytics API

OPTIONAL: Enable with environment variable ENABLE_PROMETHEUS_METRICS=true

Tracks:
- Request duration by endpoint
- Analytics pipeline stage durations
- RFM rows written and failed insert batches
- Segment updates and failed updates
"""

import os
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Request, Response
from fastapi.responses import Response as FastAPIResponse
import time
from typing import Callable
import logging

logger = logging.getLogger(__name__)

METRICS_ENABLED = os.getenv('ENABLE_PROMETHEUS_METRICS', 'false').lower() == 'true'

# ==================== Metrics Definitions ====================

http_requests_total = Counter(
    'storeops_http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code']
)

http_request_duration_seconds = Histogram(
    'storeops_http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

analytics_stage_duration_seconds = Histogram(
    'storeops_analytics_stage_duration_seconds',
    'Customer analytics pipeline stage duration in seconds',
    ['stage'],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0)
)

rfm_rows_written_total = Counter(
    'storeops_rfm_rows_written_total',
    'Total customer_rfm rows inserted'
)

rfm_batches_failed_total = Counter(
    'storeops_rfm_batches_failed_total',
    'Total customer_rfm insert batches that failed'
)

segment_updates_total = Counter(
    'storeops_segment_updates_total',
    'Total customer segment updates',
    ['status']  # status: success or error
)

customers_analyzed = Gauge(
    'storeops_customers_analyzed',
    'Customers included in the latest analytics run'
)


# ==================== Middleware ====================

async def metrics_middleware(request: Request, call_next: Callable) -> Response:
    """
    Middleware to track HTTP request metrics.

    Note: Only active if ENABLE_PROMETHEUS_METRICS=true
    """
    if not METRICS_ENABLED:
        return await call_next(request)

    if request.url.path == "/metrics":
        return await call_next(request)

    method = request.method
    endpoint = request.url.path
    start_time = time.time()

    try:
        response = await call_next(request)
        duration = time.time() - start_time
        http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)
        http_requests_total.labels(method=method, endpoint=endpoint, status_code=response.status_code).inc()
        return response

    except Exception as e:
        duration = time.time() - start_time
        http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)
        http_requests_total.labels(method=method, endpoint=endpoint, status_code=500).inc()
        logger.error(f"Request error: {e}", exc_info=True)
        raise


# ==================== Helper Functions ====================

def track_analytics_stage(stage: str, duration: float):
    """Track one pipeline stage. No-op if metrics disabled."""
    if not METRICS_ENABLED:
        return

    analytics_stage_duration_seconds.labels(stage=stage).observe(duration)


def track_rfm_persistence(rows_written: int, failed_batches: int):
    """Track RFM snapshot persistence. No-op if metrics disabled."""
    if not METRICS_ENABLED:
        return

    rfm_rows_written_total.inc(rows_written)
    if failed_batches:
        rfm_batches_failed_total.inc(failed_batches)


def track_segment_updates(updated: int, failed: int):
    """Track segment persistence. No-op if metrics disabled."""
    if not METRICS_ENABLED:
        return

    segment_updates_total.labels(status='success').inc(updated)
    if failed:
        segment_updates_total.labels(status='error').inc(failed)


def update_data_metrics(customers: int):
    """Update data load metrics. No-op if metrics disabled."""
    if not METRICS_ENABLED:
        return

    customers_analyzed.set(customers)


# ==================== Metrics Endpoint ====================

async def metrics_endpoint() -> FastAPIResponse:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus exposition format.
    """
    metrics_data = generate_latest()
    return FastAPIResponse(content=metrics_data, media_type=CONTENT_TYPE_LATEST)
