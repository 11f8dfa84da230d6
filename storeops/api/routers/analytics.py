"""
Customer Analytics Endpoints Router

Provides:
- Dashboard customer analytics (segments, RFM, cohorts, frequency, affinity, timing)
- RFM snapshot calculation
- Lifecycle segment update and zero-order correction
- Per-customer order drill-down

All endpoints require API key authentication.
"""

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from storeops.analytics.engine import CustomerAnalyticsEngine
from storeops.analytics.schemas import (
    CustomerAnalyticsData,
    LineItemSummary,
    OrderSummary,
    RFMCalculationResult,
    SegmentUpdateSummary,
    ZeroOrderFixResult,
)
from storeops.api.dependencies import get_analytics_engine, require_api_key
from storeops.core.database import get_db
from storeops.loaders.store_loader import get_customer_orders
from storeops.middleware.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/analytics",
    tags=["analytics"],
    dependencies=[Depends(require_api_key)],
    responses={404: {"description": "Not found"}},
)


def _as_datetime(value: Optional[date]) -> Optional[datetime]:
    return datetime(value.year, value.month, value.day) if value is not None else None


# ==================== Dashboard ====================

@router.get("/customers", response_model=CustomerAnalyticsData)
async def get_customer_analytics(
    start_date: Optional[date] = Query(None, description="First day of the reporting window (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="Last day of the reporting window, inclusive"),
    engine: CustomerAnalyticsEngine = Depends(get_analytics_engine),
):
    """
    Customer analytics for the dashboard.

    Uses the stored segments and the latest RFM snapshot; call the RFM and
    segment endpoints first to refresh them.
    """
    logger.info("customer_analytics_requested", start_date=str(start_date), end_date=str(end_date))
    return await engine.get_customer_analytics(_as_datetime(start_date), _as_datetime(end_date))


@router.get("/customers/{customer_id}/orders", response_model=List[OrderSummary])
async def get_orders_for_customer(customer_id: int, db: AsyncSession = Depends(get_db)):
    """One customer's orders, newest first, with normalised line items."""
    orders = await get_customer_orders(db, customer_id)
    return [
        OrderSummary(
            id=order.id,
            customer_id=order.customer_id,
            date_created=order.date_created,
            total=order.total,
            line_items=[
                LineItemSummary(product_id=item.product_id, quantity=item.quantity, total=item.total)
                for item in order.line_items
            ],
        )
        for order in orders
    ]


# ==================== Batch Operations ====================

@router.post("/rfm/calculate", response_model=RFMCalculationResult)
async def calculate_rfm(engine: CustomerAnalyticsEngine = Depends(get_analytics_engine)):
    """Score every customer and append a new RFM snapshot."""
    result = await engine.calculate_rfm_scores()
    return RFMCalculationResult(
        customers_scored=result.customers_scored,
        rows_written=result.rows_written,
        failed_batches=result.failed_batches,
        calculation_date=result.calculation_date,
    )


@router.post("/segments/update", response_model=SegmentUpdateSummary)
async def update_segments(engine: CustomerAnalyticsEngine = Depends(get_analytics_engine)):
    """Re-classify all customers from the latest RFM snapshot."""
    result = await engine.update_customer_segments()
    return SegmentUpdateSummary(updated=result.updated, unchanged=result.unchanged, failed=result.failed)


@router.post("/segments/fix-zero-order", response_model=ZeroOrderFixResult)
async def fix_zero_order_segments(engine: CustomerAnalyticsEngine = Depends(get_analytics_engine)):
    """Correct segments of customers who never placed an order."""
    return ZeroOrderFixResult(updated=await engine.fix_zero_order_customers())
