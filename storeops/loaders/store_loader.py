"""
Load store data (customers, orders, products, acquisition rows) for analytics.

Every raw value is normalised here, once: amounts become floats, timestamps
become naive UTC datetimes and `line_items` (a JSON list, or a JSON-encoded
string from older syncs) becomes a tuple of `LineItem`. Malformed values are
replaced by safe defaults and logged; only database connectivity problems are
raised to the caller.
"""
import json
import logging
import math
from datetime import date, datetime
from typing import Any, List, Optional, Tuple

import pandas as pd
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from storeops.analytics.records import (
    Acquisition,
    Customer,
    LineItem,
    Order,
    Product,
    StoreDataset,
    orders_in_range,
)
from storeops.core.exceptions import DataSourceUnavailableError
from storeops.models import (
    CustomerAcquisitionRecord,
    CustomerRecord,
    OrderRecord,
    ProductRecord,
)

logger = logging.getLogger(__name__)

CONNECTION_ERRORS = (OperationalError, InterfaceError, DBAPIError)


# ==================== Value Normalisation ====================

def parse_amount(value: Any, field: str = "amount") -> float:
    """Parse a decimal string or number; anything unparsable becomes 0.0."""
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        logger.warning(f"Unparsable {field} {value!r}, using 0.0")
        return 0.0

    try:
        amount = float(value)
    except (TypeError, ValueError, OverflowError):
        logger.warning(f"Unparsable {field} {value!r}, using 0.0")
        return 0.0

    if math.isnan(amount) or math.isinf(amount):
        logger.warning(f"Non-finite {field} {value!r}, using 0.0")
        return 0.0
    return amount


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a datetime, date or ISO string into a naive UTC datetime.

    Naive inputs are taken to be UTC already. Returns None for missing or
    unparsable values.
    """
    if value is None or value == "":
        return None
    if not isinstance(value, (str, datetime, date)):
        logger.warning(f"Unparsable timestamp {value!r}")
        return None

    timestamp = pd.to_datetime(value, errors="coerce", utc=True)
    if pd.isna(timestamp):
        logger.warning(f"Unparsable timestamp {value!r}")
        return None
    return timestamp.tz_convert(None).to_pydatetime()


def _parse_product_id(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def normalize_line_items(raw: Any) -> Tuple[LineItem, ...]:
    """
    Normalise an order's `line_items` payload.

    Accepts a list of dicts or a JSON string encoding one. Bad JSON or a
    non-list payload yields an empty tuple; non-dict entries are skipped.
    Never raises.
    """
    if raw is None:
        return ()

    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (TypeError, ValueError, RecursionError):
            logger.warning("Failed to parse line_items JSON, treating as empty")
            return ()

    if not isinstance(raw, list):
        logger.warning(f"line_items is {type(raw).__name__}, expected list; treating as empty")
        return ()

    items = []
    for entry in raw:
        if not isinstance(entry, dict):
            logger.warning(f"Skipping line item of type {type(entry).__name__}")
            continue

        quantity = entry.get("quantity", 1)
        try:
            quantity = int(quantity)
        except (TypeError, ValueError, OverflowError):
            quantity = 1

        items.append(LineItem(
            product_id=_parse_product_id(entry.get("product_id")),
            quantity=quantity,
            total=parse_amount(entry.get("total"), field="line item total"),
        ))

    return tuple(items)


# ==================== Row Conversion ====================

def customer_from_record(row: CustomerRecord) -> Customer:
    return Customer(
        id=row.id,
        email=row.email,
        first_name=row.first_name,
        last_name=row.last_name,
        date_created=parse_datetime(row.date_created),
        first_order_date=parse_datetime(row.first_order_date),
        last_order_date=parse_datetime(row.last_order_date),
        total_spent=parse_amount(row.total_spent, field="total_spent"),
        order_count=row.order_count or 0,
        average_order_value=parse_amount(row.average_order_value, field="average_order_value"),
        customer_segment=row.customer_segment,
        notes=row.notes,
    )


def order_from_record(row: OrderRecord) -> Order:
    return Order(
        id=row.id,
        customer_id=row.customer_id,
        date_created=parse_datetime(row.date_created),
        total=parse_amount(row.total, field="order total"),
        line_items=normalize_line_items(row.line_items),
    )


# ==================== Queries ====================

async def load_customers(session: AsyncSession, order_count: Optional[int] = None) -> List[Customer]:
    """Load customers, optionally only those with an exact `order_count`."""
    query = select(CustomerRecord).order_by(CustomerRecord.id)
    if order_count is not None:
        query = query.where(CustomerRecord.order_count == order_count)

    try:
        result = await session.execute(query)
    except CONNECTION_ERRORS as e:
        raise DataSourceUnavailableError(
            "Could not load customers",
            {"table": "customers", "error": str(e)},
        ) from e

    return [customer_from_record(row) for row in result.scalars().all()]


async def load_store_dataset(
    session: AsyncSession,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> StoreDataset:
    """
    Load everything one analytics run needs.

    Args:
        session: Open database session.
        start_date: Optional inclusive lower bound on order date.
        end_date: Optional upper bound on order date; the whole day is included.

    Returns:
        StoreDataset with orders ascending by creation date.

    Raises:
        DataSourceUnavailableError: The database could not be queried.
    """
    logger.info("Loading store dataset...")

    try:
        customer_rows = (await session.execute(
            select(CustomerRecord).order_by(CustomerRecord.id)
        )).scalars().all()
        order_rows = (await session.execute(
            select(OrderRecord).order_by(OrderRecord.date_created, OrderRecord.id)
        )).scalars().all()
        product_rows = (await session.execute(
            select(ProductRecord).order_by(ProductRecord.id)
        )).scalars().all()
        acquisition_rows = (await session.execute(
            select(CustomerAcquisitionRecord).order_by(CustomerAcquisitionRecord.id)
        )).scalars().all()
    except CONNECTION_ERRORS as e:
        logger.error(f"Store data source unavailable: {e}")
        raise DataSourceUnavailableError(
            "Could not load store data",
            {"error": str(e)},
        ) from e

    orders = [order_from_record(row) for row in order_rows]
    # Undated orders sort first in SQLite and last in PostgreSQL
    orders.sort(key=lambda order: (order.date_created is not None, order.date_created or datetime.min))

    dataset = StoreDataset(
        customers=[customer_from_record(row) for row in customer_rows],
        orders=orders_in_range(orders, start_date, end_date),
        products=[Product(id=row.id, name=row.name) for row in product_rows],
        acquisitions=[
            Acquisition(customer_id=row.customer_id, source=row.source)
            for row in acquisition_rows
        ],
    )

    logger.info(
        f"Loaded {len(dataset.customers)} customers, {len(dataset.orders)} orders, "
        f"{len(dataset.products)} products"
    )
    return dataset


async def get_customer_orders(session: AsyncSession, customer_id: int) -> List[Order]:
    """One customer's orders, newest first."""
    try:
        result = await session.execute(
            select(OrderRecord)
            .where(OrderRecord.customer_id == customer_id)
            .order_by(OrderRecord.date_created.desc(), OrderRecord.id.desc())
        )
    except CONNECTION_ERRORS as e:
        raise DataSourceUnavailableError(
            "Could not load customer orders",
            {"customer_id": customer_id, "error": str(e)},
        ) from e

    return [order_from_record(row) for row in result.scalars().all()]
