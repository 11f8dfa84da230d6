"""
Domain records consumed by the analytics engine.

The loader converts ORM rows into these plain dataclasses once, at the load
boundary, so analyzers never see raw storefront payloads.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

_ONE_DAY = timedelta(days=1)


def days_between(later: datetime, earlier: datetime) -> int:
    """Whole days from `earlier` to `later`, truncated toward zero."""
    return int((later - earlier) / _ONE_DAY)


def round_half_up(value: float) -> int:
    """Nearest integer with .5 rounded up (`round()` rounds half to even)."""
    return math.floor(value + 0.5)


@dataclass(frozen=True)
class LineItem:
    product_id: Optional[int]
    quantity: int = 1
    total: float = 0.0


@dataclass(frozen=True)
class Order:
    id: int
    customer_id: Optional[int]
    date_created: Optional[datetime]
    total: float
    line_items: Tuple[LineItem, ...] = ()

    @property
    def product_ids(self) -> List[int]:
        """Distinct product ids in line-item order."""
        seen: Dict[int, None] = {}
        for item in self.line_items:
            if item.product_id is not None:
                seen.setdefault(item.product_id, None)
        return list(seen)


@dataclass(frozen=True)
class Product:
    id: int
    name: Optional[str]


@dataclass(frozen=True)
class Acquisition:
    customer_id: int
    source: Optional[str]


@dataclass
class Customer:
    """
    Customer as seen by the engine.

    Only `customer_segment` and `notes` change during a run.
    """
    id: int
    date_created: Optional[datetime] = None
    first_order_date: Optional[datetime] = None
    last_order_date: Optional[datetime] = None
    total_spent: float = 0.0
    order_count: int = 0
    average_order_value: float = 0.0
    customer_segment: Optional[str] = None
    notes: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    def days_since_last_order(self, reference_date: datetime) -> Optional[int]:
        if self.last_order_date is None:
            return None
        return days_between(reference_date, self.last_order_date)

    def days_since_created(self, reference_date: datetime) -> Optional[int]:
        if self.date_created is None:
            return None
        return days_between(reference_date, self.date_created)


@dataclass(frozen=True)
class RFMScore:
    """One row of an RFM snapshot."""
    customer_id: int
    recency_score: int
    frequency_score: int
    monetary_score: int
    rfm_score: int
    rfm_segment: str
    calculation_date: datetime


def orders_in_range(orders: List[Order], start_date: Optional[datetime],
                    end_date: Optional[datetime]) -> List[Order]:
    """
    Orders dated in [start_date, end_date + 1 day).

    The whole end day is included. Undated orders are dropped once either
    bound is set.
    """
    if start_date is None and end_date is None:
        return list(orders)

    end_exclusive = end_date + _ONE_DAY if end_date is not None else None
    return [
        order for order in orders
        if order.date_created is not None
        and (start_date is None or order.date_created >= start_date)
        and (end_exclusive is None or order.date_created < end_exclusive)
    ]


@dataclass
class StoreDataset:
    """Everything one analytics run reads."""
    customers: List[Customer] = field(default_factory=list)
    orders: List[Order] = field(default_factory=list)
    products: List[Product] = field(default_factory=list)
    acquisitions: List[Acquisition] = field(default_factory=list)

    def customers_by_id(self) -> Dict[int, Customer]:
        return {customer.id: customer for customer in self.customers}
