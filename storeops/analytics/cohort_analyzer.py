"""
Cohort Retention Analysis

Customers are grouped by the calendar month of their first order. For each
cohort we follow the 12 months after acquisition and report, per month, how
many cohort members placed an order and what they spent.
"""

from collections import defaultdict
from typing import Dict, List, Sequence

import pandas as pd

from storeops.analytics.records import Customer, Order
from storeops.analytics.schemas import CohortData, RetentionPoint

RETENTION_MONTHS = 12
MAX_COHORTS = 12


def _month(value) -> pd.Period:
    return pd.Period(value, freq="M")


def _monthly_spend(orders: Sequence[Order]) -> Dict[tuple, float]:
    """(customer_id, month ordinal) -> sum of order totals."""
    rows = [
        (order.customer_id, _month(order.date_created).ordinal, order.total)
        for order in orders
        if order.customer_id is not None and order.date_created is not None
    ]
    if not rows:
        return {}

    frame = pd.DataFrame(rows, columns=["customer_id", "month", "total"])
    sums = frame.groupby(["customer_id", "month"])["total"].sum()
    return {(int(cid), int(month)): float(total) for (cid, month), total in sums.items()}


def analyze_cohorts(customers: Sequence[Customer], orders: Sequence[Order]) -> List[CohortData]:
    """
    Build retention series for the most recent acquisition cohorts.

    Args:
        customers: Customers; those without a first order date are skipped.
        orders: Orders used to detect activity (normally the full history).

    Returns:
        Up to 12 cohorts in chronological order. Month 0 always reports 100%
        with every member counted; its value is the acquisition-month spend.
    """
    members: Dict[pd.Period, List[int]] = defaultdict(list)
    for customer in customers:
        if customer.first_order_date is not None:
            members[_month(customer.first_order_date)].append(customer.id)

    spend = _monthly_spend(orders)
    cohorts = []

    for cohort_month in sorted(members):
        customer_ids = members[cohort_month]
        size = len(customer_ids)
        retention = []

        for offset in range(RETENTION_MONTHS + 1):
            target = cohort_month.ordinal + offset
            active = [cid for cid in customer_ids if (cid, target) in spend]
            value = sum(spend[(cid, target)] for cid in active)

            if offset == 0:
                rate, counted = 100.0, size
            else:
                rate, counted = len(active) / size * 100, len(active)

            retention.append(RetentionPoint(
                month=offset,
                rate=round(rate, 1),
                customers=counted,
                value=round(value, 2),
            ))

        total_value = sum(point.value for point in retention)
        cohorts.append(CohortData(
            month=cohort_month.strftime("%b %Y"),
            cohort_key=cohort_month.strftime("%Y-%m"),
            initial_customers=size,
            retention_rates=retention,
            total_value=round(total_value, 2),
            average_customer_value=round(total_value / size, 2),
        ))

    return cohorts[-MAX_COHORTS:]
