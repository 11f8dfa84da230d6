"""
Customer Analytics Assembler

Combines stored customer metrics, the latest RFM snapshot and the four
order-based analyzers into the single `CustomerAnalyticsData` document the
dashboard renders.
"""

from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from storeops.analytics.cohort_analyzer import analyze_cohorts
from storeops.analytics.order_timing import analyze_order_timing
from storeops.analytics.product_affinity import CategoryFunction, analyze_product_affinity, first_word_category
from storeops.analytics.purchase_frequency import analyze_purchase_frequency
from storeops.analytics.records import (
    Acquisition,
    Customer,
    RFMScore,
    StoreDataset,
    orders_in_range,
    round_half_up,
)
from storeops.analytics.schemas import (
    AcquisitionSourceShare,
    CustomerAnalyticsData,
    CustomerSummary,
    DistributionEntry,
    RFMData,
    SegmentShare,
)

DEFAULT_COLOR = "#64748b"  # slate

# Segments always listed first, in this order; others follow as encountered
CORE_SEGMENTS = ["new", "active", "at-risk", "lost", "loyal"]

SEGMENT_COLORS = {
    "new": "#4f46e5",
    "active": "#10b981",
    "at-risk": "#f59e0b",
    "lost": "#ef4444",
    "loyal": "#8b5cf6",
    "vip": "#eab308",
    "high-value": "#06b6d4",
    "one-time": "#fb7185",
    "occasional": "#f97316",
}

RFM_SEGMENT_COLORS = {
    "Champions": "#10b981",
    "Loyal Customers": "#8b5cf6",
    "Potential Loyalists": "#3b82f6",
    "At Risk": "#f59e0b",
    "Cant Lose Them": "#ef4444",
    "New Customers": "#4f46e5",
    "Promising": "#06b6d4",
    "Needs Attention": "#f97316",
    "About To Sleep": "#fb7185",
    "Hibernating": "#64748b",
}

SCORE_COLORS = {
    1: "#ef4444",
    2: "#f59e0b",
    3: "#3b82f6",
    4: "#10b981",
    5: "#8b5cf6",
}

TOP_CUSTOMERS = 10
LIFESPAN_MONTHS = 12


def summarize(customer: Customer) -> CustomerSummary:
    return CustomerSummary(
        id=customer.id,
        email=customer.email,
        first_name=customer.first_name,
        last_name=customer.last_name,
        total_spent=customer.total_spent,
        order_count=customer.order_count,
        average_order_value=customer.average_order_value,
        customer_segment=customer.customer_segment,
        last_order_date=customer.last_order_date,
    )


# ==================== Segment Metrics ====================

def _segment_counts(customers: Sequence[Customer]) -> Dict[str, int]:
    counts = {segment: 0 for segment in CORE_SEGMENTS}
    for customer in customers:
        if customer.customer_segment:
            counts[customer.customer_segment] = counts.get(customer.customer_segment, 0) + 1
    return counts


def segment_shares(customers: Sequence[Customer]) -> List[SegmentShare]:
    total = len(customers)
    return [
        SegmentShare(
            name=name,
            count=count,
            percentage=round_half_up(count / total * 100),
            color=SEGMENT_COLORS.get(name, DEFAULT_COLOR),
        )
        for name, count in _segment_counts(customers).items()
        if count > 0
    ]


def customers_by_segment(customers: Sequence[Customer]) -> Dict[str, List[CustomerSummary]]:
    grouped: Dict[str, List[Customer]] = {segment: [] for segment in CORE_SEGMENTS}
    for customer in customers:
        if customer.customer_segment:
            grouped.setdefault(customer.customer_segment, []).append(customer)

    return {
        segment: [summarize(c) for c in sorted(members, key=lambda c: c.total_spent, reverse=True)]
        for segment, members in grouped.items()
    }


# ==================== RFM Distributions ====================

def _score_distribution(scores: Sequence[int]) -> List[DistributionEntry]:
    counts = Counter(scores)
    return [
        DistributionEntry(label=f"Score {score}", count=counts.get(score, 0), color=SCORE_COLORS[score])
        for score in range(1, 6)
    ]


def rfm_data(snapshot: Sequence[RFMScore]) -> RFMData:
    """Segment and per-axis score distributions of one RFM snapshot."""
    if not snapshot:
        return RFMData()

    segment_counts = Counter(row.rfm_segment for row in snapshot)
    return RFMData(
        rfm_distribution=[
            DistributionEntry(
                label=segment,
                count=count,
                percentage=round_half_up(count / len(snapshot) * 100),
                color=RFM_SEGMENT_COLORS.get(segment, DEFAULT_COLOR),
            )
            for segment, count in segment_counts.items()
        ],
        recency_distribution=_score_distribution([row.recency_score for row in snapshot]),
        frequency_distribution=_score_distribution([row.frequency_score for row in snapshot]),
        monetary_distribution=_score_distribution([row.monetary_score for row in snapshot]),
    )


# ==================== Value & Acquisition ====================

def acquisition_sources(acquisitions: Sequence[Acquisition]) -> List[AcquisitionSourceShare]:
    if not acquisitions:
        return []

    counts = Counter(row.source for row in acquisitions if row.source)
    return [
        AcquisitionSourceShare(
            source=source,
            count=count,
            percentage=round_half_up(count / len(acquisitions) * 100),
        )
        for source, count in counts.most_common()
    ]


def build_customer_analytics(
    dataset: StoreDataset,
    rfm_snapshot: Sequence[RFMScore],
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    category_of: CategoryFunction = first_word_category,
) -> CustomerAnalyticsData:
    """
    Assemble the dashboard analytics document.

    Args:
        dataset: Full store history; cohorts always use all of it.
        rfm_snapshot: Rows of the latest RFM calculation.
        start_date: Optional inclusive start of the reporting window.
        end_date: Optional end of the reporting window (whole day included).
        category_of: Product -> category for the category preference view.

    Returns:
        CustomerAnalyticsData. With a window, customer metrics cover customers
        with at least one order in it and order analyzers see only those orders.
    """
    orders = orders_in_range(dataset.orders, start_date, end_date)

    if start_date is None and end_date is None:
        customers = list(dataset.customers)
    else:
        active_ids = {order.customer_id for order in orders if order.customer_id is not None}
        customers = [customer for customer in dataset.customers if customer.id in active_ids]

    if not customers:
        return CustomerAnalyticsData(customers_by_segment={segment: [] for segment in CORE_SEGMENTS})

    in_scope = {customer.id for customer in customers}
    snapshot = [row for row in rfm_snapshot if row.customer_id in in_scope]

    counts = _segment_counts(customers)
    total_orders = sum(customer.order_count for customer in customers)
    total_spent = sum(customer.total_spent for customer in customers)
    average_order_value = total_spent / total_orders if total_orders else 0.0
    lifetime_value = average_order_value * (total_orders / len(customers)) * LIFESPAN_MONTHS

    return CustomerAnalyticsData(
        total_customers=len(customers),
        new_customers=counts["new"],
        active_customers=counts["active"],
        at_risk_customers=counts["at-risk"],
        lost_customers=counts["lost"],
        customer_segments=segment_shares(customers),
        customers_by_segment=customers_by_segment(customers),
        rfm_data=rfm_data(snapshot),
        average_order_value=round(average_order_value, 2),
        customer_lifetime_value=round(lifetime_value, 2),
        top_spending_customers=[
            summarize(c) for c in sorted(customers, key=lambda c: c.total_spent, reverse=True)[:TOP_CUSTOMERS]
        ],
        most_frequent_customers=[
            summarize(c) for c in sorted(customers, key=lambda c: c.order_count, reverse=True)[:TOP_CUSTOMERS]
        ],
        acquisition_sources=acquisition_sources(dataset.acquisitions),
        cohort_analysis=analyze_cohorts(dataset.customers, dataset.orders),
        purchase_frequency=analyze_purchase_frequency(customers, orders),
        product_affinity=analyze_product_affinity(orders, dataset.products, customers, category_of),
        order_timing=analyze_order_timing(orders),
    )
