"""
Purchase Frequency Analysis

Looks at the gaps between a customer's consecutive orders to answer "how long
until they buy again?", overall and per lifecycle segment, and turns the
answer into a short list of suggested re-engagement campaign timings.
"""

from collections import defaultdict
from typing import Dict, List, Sequence

import numpy as np

from storeops.analytics.records import Customer, Order, days_between, round_half_up
from storeops.analytics.schemas import FrequencyBucket, PurchaseFrequencyData, SegmentFrequency

MIN_GAP_DAYS = 1
MAX_GAP_DAYS = 365
MAX_RECOMMENDATIONS = 5

# (low, high) inclusive, first match wins
GAP_BUCKETS = [
    (0, 7),
    (8, 14),
    (15, 30),
    (31, 60),
    (61, 90),
    (91, 180),
    (181, 365),
]

DEFAULT_CAMPAIGN_DAYS = [7, 14, 30]


def _bucket_label(low: int, high: int) -> str:
    return f"{low}-{high} days"


def _empty_result() -> PurchaseFrequencyData:
    return PurchaseFrequencyData(
        days_between_distribution=[
            FrequencyBucket(label=_bucket_label(low, high), count=0, percentage=0)
            for low, high in GAP_BUCKETS[:3]
        ],
        segment_frequency=[],
        average_days_between=0.0,
        median_days_between=0.0,
        recommended_campaign_days=list(DEFAULT_CAMPAIGN_DAYS),
    )


def customer_gaps(orders: Sequence[Order]) -> Dict[int, List[int]]:
    """customer id -> whole-day gaps between consecutive orders, within [1, 365]."""
    dates_by_customer = defaultdict(list)
    for order in orders:
        if order.customer_id is not None and order.date_created is not None:
            dates_by_customer[order.customer_id].append(order.date_created)

    gaps = {}
    for customer_id, dates in dates_by_customer.items():
        dates.sort()
        kept = [
            gap for gap in (days_between(later, earlier) for earlier, later in zip(dates, dates[1:]))
            if MIN_GAP_DAYS <= gap <= MAX_GAP_DAYS
        ]
        if kept:
            gaps[customer_id] = kept
    return gaps


def _distribution(all_gaps: List[int]) -> List[FrequencyBucket]:
    counts = [0] * len(GAP_BUCKETS)
    for gap in all_gaps:
        for index, (low, high) in enumerate(GAP_BUCKETS):
            if low <= gap <= high:
                counts[index] += 1
                break

    total = len(all_gaps)
    return [
        FrequencyBucket(
            label=_bucket_label(low, high),
            count=count,
            percentage=round_half_up(count / total * 100),
        )
        for (low, high), count in zip(GAP_BUCKETS, counts)
    ]


def _segment_frequency(customers: Sequence[Customer], gaps: Dict[int, List[int]]) -> List[SegmentFrequency]:
    averages_by_segment: Dict[str, List[float]] = defaultdict(list)
    for customer in customers:
        if customer.customer_segment and customer.id in gaps:
            averages_by_segment[customer.customer_segment].append(float(np.mean(gaps[customer.id])))

    rows = []
    for segment, averages in averages_by_segment.items():
        average = float(np.mean(averages))
        rows.append(SegmentFrequency(
            segment=segment,
            average_days=round(average, 1),
            next_purchase_prediction=round_half_up(average),
        ))

    rows.sort(key=lambda row: row.average_days)
    return rows


def _recommended_days(mean: float, median: float, distribution: List[FrequencyBucket],
                      segments: List[SegmentFrequency]) -> List[int]:
    days = []
    if median > 0:
        days.append(round_half_up(median))
    if abs(mean - median) > 5:
        days.append(round_half_up(mean))

    peak_index = max(range(len(distribution)), key=lambda i: distribution[i].count)
    if distribution[peak_index].count > 0:
        low, high = GAP_BUCKETS[peak_index]
        days.append(round_half_up((low + high) / 2))

    days.extend(row.next_purchase_prediction for row in segments if row.next_purchase_prediction > 0)

    return sorted(set(days))[:MAX_RECOMMENDATIONS]


def analyze_purchase_frequency(customers: Sequence[Customer], orders: Sequence[Order]) -> PurchaseFrequencyData:
    """
    Inter-purchase gap statistics.

    Orders need both a customer id and a creation date to count. With no
    usable gap at all a fixed default result is returned (three empty
    buckets and campaign days 7, 14 and 30).
    """
    gaps = customer_gaps(orders)
    all_gaps = [gap for per_customer in gaps.values() for gap in per_customer]
    if not all_gaps:
        return _empty_result()

    mean = float(np.mean(all_gaps))
    median = float(np.median(all_gaps))

    distribution = _distribution(all_gaps)
    segments = _segment_frequency(customers, gaps)

    return PurchaseFrequencyData(
        days_between_distribution=distribution,
        segment_frequency=segments,
        average_days_between=round(mean, 1),
        median_days_between=round(median, 1),
        recommended_campaign_days=_recommended_days(mean, median, distribution, segments),
    )
