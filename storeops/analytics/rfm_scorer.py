"""
RFM Scorer

Scores every customer with at least one dated order on three 1-5 axes:

- Recency: fewer days since the last order scores higher
- Frequency: more orders scores higher
- Monetary: more total spend scores higher

Each axis is a quintile ranking over the eligible customers: with N scored
customers the quintile size is ceil(N / 5) and the customer at rank i gets
5 - floor(i / q). The three scores are combined into a three-digit
`rfm_score` and a named RFM segment.
"""

import math
from datetime import datetime
from typing import Callable, List, Sequence, Tuple

from storeops.analytics.records import Customer, RFMScore
from storeops.analytics.rules import Rule, first_match

# (recency, frequency, monetary)
Scores = Tuple[int, int, int]

HIBERNATING = "Hibernating"

RFM_SEGMENT_RULES: List[Rule[Scores, str]] = [
    Rule("champions", lambda s: s[0] >= 4 and s[1] >= 4 and s[2] >= 4, "Champions"),
    Rule("loyal", lambda s: s[0] >= 3 and s[1] >= 3 and s[2] >= 3, "Loyal Customers"),
    Rule("potential_loyalists", lambda s: s[0] >= 3 and s[1] >= 1 and s[2] >= 2, "Potential Loyalists"),
    Rule("at_risk", lambda s: s[0] <= 2 and s[1] >= 2 and s[2] >= 2, "At Risk"),
    Rule("cant_lose", lambda s: s[0] <= 1 and s[1] >= 4 and s[2] >= 4, "Cant Lose Them"),
    Rule("new", lambda s: s[0] >= 4 and s[1] <= 1 and s[2] >= 1, "New Customers"),
    Rule("promising", lambda s: s[0] >= 3 and s[1] <= 1 and s[2] <= 1, "Promising"),
    Rule("needs_attention", lambda s: s[0] >= 2 and s[1] >= 2 and s[2] >= 2, "Needs Attention"),
    Rule("about_to_sleep", lambda s: s[0] >= 2 and s[1] <= 1 and s[2] <= 2, "About To Sleep"),
]


def rfm_segment_for(recency: int, frequency: int, monetary: int) -> str:
    """Name the RFM segment for a score triple (first matching rule wins)."""
    return first_match(RFM_SEGMENT_RULES, (recency, frequency, monetary), default=HIBERNATING)


def combine_scores(recency: int, frequency: int, monetary: int) -> int:
    return recency * 100 + frequency * 10 + monetary


def is_scorable(customer: Customer) -> bool:
    return customer.last_order_date is not None and customer.order_count > 0


def quintile_scores(
    customers: Sequence[Customer],
    key: Callable[[Customer], float],
    descending: bool = False,
) -> dict:
    """
    Rank `customers` by `key` and map customer id -> 1..5 quintile score.

    The sort is stable, so ties keep input order and never share a rank.
    """
    if not customers:
        return {}

    quintile_size = math.ceil(len(customers) / 5)
    ranked = sorted(customers, key=key, reverse=descending)

    return {
        customer.id: 5 - rank // quintile_size
        for rank, customer in enumerate(ranked)
    }


def score_customers(
    customers: Sequence[Customer],
    reference_date: datetime,
    calculation_date: datetime,
) -> List[RFMScore]:
    """
    Compute one RFM row per eligible customer.

    Args:
        customers: All loaded customers; ineligible ones are skipped.
        reference_date: "Now" for the recency calculation.
        calculation_date: Stamped on every row of this run.

    Returns:
        Rows in input order of the eligible customers.
    """
    eligible = [customer for customer in customers if is_scorable(customer)]

    # Python's sort is stable for reverse=True as well, so ties stay in input order
    recency = quintile_scores(eligible, key=lambda c: c.days_since_last_order(reference_date))
    frequency = quintile_scores(eligible, key=lambda c: c.order_count, descending=True)
    monetary = quintile_scores(eligible, key=lambda c: c.total_spent, descending=True)

    rows = []
    for customer in eligible:
        r, f, m = recency[customer.id], frequency[customer.id], monetary[customer.id]
        rows.append(RFMScore(
            customer_id=customer.id,
            recency_score=r,
            frequency_score=f,
            monetary_score=m,
            rfm_score=combine_scores(r, f, m),
            rfm_segment=rfm_segment_for(r, f, m),
            calculation_date=calculation_date,
        ))

    return rows
