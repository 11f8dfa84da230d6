"""
Lifecycle Segment Classifier

Assigns every customer one lifecycle segment:

    vip, loyal, active, new, at-risk, high-value, one-time, occasional,
    dormant, lost

Customers present in the latest RFM snapshot start from their RFM segment's
lifecycle mapping and are then checked against behavioural overrides. Customers
without an RFM row (no orders, or orders but no usable last-order date) are
classified from their order count, creation date and recency alone.

Every decision is an ordered rule table; the first rule whose predicate holds
wins. Tables are module-level so they can be inspected and tested on their
own.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence

from storeops.analytics.records import Customer, RFMScore
from storeops.analytics.rules import Rule, first_match

NO_ORDERS_MARKER = "No orders yet"
ZERO_ORDER_MARKER = "Zero-order customer"

NEW_CUSTOMER_WINDOW_DAYS = 30

RFM_TO_LIFECYCLE: Dict[str, str] = {
    "Champions": "vip",
    "Loyal Customers": "loyal",
    "Potential Loyalists": "active",
    "At Risk": "at-risk",
    "Cant Lose Them": "high-value",
    "New Customers": "new",
    "Promising": "active",
    "Needs Attention": "active",
    "About To Sleep": "at-risk",
    "Hibernating": "dormant",
}
DEFAULT_LIFECYCLE = "active"


@dataclass(frozen=True)
class CustomerFacts:
    """The values the rule predicates look at, computed once per customer."""
    order_count: int
    total_spent: float
    average_order_value: float
    days_since_last_order: Optional[int]
    days_since_created: Optional[int]
    vip_threshold: Optional[float] = None

    @classmethod
    def of(cls, customer: Customer, reference_date: datetime,
           vip_threshold: Optional[float] = None) -> "CustomerFacts":
        return cls(
            order_count=customer.order_count,
            total_spent=customer.total_spent,
            average_order_value=customer.average_order_value,
            days_since_last_order=customer.days_since_last_order(reference_date),
            days_since_created=customer.days_since_created(reference_date),
            vip_threshold=vip_threshold,
        )


@dataclass(frozen=True)
class SegmentDecision:
    segment: str
    notes: Optional[str]

    def differs_from(self, customer: Customer) -> bool:
        return self.segment != customer.customer_segment or self.notes != customer.notes


def _days(facts: CustomerFacts) -> int:
    # Predicates that read recency only run once a last-order date is known
    return facts.days_since_last_order if facts.days_since_last_order is not None else 0


def _is_vip(facts: CustomerFacts) -> bool:
    return (
        facts.vip_threshold is not None
        and facts.total_spent >= facts.vip_threshold
        and facts.order_count >= 3
    )


# ==================== Rule Tables ====================

RFM_OVERRIDE_RULES: List[Rule[CustomerFacts, str]] = [
    Rule("top_spender", _is_vip, "vip"),
    Rule("high_average_order", lambda f: f.average_order_value > 500, "high-value"),
    Rule("single_order_lapsed", lambda f: f.order_count == 1 and _days(f) > 30, "one-time"),
    Rule("few_orders_lapsing", lambda f: 1 < f.order_count < 4 and 90 < _days(f) <= 180, "occasional"),
    Rule("long_inactive", lambda f: _days(f) > 180, "dormant"),
]

ZERO_ORDER_RULES: List[Rule[CustomerFacts, str]] = [
    Rule("no_creation_date", lambda f: f.days_since_created is None, "lost"),
    Rule("registered_long_ago", lambda f: f.days_since_created > NEW_CUSTOMER_WINDOW_DAYS, "lost"),
    Rule("recently_registered", lambda f: True, "new"),
]

UNSCORED_BUYER_RULES: List[Rule[CustomerFacts, str]] = [
    Rule("no_last_order_date", lambda f: f.days_since_last_order is None, "new"),
    Rule("single_recent_order", lambda f: f.order_count == 1 and _days(f) <= 30, "active"),
    Rule("single_order", lambda f: f.order_count == 1, "one-time"),
    Rule("high_average_order", lambda f: f.average_order_value > 500, "high-value"),
    Rule("frequent_and_recent", lambda f: f.order_count >= 4 and _days(f) <= 30, "loyal"),
    Rule("recent", lambda f: _days(f) <= 30, "active"),
    Rule("cooling", lambda f: _days(f) <= 90, "at-risk"),
    Rule("lapsing", lambda f: _days(f) <= 180, "occasional"),
    Rule("inactive", lambda f: True, "dormant"),
]


# ==================== Helpers ====================

def append_note_marker(notes: Optional[str], marker: str) -> str:
    """Append `marker` to `notes` unless it is already there."""
    if notes and marker in notes:
        return notes
    return f"{notes} | {marker}" if notes else marker


def vip_threshold(scored_customers: Sequence[Customer], top_fraction: float = 0.1) -> Optional[float]:
    """
    Spend needed to count as a top spender among the RFM-scored customers.

    The threshold is the spend at index floor(n * top_fraction) of the spends
    sorted descending, i.e. roughly the top 10% with the defaults.
    """
    if not scored_customers:
        return None
    spends = sorted((customer.total_spent for customer in scored_customers), reverse=True)
    index = min(math.floor(len(spends) * top_fraction), len(spends) - 1)
    return spends[index]


# ==================== Classification ====================

def classify_scored(customer: Customer, rfm_segment: str, threshold: Optional[float],
                    reference_date: datetime) -> str:
    """Lifecycle segment for a customer that has a row in the latest RFM snapshot."""
    facts = CustomerFacts.of(customer, reference_date, threshold)
    base = RFM_TO_LIFECYCLE.get(rfm_segment, DEFAULT_LIFECYCLE)
    return first_match(RFM_OVERRIDE_RULES, facts, default=base)


def classify_zero_order(customer: Customer, reference_date: datetime) -> str:
    """Creation-date rule for customers that never ordered."""
    return first_match(ZERO_ORDER_RULES, CustomerFacts.of(customer, reference_date))


def classify_unscored(customer: Customer, reference_date: datetime) -> SegmentDecision:
    """
    Classify a customer without an RFM row.

    Recently registered customers with no orders get a one-time
    "No orders yet" marker in their notes.
    """
    facts = CustomerFacts.of(customer, reference_date)

    if customer.order_count == 0:
        segment = first_match(ZERO_ORDER_RULES, facts)
        notes = customer.notes
        if segment == "new":
            notes = append_note_marker(notes, NO_ORDERS_MARKER)
        return SegmentDecision(segment, notes)

    return SegmentDecision(first_match(UNSCORED_BUYER_RULES, facts), customer.notes)


def classify_customer(customer: Customer, rfm_row: Optional[RFMScore], threshold: Optional[float],
                      reference_date: datetime) -> SegmentDecision:
    if rfm_row is not None:
        return SegmentDecision(
            classify_scored(customer, rfm_row.rfm_segment, threshold, reference_date),
            customer.notes,
        )
    return classify_unscored(customer, reference_date)


def classify_customers(
    customers: Sequence[Customer],
    snapshot: Mapping[int, RFMScore],
    reference_date: datetime,
    top_fraction: float = 0.1,
) -> Dict[int, SegmentDecision]:
    """
    Classify every customer against one RFM snapshot.

    Args:
        customers: Customers to classify.
        snapshot: customer id -> row of the latest RFM calculation.
        reference_date: "Now" for all day counts.
        top_fraction: Share of scored customers considered top spenders.

    Returns:
        customer id -> decision, in input order.
    """
    scored = [customer for customer in customers if customer.id in snapshot]
    threshold = vip_threshold(scored, top_fraction)

    return {
        customer.id: classify_customer(customer, snapshot.get(customer.id), threshold, reference_date)
        for customer in customers
    }


def zero_order_correction(customer: Customer, reference_date: datetime) -> Optional[SegmentDecision]:
    """
    Re-derive a zero-order customer's segment from the creation-date rule.

    Returns None when the stored segment already matches, otherwise the new
    segment with a one-time "Zero-order customer" marker.
    """
    if customer.order_count != 0:
        return None

    segment = classify_zero_order(customer, reference_date)
    if segment == customer.customer_segment:
        return None

    return SegmentDecision(segment, append_note_marker(customer.notes, ZERO_ORDER_MARKER))
