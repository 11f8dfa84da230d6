"""
Unit Tests for Customer Analytics Assembly

Tests:
- Segment counts, shares and colours
- RFM distributions from the latest snapshot
- Order value metrics and acquisition sources
- Date-window scoping and the empty result
- camelCase serialisation
"""

from storeops.analytics.assembler import (
    CORE_SEGMENTS,
    DEFAULT_COLOR,
    SEGMENT_COLORS,
    build_customer_analytics,
    rfm_data,
)
from storeops.analytics.records import Acquisition, RFMScore, StoreDataset
from tests.conftest import REFERENCE_DATE, days_ago, make_customer, make_order, make_product


def _rfm_row(customer_id, scores, segment):
    r, f, m = scores
    return RFMScore(
        customer_id=customer_id,
        recency_score=r,
        frequency_score=f,
        monetary_score=m,
        rfm_score=r * 100 + f * 10 + m,
        rfm_segment=segment,
        calculation_date=REFERENCE_DATE,
    )


def _dataset():
    return StoreDataset(
        customers=[
            make_customer(1, order_count=3, total_spent=900.0, last_order_days=5, segment="vip"),
            make_customer(2, order_count=2, total_spent=120.0, last_order_days=20, segment="active"),
            make_customer(3, order_count=1, total_spent=40.0, last_order_days=45, segment="lost"),
            make_customer(4, order_count=0, total_spent=0.0, last_order_days=None, segment="new"),
            make_customer(5, order_count=0, total_spent=0.0, last_order_days=None, segment=None),
        ],
        orders=[
            make_order(1, 1, days_ago(70, hour=9), total=300.0, product_ids=[101, 102]),
            make_order(2, 1, days_ago(40, hour=14), total=300.0, product_ids=[101, 102]),
            make_order(3, 1, days_ago(5, hour=20), total=300.0, product_ids=[103]),
            make_order(4, 2, days_ago(50, hour=10), total=60.0, product_ids=[101]),
            make_order(5, 2, days_ago(20, hour=10), total=60.0),
            make_order(6, 3, days_ago(45, hour=23), total=40.0, product_ids=[102]),
        ],
        products=[
            make_product(101, "Cotton Fabric"),
            make_product(102, "Cotton Thread"),
            make_product(103, "Wool Yarn"),
        ],
        acquisitions=[
            Acquisition(1, "google"),
            Acquisition(2, "google"),
            Acquisition(3, "facebook"),
            Acquisition(4, None),
        ],
    )


SNAPSHOT = [
    _rfm_row(1, (5, 5, 5), "Champions"),
    _rfm_row(2, (4, 4, 4), "Champions"),
    _rfm_row(3, (1, 1, 1), "Hibernating"),
]


class TestSegmentMetrics:
    """Test segment counts and shares"""

    def test_headline_counts(self):
        result = build_customer_analytics(_dataset(), SNAPSHOT)

        assert result.total_customers == 5
        assert result.new_customers == 1
        assert result.active_customers == 1
        assert result.at_risk_customers == 0
        assert result.lost_customers == 1

    def test_segment_shares(self):
        """Test core segments come first and empty segments are omitted"""
        result = build_customer_analytics(_dataset(), SNAPSHOT)

        shares = [(s.name, s.count, s.percentage, s.color) for s in result.customer_segments]
        assert shares == [
            ("new", 1, 20, SEGMENT_COLORS["new"]),
            ("active", 1, 20, SEGMENT_COLORS["active"]),
            ("lost", 1, 20, SEGMENT_COLORS["lost"]),
            ("vip", 1, 20, "#eab308"),
        ]

    def test_unknown_segment_default_color(self):
        dataset = _dataset()
        dataset.customers[0].customer_segment = "wholesale"

        result = build_customer_analytics(dataset, SNAPSHOT)

        colors = {s.name: s.color for s in result.customer_segments}
        assert colors["wholesale"] == DEFAULT_COLOR

    def test_customers_by_segment_keys(self):
        result = build_customer_analytics(_dataset(), SNAPSHOT)

        assert list(result.customers_by_segment)[:5] == CORE_SEGMENTS
        assert result.customers_by_segment["at-risk"] == []
        assert [c.id for c in result.customers_by_segment["vip"]] == [1]


class TestRFMData:
    """Test RFM distributions"""

    def test_distributions(self):
        data = rfm_data(SNAPSHOT)

        segments = [(e.label, e.count, e.percentage) for e in data.rfm_distribution]
        assert segments == [("Champions", 2, 67), ("Hibernating", 1, 33)]
        assert [e.label for e in data.recency_distribution] == [f"Score {i}" for i in range(1, 6)]
        assert [e.count for e in data.recency_distribution] == [1, 0, 0, 1, 1]
        assert [e.count for e in data.monetary_distribution] == [1, 0, 0, 1, 1]

    def test_empty_snapshot(self):
        data = rfm_data([])

        assert data.rfm_distribution == []
        assert data.recency_distribution == []


class TestValueMetrics:
    """Test order value, top customers and acquisition sources"""

    def test_average_order_value_and_clv(self):
        result = build_customer_analytics(_dataset(), SNAPSHOT)

        assert result.average_order_value == 176.67
        assert result.customer_lifetime_value == 2544.0

    def test_top_customers(self):
        result = build_customer_analytics(_dataset(), SNAPSHOT)

        assert [c.id for c in result.top_spending_customers] == [1, 2, 3, 4, 5]
        assert [c.id for c in result.most_frequent_customers] == [1, 2, 3, 4, 5]

    def test_acquisition_sources(self):
        """Test shares are over every acquisition row, sourceless ones included"""
        result = build_customer_analytics(_dataset(), SNAPSHOT)

        sources = [(s.source, s.count, s.percentage) for s in result.acquisition_sources]
        assert sources == [("google", 2, 50), ("facebook", 1, 25)]


class TestDateWindow:
    """Test reporting window scoping"""

    def test_window_limits_customers_and_snapshot(self):
        result = build_customer_analytics(_dataset(), SNAPSHOT, start_date=days_ago(10), end_date=days_ago(1))

        assert result.total_customers == 1
        assert [c.id for c in result.top_spending_customers] == [1]
        assert [(e.label, e.count) for e in result.rfm_data.rfm_distribution] == [("Champions", 1)]
        assert sum(b.count for b in result.order_timing.weekday_distribution) == 1

    def test_cohorts_use_full_history(self):
        dataset = _dataset()
        dataset.customers[0].first_order_date = days_ago(70)

        result = build_customer_analytics(dataset, SNAPSHOT, start_date=days_ago(10), end_date=days_ago(1))

        assert len(result.cohort_analysis) == 1
        assert result.cohort_analysis[0].total_value > 300.0

    def test_empty_window(self):
        result = build_customer_analytics(_dataset(), SNAPSHOT, start_date=days_ago(3), end_date=days_ago(1))

        assert result.total_customers == 0
        assert list(result.customers_by_segment) == CORE_SEGMENTS
        assert result.customer_segments == []


class TestSerialisation:
    """Test dashboard JSON shape"""

    def test_camel_case_keys(self):
        payload = build_customer_analytics(_dataset(), SNAPSHOT).model_dump(by_alias=True)

        for key in ("totalCustomers", "atRiskCustomers", "customersBySegment", "rfmData",
                    "averageOrderValue", "customerLifetimeValue", "cohortAnalysis",
                    "purchaseFrequency", "productAffinity", "orderTiming"):
            assert key in payload, f"{key} missing from payload"
        assert "at-risk" in payload["customersBySegment"]
        assert "recommendedCampaignDays" in payload["purchaseFrequency"]
