"""
Integration Tests for the Customer Analytics Engine

Runs the pipeline against an in-memory SQLite store:
- RFM snapshot persistence (batched, savepoint per batch)
- Segment classification writes and note markers
- Zero-order correction
- Failure isolation and hard failures
"""

from contextlib import asynccontextmanager
from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from storeops.analytics.engine import CustomerAnalyticsEngine
from storeops.analytics.records import RFMScore
from storeops.analytics.segment_classifier import NO_ORDERS_MARKER, ZERO_ORDER_MARKER
from storeops.core.exceptions import (
    DataSourceUnavailableError,
    InvalidDateRangeError,
    PersistenceError,
)
from storeops.models import CustomerRecord, CustomerRFMRecord
from storeops.services.analytics_repository import AnalyticsRepository
from tests.conftest import REFERENCE_DATE, days_ago
from tests.test_store_loader import _UnavailableSession


async def _segments(session_factory):
    """customer id -> (segment, notes) read through a fresh session."""
    async with session_factory() as session:
        rows = await session.execute(
            select(CustomerRecord.id, CustomerRecord.customer_segment, CustomerRecord.notes)
        )
        return {row.id: (row.customer_segment, row.notes) for row in rows}


async def _rfm_row_count(session_factory):
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(CustomerRFMRecord))


class TestCalculateRFMScores:
    """Test RFM scoring and snapshot persistence"""

    async def test_scores_eligible_customers(self, seeded_store, analytics_engine, session_factory):
        result = await analytics_engine.calculate_rfm_scores()

        assert result.customers_scored == 3, "Zero-order customers are not scored"
        assert result.rows_written == 3
        assert result.failed_batches == 0
        assert result.calculation_date == REFERENCE_DATE
        assert await _rfm_row_count(session_factory) == 3

    async def test_snapshot_values(self, seeded_store, analytics_engine, db_session):
        await analytics_engine.calculate_rfm_scores()

        snapshot = await AnalyticsRepository(db_session).latest_snapshot()

        scores = {row.customer_id: (row.rfm_score, row.rfm_segment) for row in snapshot}
        assert scores == {
            1: (555, "Champions"),
            2: (444, "Champions"),
            3: (333, "Loyal Customers"),
        }
        assert {row.calculation_date for row in snapshot} == {REFERENCE_DATE}

    async def test_latest_snapshot_only(self, seeded_store, session_factory, test_settings, db_session):
        """Test older runs stay in the table but are not read back"""
        earlier = CustomerAnalyticsEngine(
            session_factory, test_settings, clock=lambda: REFERENCE_DATE - timedelta(days=1)
        )
        later = CustomerAnalyticsEngine(session_factory, test_settings, clock=lambda: REFERENCE_DATE)

        await earlier.calculate_rfm_scores()
        await later.calculate_rfm_scores()

        repository = AnalyticsRepository(db_session)
        assert await _rfm_row_count(session_factory) == 6
        assert await repository.latest_calculation_date() == REFERENCE_DATE
        assert len(await repository.latest_snapshot()) == 3


class TestAnalyticsRepository:
    """Test batch and per-customer failure isolation"""

    def _row(self, customer_id, segment="Champions"):
        return RFMScore(
            customer_id=customer_id,
            recency_score=5,
            frequency_score=5,
            monetary_score=5,
            rfm_score=555,
            rfm_segment=segment,
            calculation_date=REFERENCE_DATE,
        )

    async def test_failed_batch_skipped(self, seeded_store, db_session, session_factory):
        """Test one bad batch is rolled back while later batches are written"""
        repository = AnalyticsRepository(db_session, batch_size=2)
        rows = [self._row(1), self._row(2, segment=None), self._row(3)]

        result = await repository.insert_rfm_scores(rows)
        await db_session.commit()

        assert result.failed_batches == 1
        assert result.rows_written == 1
        assert await _rfm_row_count(session_factory) == 1

    async def test_segment_update_failure_returns_false(self, seeded_store, db_session, monkeypatch):
        async def failing_update(self, customer_id, segment, notes):
            raise PersistenceError("boom", {"customer_id": customer_id})

        monkeypatch.setattr(AnalyticsRepository, "_update_customer", failing_update)

        assert await AnalyticsRepository(db_session).update_customer_segment(1, "vip", None) is False

    def test_invalid_batch_size(self, db_session):
        with pytest.raises(ValueError):
            AnalyticsRepository(db_session, batch_size=0)


class TestUpdateCustomerSegments:
    """Test lifecycle classification writes"""

    async def test_segments_written(self, seeded_store, analytics_engine, session_factory):
        await analytics_engine.calculate_rfm_scores()

        result = await analytics_engine.update_customer_segments()

        assert (result.updated, result.unchanged, result.failed) == (5, 0, 0)
        segments = await _segments(session_factory)
        assert segments[1] == ("vip", None)
        assert segments[2] == ("vip", None), "Champions map to vip"
        assert segments[3] == ("one-time", None)
        assert segments[4] == ("new", NO_ORDERS_MARKER)
        assert segments[5] == ("lost", None)

    async def test_second_pass_writes_nothing(self, seeded_store, analytics_engine, session_factory):
        """Test the 'No orders yet' marker is written once"""
        await analytics_engine.calculate_rfm_scores()
        await analytics_engine.update_customer_segments()

        result = await analytics_engine.update_customer_segments()

        assert (result.updated, result.unchanged, result.failed) == (0, 5, 0)
        assert (await _segments(session_factory))[4][1] == NO_ORDERS_MARKER

    async def test_one_failed_update_does_not_stop_others(
        self, seeded_store, analytics_engine, session_factory, monkeypatch
    ):
        original = AnalyticsRepository._update_customer

        async def flaky_update(self, customer_id, segment, notes):
            if customer_id == 3:
                raise PersistenceError("Customer segment update failed", {"customer_id": customer_id})
            await original(self, customer_id, segment, notes)

        monkeypatch.setattr(AnalyticsRepository, "_update_customer", flaky_update)
        await analytics_engine.calculate_rfm_scores()

        result = await analytics_engine.update_customer_segments()

        assert (result.updated, result.failed) == (4, 1)
        segments = await _segments(session_factory)
        assert segments[3] == (None, None)
        assert segments[1][0] == "vip"

    async def test_without_snapshot(self, seeded_store, analytics_engine, session_factory):
        """Test buyers fall back to the unscored ladder when no RFM run exists"""
        await analytics_engine.update_customer_segments()

        segments = await _segments(session_factory)
        assert segments[1][0] == "active"
        assert segments[3][0] == "one-time"


class TestFixZeroOrderCustomers:
    """Test zero-order correction"""

    async def test_only_wrong_segments_updated(self, seeded_store, analytics_engine, session_factory):
        await analytics_engine.update_customer_segments()
        async with session_factory() as session:
            await session.execute(
                update(CustomerRecord).where(CustomerRecord.id == 5).values(customer_segment="active")
            )
            await session.commit()

        assert await analytics_engine.fix_zero_order_customers() == 1
        assert await analytics_engine.fix_zero_order_customers() == 0

        segments = await _segments(session_factory)
        assert segments[5] == ("lost", ZERO_ORDER_MARKER)
        assert segments[4] == ("new", NO_ORDERS_MARKER)


class TestRun:
    """Test the full pipeline"""

    async def test_end_to_end(self, seeded_store, analytics_engine, session_factory):
        analytics = await analytics_engine.run()

        assert analytics.total_customers == 5
        assert analytics.new_customers == 1
        assert analytics.lost_customers == 1
        assert [c.id for c in analytics.customers_by_segment["vip"]] == [1, 2]
        assert [c.id for c in analytics.customers_by_segment["one-time"]] == [3]
        assert [(e.label, e.count) for e in analytics.rfm_data.rfm_distribution] == [
            ("Champions", 2),
            ("Loyal Customers", 1),
        ]
        assert [c.cohort_key for c in analytics.cohort_analysis] == ["2025-04", "2025-05"]
        pair = analytics.product_affinity.frequently_bought_together[0]
        assert (pair.product1_id, pair.product2_id, pair.cooccurrence_count) == (101, 102, 2)
        assert sum(b.count for b in analytics.order_timing.weekday_distribution) == 6
        assert await _rfm_row_count(session_factory) == 3

    async def test_skip_scoring(self, seeded_store, analytics_engine, session_factory):
        analytics = await analytics_engine.run(skip_scoring=True)

        assert await _rfm_row_count(session_factory) == 0
        assert analytics.rfm_data.rfm_distribution == []
        assert analytics.total_customers == 5

    async def test_date_window(self, seeded_store, analytics_engine):
        analytics = await analytics_engine.run(start_date=days_ago(10), end_date=days_ago(1))

        assert analytics.total_customers == 1
        assert analytics.top_spending_customers[0].id == 1

    async def test_read_only_analytics(self, seeded_store, analytics_engine, session_factory):
        """Test get_customer_analytics neither scores nor classifies"""
        analytics = await analytics_engine.get_customer_analytics()

        assert await _rfm_row_count(session_factory) == 0
        assert analytics.total_customers == 5
        assert analytics.customer_segments == []

    async def test_inverted_range_rejected(self, analytics_engine):
        with pytest.raises(InvalidDateRangeError):
            await analytics_engine.run(start_date=days_ago(1), end_date=days_ago(5))

    async def test_unavailable_store(self, test_settings):
        @asynccontextmanager
        async def unavailable_factory():
            yield _UnavailableSession()

        engine = CustomerAnalyticsEngine(unavailable_factory, test_settings, clock=lambda: REFERENCE_DATE)

        with pytest.raises(DataSourceUnavailableError):
            await engine.run()
