"""
Customer Analytics Engine

Runs the batch pipeline:

    load -> RFM score (persist snapshot) -> classify segments (persist)
         -> assemble dashboard analytics

Each public method opens its own session and commits at the end, so the
HTTP endpoints and the CLI can call any stage on its own. Nothing is cached
between calls; every call reloads from the database.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storeops.analytics.assembler import build_customer_analytics
from storeops.analytics.product_affinity import CategoryFunction, first_word_category
from storeops.analytics.records import StoreDataset
from storeops.analytics.rfm_scorer import score_customers
from storeops.analytics.schemas import CustomerAnalyticsData
from storeops.analytics.segment_classifier import classify_customers, zero_order_correction
from storeops.core.config import Settings, get_settings
from storeops.core.exceptions import InvalidDateRangeError
from storeops.loaders.store_loader import load_customers, load_store_dataset
from storeops.middleware.logging_config import get_logger, log_business_event
from storeops.middleware.metrics import (
    track_analytics_stage,
    track_rfm_persistence,
    track_segment_updates,
    update_data_metrics,
)
from storeops.services.analytics_repository import (
    AnalyticsRepository,
    RFMPersistenceResult,
    SegmentUpdateResult,
)

logger = get_logger(__name__)


def utc_now() -> datetime:
    """Current time as a naive UTC datetime (the loader's convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class RFMRunResult:
    customers_scored: int
    rows_written: int
    failed_batches: int
    calculation_date: datetime


class CustomerAnalyticsEngine:
    """
    Batch customer analytics over the store database.

    Args:
        session_factory: Async session factory bound to the store database.
        settings: Batch size and VIP cut-off come from here.
        clock: Returns "now" as a naive UTC datetime; injectable for tests.
        category_of: Product -> category for category preferences.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
        category_of: CategoryFunction = first_word_category,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.clock = clock
        self.category_of = category_of

    def _repository(self, session: AsyncSession) -> AnalyticsRepository:
        return AnalyticsRepository(session, batch_size=self.settings.rfm_batch_size)

    # ==================== Stages ====================

    async def _score(self, session: AsyncSession, dataset: StoreDataset) -> RFMRunResult:
        start = time.time()
        now = self.clock()

        rows = score_customers(dataset.customers, reference_date=now, calculation_date=now)
        persisted: RFMPersistenceResult = await self._repository(session).insert_rfm_scores(rows)
        await session.flush()

        track_analytics_stage("rfm_scoring", time.time() - start)
        track_rfm_persistence(persisted.rows_written, persisted.failed_batches)
        log_business_event(
            "rfm_scores_calculated",
            customers_scored=len(rows),
            rows_written=persisted.rows_written,
            failed_batches=persisted.failed_batches,
        )

        return RFMRunResult(
            customers_scored=len(rows),
            rows_written=persisted.rows_written,
            failed_batches=persisted.failed_batches,
            calculation_date=now,
        )

    async def _classify(self, session: AsyncSession, dataset: StoreDataset) -> SegmentUpdateResult:
        start = time.time()
        repository = self._repository(session)

        # Always the newest snapshot in the table, which may belong to a concurrent run
        snapshot = {row.customer_id: row for row in await repository.latest_snapshot()}
        decisions = classify_customers(
            dataset.customers,
            snapshot,
            reference_date=self.clock(),
            top_fraction=self.settings.vip_top_fraction,
        )

        result = SegmentUpdateResult()
        for customer in dataset.customers:
            decision = decisions[customer.id]
            if not decision.differs_from(customer):
                result.unchanged += 1
                continue

            if await repository.update_customer_segment(customer.id, decision.segment, decision.notes):
                customer.customer_segment = decision.segment
                customer.notes = decision.notes
                result.updated += 1
            else:
                result.failed += 1

        track_analytics_stage("segment_classification", time.time() - start)
        track_segment_updates(result.updated, result.failed)
        log_business_event(
            "customer_segments_updated",
            snapshot_size=len(snapshot),
            updated=result.updated,
            unchanged=result.unchanged,
            failed=result.failed,
        )
        return result

    def _assemble(self, dataset: StoreDataset, snapshot, start_date, end_date) -> CustomerAnalyticsData:
        start = time.time()
        analytics = build_customer_analytics(
            dataset,
            snapshot,
            start_date=start_date,
            end_date=end_date,
            category_of=self.category_of,
        )
        track_analytics_stage("assembly", time.time() - start)
        return analytics

    @staticmethod
    def _check_range(start_date: Optional[datetime], end_date: Optional[datetime]) -> None:
        if start_date is not None and end_date is not None and start_date > end_date:
            raise InvalidDateRangeError(
                "start_date must not be after end_date",
                {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )

    # ==================== Public API ====================

    async def calculate_rfm_scores(self) -> RFMRunResult:
        """Score all customers and append a new snapshot to customer_rfm."""
        async with self.session_factory() as session:
            dataset = await load_store_dataset(session)
            update_data_metrics(len(dataset.customers))
            result = await self._score(session, dataset)
            await session.commit()
        return result

    async def update_customer_segments(self) -> SegmentUpdateResult:
        """Re-classify every customer against the newest RFM snapshot."""
        async with self.session_factory() as session:
            dataset = await load_store_dataset(session)
            result = await self._classify(session, dataset)
            await session.commit()
        return result

    async def fix_zero_order_customers(self) -> int:
        """
        Re-apply the creation-date rule to customers that never ordered.

        Only customers whose segment changes are written. Returns how many
        were updated.
        """
        now = self.clock()
        updated = 0

        async with self.session_factory() as session:
            customers = await load_customers(session, order_count=0)
            repository = self._repository(session)

            for customer in customers:
                decision = zero_order_correction(customer, now)
                if decision is None:
                    continue
                logger.info(
                    "zero_order_customer_reclassified",
                    customer_id=customer.id,
                    old_segment=customer.customer_segment,
                    new_segment=decision.segment,
                )
                if await repository.update_customer_segment(customer.id, decision.segment, decision.notes):
                    updated += 1

            await session.commit()

        log_business_event("zero_order_customers_fixed", candidates=len(customers), updated=updated)
        return updated

    async def get_customer_analytics(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> CustomerAnalyticsData:
        """Assemble analytics from stored segments and the latest snapshot, without re-scoring."""
        self._check_range(start_date, end_date)

        async with self.session_factory() as session:
            dataset = await load_store_dataset(session)
            snapshot = await self._repository(session).latest_snapshot()

        return self._assemble(dataset, snapshot, start_date, end_date)

    async def run(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        skip_scoring: bool = False,
    ) -> CustomerAnalyticsData:
        """
        Full pipeline in one session.

        Raises:
            DataSourceUnavailableError: The store data could not be loaded.
            InvalidDateRangeError: start_date is after end_date.
        """
        self._check_range(start_date, end_date)
        run_start = time.time()

        async with self.session_factory() as session:
            load_start = time.time()
            dataset = await load_store_dataset(session)
            track_analytics_stage("load", time.time() - load_start)
            update_data_metrics(len(dataset.customers))

            if not skip_scoring:
                await self._score(session, dataset)
            await self._classify(session, dataset)

            snapshot = await self._repository(session).latest_snapshot()
            await session.commit()

        analytics = self._assemble(dataset, snapshot, start_date, end_date)

        logger.info(
            "customer_analytics_run_completed",
            customers=len(dataset.customers),
            orders=len(dataset.orders),
            duration_seconds=round(time.time() - run_start, 3),
        )
        return analytics
