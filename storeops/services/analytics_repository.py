"""
Analytics Persistence

Writes the two things the analytics engine persists:

- RFM snapshot rows (insert-only, batched)
- Customer lifecycle segment and notes

Each batch / customer runs inside its own SAVEPOINT so one failure rolls back
only that unit; the failure is logged with enough context to find the bad
record and the caller moves on to the next unit.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storeops.analytics.records import RFMScore
from storeops.core.exceptions import PersistenceError
from storeops.loaders.store_loader import parse_datetime
from storeops.middleware.logging_config import get_logger, log_database_query
from storeops.models import CustomerRecord, CustomerRFMRecord

logger = get_logger(__name__)


@dataclass
class RFMPersistenceResult:
    rows_written: int = 0
    failed_batches: int = 0


@dataclass
class SegmentUpdateResult:
    updated: int = 0
    unchanged: int = 0
    failed: int = 0


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _rfm_record(row: RFMScore) -> CustomerRFMRecord:
    return CustomerRFMRecord(
        customer_id=row.customer_id,
        recency_score=row.recency_score,
        frequency_score=row.frequency_score,
        monetary_score=row.monetary_score,
        rfm_score=row.rfm_score,
        rfm_segment=row.rfm_segment,
        calculation_date=_as_utc(row.calculation_date),
    )


def _rfm_score(record: CustomerRFMRecord) -> RFMScore:
    return RFMScore(
        customer_id=record.customer_id,
        recency_score=record.recency_score,
        frequency_score=record.frequency_score,
        monetary_score=record.monetary_score,
        rfm_score=record.rfm_score,
        rfm_segment=record.rfm_segment,
        calculation_date=parse_datetime(record.calculation_date),
    )


class AnalyticsRepository:
    """Persistence for one analytics session."""

    def __init__(self, session: AsyncSession, batch_size: int = 100):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.session = session
        self.batch_size = batch_size

    # ==================== RFM Snapshot ====================

    async def _insert_batch(self, batch: Sequence[RFMScore], batch_index: int) -> None:
        try:
            async with self.session.begin_nested():
                self.session.add_all([_rfm_record(row) for row in batch])
        except SQLAlchemyError as e:
            raise PersistenceError(
                "RFM batch insert failed",
                {
                    "table": CustomerRFMRecord.__tablename__,
                    "batch_index": batch_index,
                    "batch_size": len(batch),
                    "sample_customer_id": batch[0].customer_id,
                    "sample_record": repr(batch[0]),
                    "error": str(e),
                },
            ) from e

    async def insert_rfm_scores(self, rows: Sequence[RFMScore]) -> RFMPersistenceResult:
        """
        Insert one RFM run in batches.

        A failed batch is logged and skipped; later batches are still written.
        """
        result = RFMPersistenceResult()

        for batch_index, start in enumerate(range(0, len(rows), self.batch_size)):
            batch = rows[start:start + self.batch_size]
            try:
                await self._insert_batch(batch, batch_index)
            except PersistenceError as e:
                result.failed_batches += 1
                logger.error("rfm_batch_insert_failed", **e.details)
                continue

            result.rows_written += len(batch)
            logger.debug("rfm_batch_inserted", batch_index=batch_index, rows=len(batch))

        return result

    async def latest_calculation_date(self) -> Optional[datetime]:
        return parse_datetime(await CustomerRFMRecord.latest_calculation_date(self.session))

    async def latest_snapshot(self) -> List[RFMScore]:
        """Rows sharing the newest calculation_date, as domain records."""
        start = time.time()
        records = await CustomerRFMRecord.get_latest_snapshot(self.session)
        log_database_query("rfm_latest_snapshot", time.time() - start, row_count=len(records))
        return [_rfm_score(record) for record in records]

    # ==================== Customer Segments ====================

    async def _update_customer(self, customer_id: int, segment: str, notes: Optional[str]) -> None:
        try:
            async with self.session.begin_nested():
                await self.session.execute(
                    update(CustomerRecord)
                    .where(CustomerRecord.id == customer_id)
                    .values(customer_segment=segment, notes=notes)
                )
        except SQLAlchemyError as e:
            raise PersistenceError(
                "Customer segment update failed",
                {
                    "table": CustomerRecord.__tablename__,
                    "customer_id": customer_id,
                    "segment": segment,
                    "error": str(e),
                },
            ) from e

    async def update_customer_segment(self, customer_id: int, segment: str, notes: Optional[str]) -> bool:
        """Write one customer's segment and notes. Returns False (and logs) on failure."""
        try:
            await self._update_customer(customer_id, segment, notes)
        except PersistenceError as e:
            logger.error("customer_segment_update_failed", **e.details)
            return False
        return True
