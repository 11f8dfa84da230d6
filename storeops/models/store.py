"""
Store Models

Tables populated by the storefront sync (customers, orders, products,
customer_acquisition) and the append-only RFM snapshot table written by the
analytics engine (customer_rfm).
"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    Text,
    DateTime,
    JSON,
    ForeignKey,
    select,
    func,
)
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import datetime

from storeops.core.database import Base


class CustomerRecord(Base):
    """
    Customer row as synced from the storefront.

    `customer_segment` and `notes` are the only columns the analytics engine
    writes.
    """

    __tablename__ = "customers"

    id = Column(Integer, primary_key=True)
    email = Column(String(255))
    first_name = Column(String(100))
    last_name = Column(String(100))

    date_created = Column(DateTime(timezone=True))
    first_order_date = Column(DateTime(timezone=True))
    last_order_date = Column(DateTime(timezone=True))

    total_spent = Column(Float, nullable=False, default=0.0)
    order_count = Column(Integer, nullable=False, default=0)
    average_order_value = Column(Float, nullable=False, default=0.0)

    customer_segment = Column(String(50), index=True)
    notes = Column(Text)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<CustomerRecord(id={self.id}, segment='{self.customer_segment}', orders={self.order_count})>"


class OrderRecord(Base):
    """
    Order row as synced from the storefront.

    `total` is kept as the storefront's decimal string and `line_items` as the
    raw JSON payload (a list, or a JSON-encoded string from older syncs).
    """

    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, index=True)
    date_created = Column(DateTime(timezone=True), index=True)
    total = Column(String(32))
    status = Column(String(30))
    line_items = Column(JSON)

    def __repr__(self) -> str:
        return f"<OrderRecord(id={self.id}, customer_id={self.customer_id}, total='{self.total}')>"


class ProductRecord(Base):
    """Catalogue product (only id and name matter to analytics)."""

    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String(255))
    sku = Column(String(100))

    def __repr__(self) -> str:
        return f"<ProductRecord(id={self.id}, name='{self.name}')>"


class CustomerAcquisitionRecord(Base):
    """Marketing attribution for a customer's first order."""

    __tablename__ = "customer_acquisition"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    source = Column(String(100))
    medium = Column(String(100))
    campaign = Column(String(255))


class CustomerRFMRecord(Base):
    """
    One RFM score row per customer per calculation run.

    Rows are inserted, never updated or deleted. Runs are distinguished by
    `calculation_date`; the newest group is the authoritative snapshot.
    """

    __tablename__ = "customer_rfm"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    recency_score = Column(Integer, nullable=False)
    frequency_score = Column(Integer, nullable=False)
    monetary_score = Column(Integer, nullable=False)
    rfm_score = Column(Integer, nullable=False)
    rfm_segment = Column(String(50), nullable=False)
    calculation_date = Column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<CustomerRFMRecord(customer_id={self.customer_id}, rfm_score={self.rfm_score}, segment='{self.rfm_segment}')>"

    # ==================== Query Helpers ====================

    @classmethod
    async def latest_calculation_date(cls, db: AsyncSession) -> Optional[datetime]:
        """Return max(calculation_date), or None when no run has been stored."""
        result = await db.execute(select(func.max(cls.calculation_date)))
        return result.scalar_one_or_none()

    @classmethod
    async def get_latest_snapshot(cls, db: AsyncSession) -> List["CustomerRFMRecord"]:
        """
        Get the rows of the most recent calculation run.

        Selected by max(calculation_date) on every call, so overlapping runs
        resolve to whichever snapshot was written last.
        """
        latest = await cls.latest_calculation_date(db)
        if latest is None:
            return []

        result = await db.execute(
            select(cls).where(cls.calculation_date == latest).order_by(cls.id)
        )
        return list(result.scalars().all())
