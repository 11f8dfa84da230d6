"""
Pytest Configuration and Fixtures

Shared fixtures for all tests:
- In-memory SQLite database with the store schema
- Customer / order / product factories (domain records and ORM rows)
- A customer analytics engine pinned to a fixed "now"
"""

from datetime import datetime, timedelta
from typing import List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storeops.analytics.engine import CustomerAnalyticsEngine
from storeops.analytics.records import Customer, LineItem, Order, Product
from storeops.core.config import Settings
from storeops.core.database import Base, create_sqlite_engine
from storeops.models import (
    CustomerAcquisitionRecord,
    CustomerRecord,
    OrderRecord,
    ProductRecord,
)

# Fixed "now" for every day-count in the tests (a Sunday)
REFERENCE_DATE = datetime(2025, 6, 15, 12, 0, 0)


def days_ago(days: float, hour: Optional[int] = None) -> datetime:
    moment = REFERENCE_DATE - timedelta(days=days)
    if hour is not None:
        moment = moment.replace(hour=hour)
    return moment


# ==================== Domain Record Factories ====================

def make_customer(
    customer_id: int,
    order_count: int = 1,
    total_spent: float = 100.0,
    last_order_days: Optional[float] = 10,
    created_days: Optional[float] = 365,
    first_order_date: Optional[datetime] = None,
    average_order_value: Optional[float] = None,
    segment: Optional[str] = None,
    notes: Optional[str] = None,
) -> Customer:
    if average_order_value is None:
        average_order_value = total_spent / order_count if order_count else 0.0
    return Customer(
        id=customer_id,
        email=f"customer{customer_id}@example.com",
        first_name=f"First{customer_id}",
        last_name=f"Last{customer_id}",
        date_created=days_ago(created_days) if created_days is not None else None,
        first_order_date=first_order_date,
        last_order_date=days_ago(last_order_days) if last_order_days is not None else None,
        total_spent=total_spent,
        order_count=order_count,
        average_order_value=average_order_value,
        customer_segment=segment,
        notes=notes,
    )


def make_order(
    order_id: int,
    customer_id: Optional[int] = None,
    date_created: Optional[datetime] = None,
    total: float = 50.0,
    product_ids: List[int] = (),
) -> Order:
    return Order(
        id=order_id,
        customer_id=customer_id,
        date_created=date_created,
        total=total,
        line_items=tuple(LineItem(product_id=pid, quantity=1, total=total) for pid in product_ids),
    )


def make_product(product_id: int, name: Optional[str]) -> Product:
    return Product(id=product_id, name=name)


# ==================== Database Fixtures ====================

@pytest_asyncio.fixture
async def db_engine():
    """In-memory SQLite engine with all tables created"""
    engine = create_sqlite_engine("sqlite+aiosqlite:///:memory:")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Session for seeding and assertions; rolls back anything left uncommitted"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def test_settings():
    return Settings(
        database_url="sqlite:///:memory:",
        rfm_batch_size=2,
        vip_top_fraction=0.1,
        admin_key="test-admin-key-0123",
    )


@pytest.fixture
def analytics_engine(session_factory, test_settings):
    return CustomerAnalyticsEngine(session_factory, test_settings, clock=lambda: REFERENCE_DATE)


# ==================== ORM Seeding ====================

def customer_row(
    customer_id: int,
    order_count: int = 1,
    total_spent: float = 100.0,
    last_order_days: Optional[float] = 10,
    created_days: Optional[float] = 365,
    first_order_days: Optional[float] = None,
    segment: Optional[str] = None,
    notes: Optional[str] = None,
) -> CustomerRecord:
    return CustomerRecord(
        id=customer_id,
        email=f"customer{customer_id}@example.com",
        first_name=f"First{customer_id}",
        last_name=f"Last{customer_id}",
        date_created=days_ago(created_days) if created_days is not None else None,
        first_order_date=days_ago(first_order_days) if first_order_days is not None else None,
        last_order_date=days_ago(last_order_days) if last_order_days is not None else None,
        total_spent=total_spent,
        order_count=order_count,
        average_order_value=total_spent / order_count if order_count else 0.0,
        customer_segment=segment,
        notes=notes,
    )


def order_row(order_id: int, customer_id: Optional[int], date_created: Optional[datetime],
              total="50.00", line_items=None) -> OrderRecord:
    return OrderRecord(
        id=order_id,
        customer_id=customer_id,
        date_created=date_created,
        total=total,
        status="completed",
        line_items=line_items if line_items is not None else [],
    )


@pytest_asyncio.fixture
async def seeded_store(session_factory):
    """
    Small store:

    - customer 1: 3 orders, recent, big spender
    - customer 2: 2 orders, one recent
    - customer 3: 1 order, 45 days ago
    - customer 4: registered 10 days ago, no orders
    - customer 5: registered 60 days ago, no orders
    """
    async with session_factory() as session:
        session.add_all([
            customer_row(1, order_count=3, total_spent=900.0, last_order_days=5, first_order_days=70),
            customer_row(2, order_count=2, total_spent=120.0, last_order_days=20, first_order_days=50),
            customer_row(3, order_count=1, total_spent=40.0, last_order_days=45, first_order_days=45),
            customer_row(4, order_count=0, total_spent=0.0, last_order_days=None, created_days=10),
            customer_row(5, order_count=0, total_spent=0.0, last_order_days=None, created_days=60),
            ProductRecord(id=101, name="Cotton Fabric", sku="CF-1"),
            ProductRecord(id=102, name="Cotton Thread", sku="CT-1"),
            ProductRecord(id=103, name="Wool Yarn", sku="WY-1"),
        ])
        await session.flush()
        session.add_all([
            order_row(1, 1, days_ago(70, hour=9), "300.00",
                      [{"product_id": 101, "quantity": 1, "total": "200.00"},
                       {"product_id": 102, "quantity": 2, "total": "100.00"}]),
            order_row(2, 1, days_ago(40, hour=14), "300.00",
                      [{"product_id": 101, "quantity": 1, "total": "200.00"},
                       {"product_id": 102, "quantity": 1, "total": "100.00"}]),
            order_row(3, 1, days_ago(5, hour=20), "300.00",
                      '[{"product_id": 103, "quantity": 1, "total": "300.00"}]'),
            order_row(4, 2, days_ago(50, hour=10), "60.00",
                      [{"product_id": 101, "quantity": 1, "total": "60.00"}]),
            order_row(5, 2, days_ago(20, hour=10), "60.00", "[]"),
            order_row(6, 3, days_ago(45, hour=23), "not-a-number",
                      [{"product_id": 102, "quantity": 1, "total": "40.00"}]),
            order_row(7, None, None, "15.00", None),
            CustomerAcquisitionRecord(customer_id=1, source="google"),
            CustomerAcquisitionRecord(customer_id=2, source="google"),
            CustomerAcquisitionRecord(customer_id=3, source="facebook"),
            CustomerAcquisitionRecord(customer_id=4, source=None),
        ])
        await session.commit()
