"""
Database connection management for the StoreOps analytics engine

Provides async database session management with connection pooling.

Pool Configuration:
- Defaults: 5 connections + 5 overflow = 10 max concurrent
- Pool pre-ping enabled for connection health checks
- Automatic connection recycling every 30 minutes
- SQLite (tests, local runs) uses the driver's default pool
"""

from typing import Optional

from sqlalchemy import event, text
from sqlalchemy.pool import StaticPool
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
import logging

from storeops.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Base for declarative models
Base = declarative_base()

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def create_sqlite_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    SQLite engine with working SAVEPOINTs.

    The sqlite3 driver defers BEGIN on its own, which breaks nested
    transactions; SQLAlchemy's recipe is to disable that and emit BEGIN here.
    In-memory databases share one connection so every session sees the same
    tables.
    """
    kwargs = {"echo": echo}
    if ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"):
        kwargs["poolclass"] = StaticPool

    engine = create_async_engine(url, **kwargs)

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Build an async engine for the configured database."""
    url = settings.async_database_url

    if url.startswith("sqlite"):
        return create_sqlite_engine(url, echo=settings.db_echo)

    logger.info(
        f"Database pool configuration: size={settings.db_pool_size}, "
        f"max_overflow={settings.db_max_overflow}, timeout={settings.db_pool_timeout}s, "
        f"recycle={settings.db_pool_recycle}s, environment={settings.environment}"
    )

    return create_async_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=True,
        echo=settings.db_echo,
        connect_args={
            "server_settings": {
                "application_name": "storeops_customer_analytics",
            }
        }
    )


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_engine_from_settings(get_settings())
    return _engine


def get_session_factory() -> async_sessionmaker:
    """Return the process-wide session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False
        )
    return _session_factory


async def init_db(create_tables: bool = False):
    """Initialize database connection, optionally creating all tables."""
    logger.info("Initializing database connection")
    async with get_engine().begin() as conn:
        await conn.execute(text("SELECT 1"))
        if create_tables:
            # Models must be imported so their tables register on Base.metadata
            import storeops.models  # noqa: F401
            await conn.run_sync(Base.metadata.create_all)
    logger.info("Database connection initialized successfully")


async def close_db():
    """Close database connection."""
    global _engine, _session_factory
    if _engine is None:
        return
    logger.info("Closing database connection")
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("Database connection closed")


async def get_db():
    """
    FastAPI dependency for database session.

    Usage:
        @router.get("/endpoint")
        async def endpoint(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def check_database_health() -> dict:
    """
    Run a trivial query against the database.

    Returns:
        dict: {"health": "healthy"|"unhealthy", "health_error": str (only when unhealthy)}
    """
    try:
        async with get_engine().begin() as conn:
            await conn.execute(text("SELECT 1"))
        return {"health": "healthy"}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {"health": "unhealthy", "health_error": str(e)}
