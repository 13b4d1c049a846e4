"""Async engine and session factory shared by the store and the write-path managers."""

import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import IncidentAnalyticsConfig
from .models.base import Base

logger = logging.getLogger("incident_analytics.database")

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _sqlite_pragmas(busy_timeout: int):
    """Per-connection SQLite settings: enforce foreign keys, wait on locks."""

    def on_connect(dbapi_conn, connection_record) -> None:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout)}")
        cursor.close()

    return on_connect


def get_engine(config: IncidentAnalyticsConfig) -> AsyncEngine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is not None:
        return _engine

    engine = create_async_engine(config.database_url, echo=config.debug, pool_pre_ping=True)
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _sqlite_pragmas(config.db_busy_timeout))
    _engine = engine
    return _engine


def get_session_factory(config: IncidentAnalyticsConfig) -> async_sessionmaker[AsyncSession]:
    """Sessions keep loaded attributes after commit so managers can serialise them."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(config), expire_on_commit=False)
    return _session_factory


async def create_tables(config: IncidentAnalyticsConfig) -> None:
    engine = get_engine(config)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("schema ready on %s", engine.url.render_as_string(hide_password=True))


async def close_engine() -> None:
    """Dispose of the pooled connections and forget the engine."""
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
