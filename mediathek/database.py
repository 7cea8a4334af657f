"""
Catalog database

One SQLite file holds the current snapshot, the mirror list and the sync
markers. The engine is created by init_db() at startup and torn down by
close_db(); tests call init_db() with their own settings.
"""
import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from mediathek.config import Settings, settings as default_settings
from mediathek.models import Base

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def database_url(config: Settings) -> str:
    return f"sqlite+aiosqlite:///{config.database_path}"


def _pragma_listener(config: Settings):
    """Connect hook applying the configured SQLite pragmas"""
    pragmas = (
        f"PRAGMA journal_mode = {config.sqlite_journal_mode}",
        f"PRAGMA cache_size = -{config.sqlite_cache_size_kb}",
        "PRAGMA foreign_keys = ON",
    )

    def on_connect(dbapi_conn, _):
        cursor = dbapi_conn.cursor()
        for pragma in pragmas:
            cursor.execute(pragma)
        cursor.close()

    return on_connect


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("Catalog database is not open. Call init_db() first.")
    return _session_factory


async def init_db(config: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    """
    Open the catalog database and create missing tables.

    An already open database is closed first.

    Returns:
        Session factory bound to the new engine
    """
    global _engine, _session_factory

    config = config or default_settings
    if _engine is not None:
        await close_db()

    logger.info("Opening catalog database at %s", config.database_path)
    engine = create_async_engine(
        database_url(config),
        pool_pre_ping=True,
        connect_args={"timeout": 30, "check_same_thread": False},
    )
    event.listen(engine.sync_engine, "connect", _pragma_listener(config))

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    _engine = engine
    _session_factory = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)

    logger.info("Catalog database ready")
    return _session_factory


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("Catalog database closed")
    _engine = None
    _session_factory = None


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncIterator[AsyncSession]:
    """Session wrapped in a transaction; commits on a clean exit, rolls back otherwise"""
    factory = session_factory or get_session_factory()

    async with factory() as session:
        async with session.begin():
            yield session
