"""
pytest configuration and shared fixtures.

Async tests run on asyncio through the anyio pytest plugin.
"""
from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mediathek.config import Settings
from mediathek.database import close_db, init_db
from mediathek.services.catalog_store import CatalogStore


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def config(tmp_path: Path) -> Settings:
    """Settings backed by an isolated SQLite database without retry delays."""
    return Settings(
        database_path=str(tmp_path / "catalog.db"),
        download_max_retries=2,
        download_backoff_initial_sec=0,
        catalog_parse_timeout_sec=0,
        catalog_import_chunk_size=3,
    )


@pytest.fixture
async def session_factory(config: Settings) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    factory = await init_db(config)
    try:
        yield factory
    finally:
        await close_db()


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession], config: Settings) -> CatalogStore:
    return CatalogStore(session_factory, chunk_size=config.catalog_import_chunk_size)
