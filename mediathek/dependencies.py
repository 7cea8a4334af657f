"""
Dependency wiring

Builds the catalog services once at startup and hands them to the request
handlers. Tests can install their own instance through `set_services`.
"""
import logging
import random
from dataclasses import dataclass

import httpx
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mediathek.config import Settings
from mediathek.services.catalog_store import CatalogStore
from mediathek.services.index_view import LazyIndexView
from mediathek.services.scheduler_service import SyncScheduler
from mediathek.services.sync_controller import CatalogSyncController


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Services:
    """Application services sharing one catalog database."""
    config: Settings
    store: CatalogStore
    view: LazyIndexView
    controller: CatalogSyncController
    scheduler: SyncScheduler


def build_services(
    config: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    client: httpx.AsyncClient | None = None,
    rng: random.Random | None = None,
) -> Services:
    """Create the store, view, controller and scheduler and connect their events."""
    store = CatalogStore(session_factory, chunk_size=config.catalog_import_chunk_size)
    view = LazyIndexView(store)
    controller = CatalogSyncController(
        store,
        session_factory,
        config=config,
        client=client,
        rng=rng,
    )
    controller.events.add_listener(view.on_sync_event)
    scheduler = SyncScheduler(controller, config)
    logger.debug("Catalog services built")
    return Services(config=config, store=store, view=view, controller=controller, scheduler=scheduler)


_services: Services | None = None


def set_services(services: Services | None) -> None:
    global _services
    _services = services


def get_services() -> Services:
    """FastAPI dependency returning the running services"""
    if _services is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return _services
