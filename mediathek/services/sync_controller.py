"""
Catalog Sync Controller

Decides when the mirror list and the catalog are due, drives their refresh
and reports every stage to registered listeners. A failed refresh leaves the
stored data untouched and is retried on the next scheduled check.
"""
from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime
from enum import Enum
from typing import Callable

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mediathek.config import Settings, settings as default_settings
from mediathek.database import session_scope
from mediathek.exceptions import CatalogError, MalformedCatalogError, TransportError
from mediathek.services.catalog_downloader_service import (
    RetryPolicy,
    download_catalog,
    fetch_mirror_list_document,
)
from mediathek.services.catalog_parser_service import parse_catalog_async
from mediathek.services.catalog_store import CatalogStore
from mediathek.services.catalog_types import SyncEvent
from mediathek.services.events import EventEmitter
from mediathek.services.mirror_service import MirrorSelector, parse_mirror_list
from mediathek.services.sync_state_service import (
    CATALOG,
    MIRROR_LIST,
    get_updated_on,
    load_mirror_list,
    replace_mirror_list,
)
from mediathek.utils.logging_helpers import log_section_end, log_section_start, log_sync_end, log_sync_start
from mediathek.utils.timezone import utc_now, whole_days_between, whole_hours_between


logger = logging.getLogger(__name__)

ABORTED = "Transfer aborted"


class SyncPhase(str, Enum):
    IDLE = "idle"
    CHECKING_MIRROR_LIST = "checking_mirror_list"
    REFRESHING_MIRROR_LIST = "refreshing_mirror_list"
    CHECKING_CATALOG = "checking_catalog"
    REFRESHING_CATALOG = "refreshing_catalog"


class CatalogSyncController:
    """
    Runs mirror list and catalog refresh cycles, one at a time.

    A cycle requested while another one is in flight is dropped and logged.
    """

    def __init__(
        self,
        store: CatalogStore,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        config: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._session_factory = session_factory
        self._config = config or default_settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=self._config.http_timeout_sec,
            follow_redirects=True,
        )
        self._selector = MirrorSelector(rng)
        self._clock = clock
        self._retry = RetryPolicy(
            max_attempts=self._config.download_max_retries,
            backoff_initial=self._config.download_backoff_initial_sec,
            backoff_multiplier=self._config.download_backoff_multiplier,
            backoff_max=self._config.download_backoff_max_sec,
        )

        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self._phase = SyncPhase.IDLE

        self.events: EventEmitter[SyncEvent] = EventEmitter("sync")
        self.last_events: dict[str, SyncEvent] = {}

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    def is_syncing(self) -> bool:
        return self._lock.locked()

    async def run_cycle(self) -> dict:
        """
        Refresh the mirror list and the catalog where they are due.

        Returns:
            Dictionary with the cycle outcome ("completed", "idle", "failed" or "skipped")
        """
        return await self._guarded(force_catalog=False)

    async def refresh_catalog(self) -> dict:
        """Refresh the catalog now, refreshing a missing or stale mirror list first."""
        return await self._guarded(force_catalog=True)

    def cancel(self) -> bool:
        """
        Abort the cycle in flight, if any.

        The abort is reported as a failure, unless the new snapshot is already
        being stored: that swap completes and is reported as completed.
        """
        if self._task is None or self._task.done():
            return False
        logger.warning("Aborting catalog sync in progress")
        self._task.cancel()
        return True

    async def aclose(self) -> None:
        self.cancel()
        if self._owns_client:
            await self._client.aclose()

    async def _guarded(self, *, force_catalog: bool) -> dict:
        if self._lock.locked():
            logger.warning("Catalog sync already in progress, skipping this request")
            await self.events.emit(
                SyncEvent(stage=CATALOG, kind="skipped", reason="Catalog sync already in progress")
            )
            return {
                "status": "skipped",
                "message": "Catalog sync already in progress",
            }

        async with self._lock:
            self._task = asyncio.current_task()
            log_sync_start(logger)
            result: dict = {"status": "cancelled"}
            try:
                result = await self._cycle(force_catalog=force_catalog)
                return result
            finally:
                self._phase = SyncPhase.IDLE
                self._task = None
                log_sync_end(logger, result["status"])

    async def _cycle(self, *, force_catalog: bool) -> dict:
        now = self._clock()

        self._phase = SyncPhase.CHECKING_MIRROR_LIST
        if await self._mirror_list_due(now):
            failure = await self._refresh_mirror_list()
            if failure:
                return {"status": "failed", "stage": MIRROR_LIST, "error": failure}

        self._phase = SyncPhase.CHECKING_CATALOG
        if not force_catalog and not await self._catalog_due(now):
            logger.info("Catalog is up to date")
            return {"status": "idle", "message": "Catalog is up to date"}

        return await self._refresh_catalog()

    async def _mirror_list_due(self, now: datetime) -> bool:
        async with session_scope(self._session_factory) as session:
            updated_on = await get_updated_on(session, MIRROR_LIST)
            mirrors = await load_mirror_list(session)

        if updated_on is None or not mirrors:
            logger.info("No mirror list stored yet")
            return True

        age = whole_days_between(updated_on, now)
        logger.debug(
            "Mirror list is %s days old (refresh after %s)",
            age,
            self._config.mirror_list_update_after_days,
        )
        return age > self._config.mirror_list_update_after_days

    async def _catalog_due(self, now: datetime) -> bool:
        async with session_scope(self._session_factory) as session:
            updated_on = await get_updated_on(session, CATALOG)

        if updated_on is None:
            logger.info("No catalog stored yet")
            return True

        age = whole_hours_between(updated_on, now)
        logger.debug(
            "Catalog is %s hours old (refresh after %s)",
            age,
            self._config.catalog_update_after_hours,
        )
        return age > self._config.catalog_update_after_hours

    async def _refresh_mirror_list(self) -> str | None:
        """Returns the failure reason, or None on success"""
        self._phase = SyncPhase.REFRESHING_MIRROR_LIST
        log_section_start(logger, "mirror list refresh")
        await self._emit(MIRROR_LIST, "started")

        try:
            content = await fetch_mirror_list_document(
                self._client,
                self._config.mirror_list_url,
                self._config.user_agent,
            )
            mirrors = parse_mirror_list(content)
            updated_at = self._clock()
            async with session_scope(self._session_factory) as session:
                await replace_mirror_list(session, mirrors, updated_at)
        except asyncio.CancelledError:
            await self._emit(MIRROR_LIST, "failed", reason=ABORTED)
            raise
        except CatalogError as exc:
            logger.error("Mirror list refresh failed: %s", exc)
            await self._emit(MIRROR_LIST, "failed", reason=str(exc))
            return str(exc)
        except Exception as exc:
            logger.error("Unexpected error during mirror list refresh: %s", exc, exc_info=True)
            await self._emit(MIRROR_LIST, "failed", reason=str(exc))
            return str(exc)

        log_section_end(logger, "mirror list refresh")
        await self._emit(MIRROR_LIST, "completed", updated_at=updated_at)
        return None

    async def _refresh_catalog(self) -> dict:
        self._phase = SyncPhase.REFRESHING_CATALOG
        log_section_start(logger, "catalog refresh")
        await self._emit(CATALOG, "started")

        cancelled = False
        try:
            async with session_scope(self._session_factory) as session:
                mirrors = await load_mirror_list(session)
            if not mirrors:
                raise TransportError("No catalog mirrors available.")

            download = await download_catalog(
                self._client,
                mirrors,
                self._selector,
                self._config.user_agent,
                self._retry,
            )
            shows = await parse_catalog_async(
                download.decoded,
                timeout_seconds=self._config.catalog_parse_timeout_sec,
            )
            if not shows:
                raise MalformedCatalogError("Received a catalog without shows.")

            updated_at = self._clock()
            count, cancelled = await self._swap_snapshot(shows, updated_at)
        except asyncio.CancelledError:
            logger.warning("Catalog refresh aborted; keeping the previous snapshot")
            await self._emit(CATALOG, "failed", reason=ABORTED)
            raise
        except CatalogError as exc:
            logger.error("Catalog refresh failed: %s", exc)
            await self._emit(CATALOG, "failed", reason=str(exc))
            return {"status": "failed", "stage": CATALOG, "error": str(exc)}
        except Exception as exc:
            logger.error("Unexpected error during catalog refresh: %s", exc, exc_info=True)
            await self._emit(CATALOG, "failed", reason=str(exc))
            return {"status": "failed", "stage": CATALOG, "error": str(exc)}

        log_section_end(logger, "catalog refresh")
        await self._emit(CATALOG, "completed", updated_at=updated_at, shows=count)
        if cancelled:
            raise asyncio.CancelledError()
        return {
            "status": "completed",
            "mirror": download.mirror,
            "attempts": download.attempts,
            "compressed_bytes": download.compressed_bytes,
            "decoded_bytes": len(download.decoded),
            "shows": count,
            "updated_at": updated_at.isoformat(),
        }

    async def _swap_snapshot(self, shows, updated_at: datetime) -> tuple[int, bool]:
        """
        Store the snapshot and its timestamp in one transaction.

        Once started, the swap is not interrupted: a cancellation arriving
        meanwhile waits for it to settle and is reported back to the caller.

        Returns:
            Number of stored shows and whether a cancellation was deferred
        """
        swap = asyncio.ensure_future(self._store.replace_all(shows, updated_at=updated_at))
        cancelled = False
        while True:
            try:
                return await asyncio.shield(swap), cancelled
            except asyncio.CancelledError:
                if swap.cancelled():
                    raise
                if not cancelled:
                    logger.warning("Cancellation requested while storing the catalog; finishing the swap first")
                cancelled = True
            except Exception:
                # Rolled back; the abort wins over the storage error
                if cancelled:
                    raise asyncio.CancelledError()
                raise

    async def _emit(self, stage: str, kind: str, **details) -> None:
        event = SyncEvent(stage=stage, kind=kind, **details)
        self.last_events[stage] = event
        await self.events.emit(event)
