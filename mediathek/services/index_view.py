"""
Lazy index view

Query-facing façade over the catalog store. It holds the ordered ids of the
current filter and sort, exposes only a prefix of them that grows page by
page, and resolves rows through a bounded LRU cache of full records.
"""
import asyncio
import logging
from collections import OrderedDict

from mediathek.exceptions import NotFoundError
from mediathek.services.catalog_store import CatalogStore
from mediathek.services.catalog_types import (
    ANY,
    Filter,
    Show,
    ShowField,
    SortKey,
    SortOrder,
    SyncEvent,
    ViewEvent,
)
from mediathek.services.events import EventEmitter


logger = logging.getLogger(__name__)

PAGE_SIZE = 256
CACHE_SIZE = 1024


class ShowCache:
    """Least-recently-used cache of shows keyed by id."""

    def __init__(self, capacity: int = CACHE_SIZE):
        if capacity <= 0:
            raise ValueError("Cache capacity must be > 0")
        self._capacity = capacity
        self._entries: OrderedDict[int, Show] = OrderedDict()

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, identifier: int) -> Show | None:
        show = self._entries.get(identifier)
        if show is not None:
            self._entries.move_to_end(identifier)
        return show

    def put(self, identifier: int, show: Show) -> None:
        self._entries[identifier] = show
        self._entries.move_to_end(identifier)
        while len(self._entries) > self._capacity:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, identifier: int) -> bool:
        return identifier in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class LazyIndexView:
    """
    Virtualized, sortable and filterable list of shows.

    Listeners on `events` receive a "reset" event whenever the id sequence is
    rebuilt and a "rows_inserted" event whenever the fetched prefix grows.
    """

    def __init__(
        self,
        store: CatalogStore,
        *,
        page_size: int = PAGE_SIZE,
        cache_size: int = CACHE_SIZE,
    ) -> None:
        if page_size <= 0:
            raise ValueError("Page size must be > 0")
        self._store = store
        self._page_size = page_size
        self._cache = ShowCache(cache_size)
        # A refresh must not be overwritten by a rebuild that queried the previous snapshot
        self._rebuild_lock = asyncio.Lock()

        self._filter = Filter()
        self._sort_key = SortKey.CHANNEL
        self._sort_order = SortOrder.ASCENDING

        self._ids: list[int] = []
        self._fetched = 0
        self._channels: list[str] = [ANY]
        self._topics: list[str] = [ANY]

        self.events: EventEmitter[ViewEvent] = EventEmitter("view")

    @property
    def filter(self) -> Filter:
        return self._filter

    @property
    def sort_key(self) -> SortKey:
        return self._sort_key

    @property
    def sort_order(self) -> SortOrder:
        return self._sort_order

    @property
    def cache(self) -> ShowCache:
        return self._cache

    async def set_filter_and_sort(
        self,
        show_filter: Filter,
        sort_key: SortKey = SortKey.CHANNEL,
        sort_order: SortOrder = SortOrder.ASCENDING,
    ) -> bool:
        """
        Apply a new filter and sort.

        Returns:
            False if nothing changed, True if the view was rebuilt
        """
        sort_key = SortKey(sort_key)
        sort_order = SortOrder(sort_order)

        async with self._rebuild_lock:
            if (
                show_filter == self._filter
                and sort_key == self._sort_key
                and sort_order == self._sort_order
            ):
                return False

            channel_changed = show_filter.channel != self._filter.channel

            ids = await self._store.query_ids(show_filter, sort_key, sort_order)
            topics = await self._store.distinct_topics(show_filter.channel) if channel_changed else self._topics

            self._filter = show_filter
            self._sort_key = sort_key
            self._sort_order = sort_order
            self._ids = ids
            self._topics = topics
            self._fetched = 0

        logger.debug("View rebuilt: %s matching shows", len(ids))
        await self.events.emit(ViewEvent(kind="reset"))
        return True

    async def refresh(self) -> None:
        """Rebuild everything from the current snapshot."""
        async with self._rebuild_lock:
            ids = await self._store.query_ids(self._filter, self._sort_key, self._sort_order)
            channels = await self._store.distinct_channels()
            topics = await self._store.distinct_topics(self._filter.channel)

            self._ids = ids
            self._channels = channels
            self._topics = topics
            self._fetched = 0
            self._cache.clear()

        logger.info("View refreshed: %s matching shows, %s channels", len(ids), len(channels) - 1)
        await self.events.emit(ViewEvent(kind="reset"))

    def row_count(self) -> int:
        return self._fetched

    def total_count(self) -> int:
        return len(self._ids)

    def can_fetch_more(self) -> bool:
        return self._fetched < len(self._ids)

    async def fetch_more(self) -> int:
        """
        Grow the fetched prefix by one page.

        Returns:
            Number of rows added (0 once everything is fetched)
        """
        fetch = min(self._page_size, len(self._ids) - self._fetched)
        if fetch <= 0:
            return 0

        first = self._fetched
        self._fetched += fetch

        await self.events.emit(ViewEvent(kind="rows_inserted", first=first, last=first + fetch - 1))
        return fetch

    def id_at(self, row: int) -> int | None:
        if row < 0 or row >= self._fetched:
            return None
        return self._ids[row]

    async def show_at(self, row: int) -> Show | None:
        """The show at a fetched row; None outside the prefix or for stale ids"""
        identifier = self.id_at(row)
        if identifier is None:
            return None

        show = self._cache.get(identifier)
        if show is not None:
            return show

        try:
            show = await self._store.fetch(identifier)
        except NotFoundError:
            # The snapshot was replaced under us; the refresh will follow.
            logger.debug("Show %s vanished with the previous snapshot", identifier)
            return None

        self._cache.put(identifier, show)
        return show

    async def field_at(self, row: int, field: ShowField):
        show = await self.show_at(row)
        if show is None:
            return None
        return ShowField(field).value_of(show)

    def channels(self) -> list[str]:
        return list(self._channels)

    def topics(self) -> list[str]:
        return list(self._topics)

    async def on_sync_event(self, event: SyncEvent) -> None:
        if event.stage == "catalog" and event.kind == "completed":
            await self.refresh()
