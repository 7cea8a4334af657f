"""
Catalog store

Persists the current catalog snapshot and answers the sorted, filtered id
queries the index view is built from. A snapshot is replaced inside a single
transaction, so readers see either the previous or the new catalog in full.
"""
import logging
from collections.abc import Sequence
from datetime import datetime, timedelta
from time import perf_counter

from sqlalchemy import delete, distinct, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mediathek.database import session_scope
from mediathek.exceptions import NotFoundError
from mediathek.models import ShowRecord
from mediathek.services.catalog_types import ANY, Filter, Show, SortKey, SortOrder
from mediathek.services.sync_state_service import CATALOG, set_updated_on


logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    SortKey.CHANNEL: ShowRecord.channel,
    SortKey.TOPIC: ShowRecord.topic,
    SortKey.TITLE: ShowRecord.title,
    SortKey.DATE: ShowRecord.date,
    SortKey.TIME: ShowRecord.time,
    SortKey.DURATION: ShowRecord.duration,
}


class CatalogStore:
    """SQLite-backed index of the current catalog snapshot."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        chunk_size: int = 10000,
    ) -> None:
        self._session_factory = session_factory
        self._chunk_size = max(1, chunk_size)

    async def replace_all(self, shows: Sequence[Show], *, updated_at: datetime | None = None) -> int:
        """
        Swap in a new snapshot, assigning fresh identifiers.

        Args:
            shows: Shows of the new snapshot in catalog order
            updated_at: Catalog update time, committed together with the snapshot

        Returns:
            Number of stored shows
        """
        total = len(shows)
        logger.info("Replacing catalog snapshot with %s shows", total)
        started = perf_counter()

        async with session_scope(self._session_factory) as session:
            result = await session.execute(delete(ShowRecord))
            logger.debug("Removed %s shows of the previous snapshot", result.rowcount)

            chunk_number = 0
            for start_index in range(0, total, self._chunk_size):
                chunk_number += 1
                chunk = shows[start_index:start_index + self._chunk_size]
                await session.execute(insert(ShowRecord), [_to_row(show) for show in chunk])
                logger.debug("Chunk %s staged: %s shows", chunk_number, len(chunk))

            if updated_at is not None:
                await set_updated_on(session, CATALOG, updated_at)

        logger.info(
            "Catalog snapshot replaced: %s shows in %.2fs",
            total,
            perf_counter() - started,
        )
        return total

    async def query_ids(
        self,
        show_filter: Filter = Filter(),
        sort_key: SortKey = SortKey.CHANNEL,
        sort_order: SortOrder = SortOrder.ASCENDING,
    ) -> list[int]:
        """
        Return the ids of all matching shows in sort order.

        Equal sort keys are ordered by id in the same direction, so the
        descending sequence is the exact reverse of the ascending one.
        """
        column = _SORT_COLUMNS[SortKey(sort_key)]
        stmt = select(ShowRecord.id)

        if show_filter.channel != ANY:
            stmt = stmt.where(ShowRecord.channel == show_filter.channel)
        if show_filter.topic != ANY:
            stmt = stmt.where(ShowRecord.topic == show_filter.topic)
        if show_filter.title:
            stmt = stmt.where(ShowRecord.title.contains(show_filter.title, autoescape=True))

        if SortOrder(sort_order) == SortOrder.DESCENDING:
            stmt = stmt.order_by(column.desc(), ShowRecord.id.desc())
        else:
            stmt = stmt.order_by(column.asc(), ShowRecord.id.asc())

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            ids = list(result.scalars().all())

        logger.debug(
            "Queried %s ids (filter=%s, sort=%s %s)",
            len(ids),
            show_filter,
            sort_key,
            sort_order,
        )
        return ids

    async def fetch(self, identifier: int) -> Show:
        """
        Load one show of the current snapshot.

        Raises:
            NotFoundError: If the identifier is not part of the current snapshot
        """
        async with self._session_factory() as session:
            record = await session.get(ShowRecord, identifier)
            if record is None:
                raise NotFoundError(identifier)
            return _to_show(record)

    async def distinct_channels(self) -> list[str]:
        """Sorted channel names, led by the empty "any" entry"""
        stmt = select(distinct(ShowRecord.channel)).order_by(ShowRecord.channel)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            channels = [channel for channel in result.scalars().all() if channel]
        return [ANY, *channels]

    async def distinct_topics(self, channel: str = ANY) -> list[str]:
        """Sorted topic names of a channel (or of all channels), led by "any" """
        stmt = select(distinct(ShowRecord.topic)).order_by(ShowRecord.topic)
        if channel != ANY:
            stmt = stmt.where(ShowRecord.channel == channel)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            topics = [topic for topic in result.scalars().all() if topic]
        return [ANY, *topics]

    async def count(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(select(func.count(ShowRecord.id)))
            return result.scalar_one()


def _to_row(show: Show) -> dict[str, object]:
    return {
        "channel": show.channel,
        "topic": show.topic,
        "title": show.title,
        "date": show.date,
        "time": show.time,
        "duration": int(show.duration.total_seconds()),
        "description": show.description,
        "website": show.website,
        "url": show.url,
        "url_small": show.url_small,
        "url_large": show.url_large,
    }


def _to_show(record: ShowRecord) -> Show:
    return Show(
        id=record.id,
        channel=record.channel,
        topic=record.topic,
        title=record.title,
        date=record.date,
        time=record.time,
        duration=timedelta(seconds=record.duration),
        description=record.description,
        website=record.website,
        url=record.url,
        url_small=record.url_small,
        url_large=record.url_large,
    )
