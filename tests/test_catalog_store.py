"""Tests for the persisted catalog index."""
import asyncio
import dataclasses
from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from mediathek.database import session_scope
from mediathek.exceptions import NotFoundError
from mediathek.services.catalog_parser_service import parse_catalog
from mediathek.services.catalog_store import CatalogStore
from mediathek.services.catalog_types import ANY, Filter, SortKey, SortOrder
from mediathek.services.sync_state_service import CATALOG, get_updated_on
from tests.factories import catalog_document, record, sample_shows, show

pytestmark = pytest.mark.anyio

FILTERS = [
    Filter(),
    Filter(channel="ARD"),
    Filter(channel="ZDF", topic="heute"),
    Filter(topic="Tagesschau"),
    Filter(title="heute"),
    Filter(channel="3Sat", title="Kultur"),
    Filter(channel="nobody"),
]


async def test_empty_filter_returns_every_imported_show(store: CatalogStore) -> None:
    parsed = parse_catalog(catalog_document([
        record(channel="ARD", title="a"),
        record(channel="", topic="", title="b"),
        record(channel="ZDF", topic="heute", title="c"),
        record(channel="ZDF", topic="heute", title="c"),
    ]))

    stored = await store.replace_all(parsed)
    ids = await store.query_ids(Filter(), SortKey.TITLE, SortOrder.ASCENDING)

    assert stored == len(parsed) == 4
    assert len(ids) == len(set(ids)) == 4
    assert await store.count() == 4


@pytest.mark.parametrize("sort_key", list(SortKey))
async def test_descending_is_the_exact_reverse_of_ascending(store: CatalogStore, sort_key: SortKey) -> None:
    await store.replace_all(sample_shows())

    for show_filter in FILTERS:
        ascending = await store.query_ids(show_filter, sort_key, SortOrder.ASCENDING)
        descending = await store.query_ids(show_filter, sort_key, SortOrder.DESCENDING)
        assert descending == list(reversed(ascending))


async def test_results_are_sorted_by_the_requested_column(store: CatalogStore) -> None:
    await store.replace_all(sample_shows())

    ids = await store.query_ids(Filter(), SortKey.DURATION, SortOrder.ASCENDING)
    durations = [(await store.fetch(identifier)).duration for identifier in ids]
    assert durations == sorted(durations)

    ids = await store.query_ids(Filter(), SortKey.DATE, SortOrder.DESCENDING)
    dates = [(await store.fetch(identifier)).date for identifier in ids]
    assert dates == sorted(dates, reverse=True)

    ids = await store.query_ids(Filter(), SortKey.TIME, SortOrder.ASCENDING)
    times = [(await store.fetch(identifier)).time for identifier in ids]
    assert times == sorted(times)


async def test_filters_match_channel_topic_and_title(store: CatalogStore) -> None:
    await store.replace_all(sample_shows())

    async def titles(show_filter: Filter) -> set[str]:
        ids = await store.query_ids(show_filter, SortKey.TITLE, SortOrder.ASCENDING)
        return {(await store.fetch(identifier)).title for identifier in ids}

    assert await titles(Filter(channel="ARD")) == {"Tagesschau 20:00", "Tagesschau 12:00", "Bundesliga"}
    assert await titles(Filter(channel="ZDF", topic="heute")) == {"heute 19:00", "heute journal"}
    assert await titles(Filter(title="journal")) == {"heute journal"}
    assert await titles(Filter(title="50%")) == {"Rabatt 50% auf Pyramiden"}
    assert await titles(Filter(title="%")) == {"Rabatt 50% auf Pyramiden"}
    assert await titles(Filter(channel="ARD", title="heute")) == set()


async def test_fetch_returns_the_stored_record(store: CatalogStore) -> None:
    original = show("ARD", "Tagesschau", "Mit Links", url="http://a/b.mp4", url_small="http://a/s.mp4")
    await store.replace_all([original])

    (identifier,) = await store.query_ids()
    fetched = await store.fetch(identifier)

    assert fetched.id == identifier
    assert fetched.title == "Mit Links"
    assert fetched.date == original.date
    assert fetched.time == original.time
    assert fetched.duration == original.duration
    assert fetched.url_small == "http://a/s.mp4"
    assert fetched.url_large == ""


async def test_replacing_the_snapshot_invalidates_previous_ids(store: CatalogStore) -> None:
    await store.replace_all(sample_shows())
    old_ids = await store.query_ids()

    await store.replace_all(sample_shows()[:3])
    new_ids = await store.query_ids()

    assert len(new_ids) == 3
    assert not set(old_ids) & set(new_ids)
    for identifier in new_ids:
        await store.fetch(identifier)
    for identifier in old_ids:
        with pytest.raises(NotFoundError):
            await store.fetch(identifier)


async def test_distinct_channels_and_topics_lead_with_any(store: CatalogStore) -> None:
    assert await store.distinct_channels() == [ANY]

    await store.replace_all(sample_shows())

    assert await store.distinct_channels() == [ANY, "3Sat", "ARD", "ZDF"]
    assert await store.distinct_topics("ZDF") == [ANY, "Terra X", "heute"]
    assert await store.distinct_topics(ANY) == [
        ANY, "Kulturzeit", "Sportschau", "Tagesschau", "Terra X", "heute", "nano",
    ]


async def test_readers_see_either_snapshot_in_full(store: CatalogStore) -> None:
    await store.replace_all(sample_shows())
    before = await store.query_ids()
    replacement = [show("ZDF", "heute", f"Sendung {index}") for index in range(40)]

    done = asyncio.Event()
    observed: list[list[int]] = []

    async def read_until_replaced() -> None:
        while not done.is_set():
            observed.append(await store.query_ids())
            await asyncio.sleep(0)

    async def replace() -> None:
        try:
            await store.replace_all(replacement)
        finally:
            done.set()

    await asyncio.gather(read_until_replaced(), replace())
    after = await store.query_ids()

    assert len(after) == 40
    assert observed
    assert all(ids == before or ids == after for ids in observed)


async def test_update_time_is_stored_with_the_snapshot(store: CatalogStore, session_factory) -> None:
    updated_at = datetime(2025, 3, 17, 12, 30, tzinfo=timezone.utc)

    await store.replace_all(sample_shows(), updated_at=updated_at)

    async with session_scope(session_factory) as session:
        assert await get_updated_on(session, CATALOG) == updated_at


async def test_failed_replacement_keeps_snapshot_and_update_time(store: CatalogStore, session_factory) -> None:
    await store.replace_all(sample_shows())
    before = await store.query_ids()

    broken = [show(title=f"Sendung {index}") for index in range(5)]
    broken.append(dataclasses.replace(show(), title=None))

    with pytest.raises(IntegrityError):
        await store.replace_all(broken, updated_at=datetime(2025, 3, 17, tzinfo=timezone.utc))

    assert await store.query_ids() == before
    async with session_scope(session_factory) as session:
        assert await get_updated_on(session, CATALOG) is None
