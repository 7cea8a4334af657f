"""
Catalog parsing

Turns the decoded Filmliste document into Show records. The document is a
JSON object whose keys repeat: a "Filmliste" header (plus an optional second
"Filmliste" entry naming the columns) followed by one "X" array per show.
"""
import asyncio
import json
import logging
from datetime import date, time, timedelta
from typing import Any, Optional

from mediathek.exceptions import MalformedCatalogError
from mediathek.services.catalog_types import Show


logger = logging.getLogger(__name__)

ROOT_KEY = "Filmliste"
RECORD_KEY = "X"

# Positions inside an "X" record
CHANNEL = 0
TOPIC = 1
TITLE = 2
DATE = 3
TIME = 4
DURATION = 5
DESCRIPTION = 7
URL = 8
WEBSITE = 9
URL_SMALL = 12
URL_LARGE = 14

MIN_FIELDS = URL_LARGE + 1

EMPTY_DATE = date(1, 1, 1)


class MalformedRecordError(ValueError):
    """Raised for a single record that cannot be converted"""
    pass


def parse_catalog(data: bytes | bytearray) -> list[Show]:
    """
    Parse a decoded catalog document.

    Args:
        data: Decoded catalog bytes (UTF-8 JSON)

    Returns:
        Shows in document order

    Raises:
        MalformedCatalogError: If the document is not a catalog
    """
    logger.debug("Parsing catalog document (%.2f MB)", len(data) / 1024 / 1024)

    try:
        pairs = json.loads(data, object_pairs_hook=_keep_pairs)
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedCatalogError(f"Received a malformed catalog: {exc}") from exc

    if not isinstance(pairs, _Pairs) or not pairs or pairs[0][0] != ROOT_KEY:
        raise MalformedCatalogError(
            f"Received a malformed catalog: root must start with '{ROOT_KEY}'"
        )

    shows: list[Show] = []
    skipped = 0
    previous: Optional[Show] = None

    for index, (key, value) in enumerate(pairs):
        if key != RECORD_KEY:
            continue

        try:
            show = _parse_record(value, previous)
        except MalformedRecordError as exc:
            skipped += 1
            logger.debug("Skipping malformed record at position %s: %s", index, exc)
            continue

        shows.append(show)
        previous = show

    if skipped:
        logger.warning("Skipped %s malformed catalog record(s)", skipped)

    logger.info("Catalog parsing complete: %s shows", len(shows))

    return shows


async def parse_catalog_async(data: bytes | bytearray, *, timeout_seconds: int | None = None) -> list[Show]:
    """
    Parse the catalog in the default thread pool executor.

    Keyword Args:
        timeout_seconds: Timeout in seconds for parsing (0/None disables timeout)

    Raises:
        MalformedCatalogError: If the document is malformed or parsing times out
    """
    effective_timeout = timeout_seconds if timeout_seconds and timeout_seconds > 0 else None

    loop = asyncio.get_running_loop()
    parse_task = loop.run_in_executor(None, parse_catalog, data)
    try:
        if effective_timeout:
            return await asyncio.wait_for(parse_task, timeout=effective_timeout)
        return await parse_task
    except asyncio.TimeoutError:
        logger.error("Catalog parsing timed out after %ss", effective_timeout)
        raise MalformedCatalogError("Catalog parsing timed out - document may be malformed")


class _Pairs(list):
    """Object decoded with its duplicate keys kept in order"""
    pass


def _keep_pairs(pairs: list[tuple[str, Any]]) -> _Pairs:
    return _Pairs(pairs)


def _parse_record(fields: Any, previous: Optional[Show]) -> Show:
    if not isinstance(fields, list) or len(fields) < MIN_FIELDS:
        raise MalformedRecordError("record is not a list of enough fields")
    if not all(isinstance(field, str) for field in fields[:MIN_FIELDS]):
        raise MalformedRecordError("record contains non-text fields")

    # An empty channel or topic continues the previous record's value.
    channel = fields[CHANNEL] or (previous.channel if previous else "")
    topic = fields[TOPIC] or (previous.topic if previous else "")

    url = fields[URL]

    return Show(
        channel=channel,
        topic=topic,
        title=fields[TITLE],
        date=parse_date(fields[DATE]),
        time=parse_time(fields[TIME]),
        duration=parse_duration(fields[DURATION]),
        description=fields[DESCRIPTION],
        website=fields[WEBSITE],
        url=url,
        url_small=expand_url_suffix(url, fields[URL_SMALL]),
        url_large=expand_url_suffix(url, fields[URL_LARGE]),
    )


def parse_date(value: str) -> date:
    """Parse 'dd.mm.yyyy'; empty values map to 0001-01-01."""
    if not value:
        return EMPTY_DATE
    try:
        day, month, year = (int(part) for part in value.split("."))
        return date(year, month, day)
    except ValueError as exc:
        raise MalformedRecordError(f"invalid date '{value}'") from exc


def _split_clock(value: str) -> tuple[int, int, int]:
    try:
        hours, minutes, seconds = (int(part) for part in value.split(":"))
    except ValueError as exc:
        raise MalformedRecordError(f"invalid time '{value}'") from exc
    if min(hours, minutes, seconds) < 0 or minutes > 59 or seconds > 59:
        raise MalformedRecordError(f"invalid time '{value}'")
    return hours, minutes, seconds


def parse_time(value: str) -> time:
    """Parse 'hh:mm:ss'; empty values map to midnight."""
    if not value:
        return time(0, 0, 0)
    hours, minutes, seconds = _split_clock(value)
    if hours > 23:
        raise MalformedRecordError(f"invalid time '{value}'")
    return time(hours, minutes, seconds)


def parse_duration(value: str) -> timedelta:
    """Parse 'hh:mm:ss' as elapsed time; empty values map to zero."""
    if not value:
        return timedelta()
    hours, minutes, seconds = _split_clock(value)
    return timedelta(hours=hours, minutes=minutes, seconds=seconds)


def expand_url_suffix(url: str, field: str) -> str:
    """
    Expand an alternative-quality URL stored relative to the default URL.

    '<n>|<suffix>' keeps the first n characters of the default URL, anything
    else is appended to the full default URL. Empty stays empty.
    """
    if not field:
        return ""

    prefix_length, separator, suffix = field.partition("|")
    if not separator:
        return url + field

    try:
        length = int(prefix_length)
    except ValueError as exc:
        raise MalformedRecordError(f"invalid URL suffix '{field}'") from exc
    if length < 0 or length > len(url):
        raise MalformedRecordError(f"URL suffix '{field}' exceeds the default URL")

    return url[:length] + suffix
