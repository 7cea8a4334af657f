"""
Shared types used across the catalog sync and query pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum


# Empty channel/topic selects everything.
ANY = ""


@dataclass(frozen=True, slots=True)
class Show:
    """One broadcast media entry of the catalog."""
    channel: str
    topic: str
    title: str
    date: date
    time: time
    duration: timedelta
    description: str = ""
    website: str = ""
    url: str = ""
    url_small: str = ""
    url_large: str = ""
    id: int | None = None


class SortKey(str, Enum):
    CHANNEL = "channel"
    TOPIC = "topic"
    TITLE = "title"
    DATE = "date"
    TIME = "time"
    DURATION = "duration"


class SortOrder(str, Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"


class ShowField(str, Enum):
    """Field identifiers for per-field lookups on a Show."""
    ID = "id"
    CHANNEL = "channel"
    TOPIC = "topic"
    TITLE = "title"
    DATE = "date"
    TIME = "time"
    DURATION = "duration"
    DESCRIPTION = "description"
    WEBSITE = "website"
    URL = "url"
    URL_SMALL = "url_small"
    URL_LARGE = "url_large"

    def value_of(self, show: Show):
        return getattr(show, self.value)


class UrlQuality(str, Enum):
    DEFAULT = "default"
    SMALL = "small"
    LARGE = "large"


@dataclass(frozen=True, slots=True)
class Filter:
    """Channel and topic match exactly, title by substring; empty means any."""
    channel: str = ANY
    topic: str = ANY
    title: str = ""


@dataclass(frozen=True, slots=True)
class SyncEvent:
    """Lifecycle event of a refresh stage."""
    stage: str  # "mirror_list" | "catalog"
    kind: str  # "started" | "completed" | "failed" | "skipped"
    reason: str | None = None
    updated_at: datetime | None = None
    shows: int | None = None


@dataclass(frozen=True, slots=True)
class ViewEvent:
    """Row change notification from the index view."""
    kind: str  # "reset" | "rows_inserted"
    first: int = 0
    last: int = -1


def preferred_url(show: Show, preference: UrlQuality = UrlQuality.DEFAULT) -> str:
    """Return the preferred playback URL, falling back to the other qualities."""
    if preference == UrlQuality.SMALL:
        candidates = (show.url_small, show.url, show.url_large)
    elif preference == UrlQuality.LARGE:
        candidates = (show.url_large, show.url, show.url_small)
    else:
        candidates = (show.url, show.url_small, show.url_large)

    for url in candidates:
        if url:
            return url
    return ""


__all__ = [
    "ANY",
    "Filter",
    "Show",
    "ShowField",
    "SortKey",
    "SortOrder",
    "SyncEvent",
    "UrlQuality",
    "ViewEvent",
    "preferred_url",
]
