import datetime as dt

from pydantic import BaseModel, Field

from mediathek.services.catalog_types import Show


class ShowResponse(BaseModel):
    """Full show record"""
    id: int = Field(..., description="Identifier, valid until the next catalog refresh")
    channel: str
    topic: str
    title: str
    date: dt.date
    time: dt.time
    duration_seconds: int = Field(..., description="Duration in seconds")
    description: str
    website: str
    url: str
    url_small: str
    url_large: str

    @classmethod
    def from_show(cls, show: Show) -> "ShowResponse":
        return cls(
            id=show.id,
            channel=show.channel,
            topic=show.topic,
            title=show.title,
            date=show.date,
            time=show.time,
            duration_seconds=int(show.duration.total_seconds()),
            description=show.description,
            website=show.website,
            url=show.url,
            url_small=show.url_small,
            url_large=show.url_large,
        )


class ShowRow(BaseModel):
    """One row of the show table"""
    row: int
    id: int
    channel: str
    topic: str
    title: str
    date: str = Field(..., description="Date as dd.MM.yy")
    time: str = Field(..., description="Time as hh:mm")
    duration: str = Field(..., description="Duration as hh:mm:ss")

    @classmethod
    def from_show(cls, row: int, show: Show) -> "ShowRow":
        total = int(show.duration.total_seconds())
        return cls(
            row=row,
            id=show.id,
            channel=show.channel,
            topic=show.topic,
            title=show.title,
            date=show.date.strftime("%d.%m.%y"),
            time=show.time.strftime("%H:%M"),
            duration=f"{total // 3600:02d}:{total % 3600 // 60:02d}:{total % 60:02d}",
        )


class ShowPage(BaseModel):
    """Window of the show table"""
    offset: int
    limit: int
    fetched: int = Field(..., description="Rows materialized by the view so far")
    total: int = Field(..., description="Rows matching the current filter")
    rows: list[ShowRow]


class PlaybackUrlResponse(BaseModel):
    id: int
    quality: str
    url: str


class SyncEventResponse(BaseModel):
    stage: str
    kind: str
    reason: str | None = None
    updated_at: dt.datetime | None = None
    shows: int | None = None


class SyncStatusResponse(BaseModel):
    phase: str
    syncing: bool
    mirror_list: SyncEventResponse | None = None
    catalog: SyncEventResponse | None = None


class ErrorDetail(BaseModel):
    """Standard error detail"""
    code: str = Field(..., description="Error code (e.g., 'SYNC_FAILED', 'VALIDATION_ERROR')")
    message: str = Field(..., description="Human-readable error message")
    context: dict | None = Field(None, description="Additional context about the error")
