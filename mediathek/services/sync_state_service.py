"""
Persisted sync state

Mirror list and last successful update timestamps, kept in the catalog
database next to the snapshot they describe.
"""
import logging
from collections.abc import Sequence
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from mediathek.models import MirrorRecord, SyncMarker


logger = logging.getLogger(__name__)

MIRROR_LIST = "mirror_list"
CATALOG = "catalog"


async def load_mirror_list(db: AsyncSession) -> list[str]:
    result = await db.execute(select(MirrorRecord.url).order_by(MirrorRecord.url))
    return list(result.scalars().all())


async def replace_mirror_list(db: AsyncSession, urls: Sequence[str], updated_at: datetime) -> None:
    """
    Replace the stored mirror list and its timestamp.

    Args:
        db: Database session (caller owns the transaction)
        urls: New mirror URLs
        updated_at: Time of the successful refresh
    """
    await db.execute(delete(MirrorRecord))
    db.add_all(MirrorRecord(url=url) for url in dict.fromkeys(urls))
    await set_updated_on(db, MIRROR_LIST, updated_at)
    logger.info("Stored %s mirrors", len(set(urls)))


async def get_updated_on(db: AsyncSession, name: str) -> datetime | None:
    """Timestamp of the last successful update of a stage, in UTC"""
    marker = await db.get(SyncMarker, name)
    if marker is None:
        return None
    updated_at = marker.updated_at
    # SQLite drops the offset; values are always written as UTC
    if updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=timezone.utc)
    return updated_at


async def set_updated_on(db: AsyncSession, name: str, updated_at: datetime) -> None:
    await db.merge(SyncMarker(name=name, updated_at=updated_at.astimezone(timezone.utc)))
    logger.debug("Marked %s as updated at %s", name, updated_at.isoformat())
