"""
SQLAlchemy ORM Models for the catalog service

This module defines the database models for shows, mirrors and sync markers.
"""
import datetime as dt
from sqlalchemy import Date, DateTime, Index, Integer, String, Text, Time
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models"""
    pass


class ShowRecord(Base):
    """One show of the current catalog snapshot"""
    __tablename__ = "shows"

    # AUTOINCREMENT keeps identifiers of replaced snapshots from being reused
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    channel: Mapped[str] = mapped_column(String, nullable=False)
    topic: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)  # seconds
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    website: Mapped[str] = mapped_column(String, nullable=False, default="")
    url: Mapped[str] = mapped_column(String, nullable=False, default="")
    url_small: Mapped[str] = mapped_column(String, nullable=False, default="")
    url_large: Mapped[str] = mapped_column(String, nullable=False, default="")

    __table_args__ = (
        Index("idx_shows_channel", "channel"),
        Index("idx_shows_topic", "topic"),
        Index("idx_shows_channel_topic", "channel", "topic"),
        Index("idx_shows_title", "title"),
        Index("idx_shows_date", "date"),
        Index("idx_shows_time", "time"),
        Index("idx_shows_duration", "duration"),
        {"sqlite_autoincrement": True},
    )

    def __repr__(self) -> str:
        return f"<ShowRecord(id={self.id}, channel={self.channel}, title={self.title})>"


class MirrorRecord(Base):
    """Catalog download source from the mirror list"""
    __tablename__ = "mirrors"

    url: Mapped[str] = mapped_column(String, primary_key=True)

    def __repr__(self) -> str:
        return f"<MirrorRecord(url={self.url})>"


class SyncMarker(Base):
    """Last successful update of a sync stage"""
    __tablename__ = "sync_markers"

    name: Mapped[str] = mapped_column(String, primary_key=True)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<SyncMarker(name={self.name}, updated_at={self.updated_at})>"
