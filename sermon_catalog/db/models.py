"""
SQLAlchemy ORM models for the sermon catalog.

Models:
    CatalogEntry: One real-world episode, merged from the feed and the video platform
    EntrySource: Which source contributed which identifier to an entry
    TranscriptionQueueItem: Scheduled transcription, one row per queued entry
    TimestampMixin: Automatic created_at/updated_at timestamps

Enums:
    TranscriptionStatus: Transcription state machine of an entry
    SourceType: Origin of a source row / transcript
    QueueItemStatus: State of a queue item
"""

from enum import Enum as PyEnum
from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class TimestampMixin:
    """
    Mixin adding database-managed timestamps.

    created_at is set on insert, updated_at on every update (func.now()).
    """

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )


class TranscriptionStatus(str, PyEnum):
    """
    Transcription state of a catalog entry.

    PENDING -> GENERATING -> COMPLETED | FAILED
    GENERATING -> FAILED is also reached by cancellation.
    """

    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


class SourceType(str, PyEnum):
    FEED = "feed"
    VIDEO = "video"
    GENERATED = "generated"


class CatalogEntry(Base, TimestampMixin):
    """
    Durable record of one episode.

    Attributes:
        id: Primary key (UUID7 string), assigned on first insert
        title: Display title (feed title preferred)
        date: Publication date
        description: Longest description seen across sources
        feed_url: Canonical URL of the feed episode (source A)
        video_url: Watch URL of the video (source B)
        video_id: External id of the video, used for lookup
        media_url: Asset used for transcription (feed enclosure or manual override)
        status: TranscriptionStatus
        error_message: Last failure message, shown verbatim
        transcript: Final transcript (non-empty when COMPLETED)
        transcript_source: Where the transcript came from (SourceType value)
        transcript_generated_at: When the transcript was saved
        progress_json: Serialized ProgressRecord, NULL when no run is in flight
        progress_revision: Optimistic counter bumped on every progress write
    """

    __tablename__ = "catalog_entries"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    date = Column(DateTime, nullable=True)
    description = Column(Text, nullable=True)

    feed_url = Column(String, nullable=True, index=True)
    video_url = Column(String, nullable=True)
    video_id = Column(String, nullable=True, index=True)
    media_url = Column(String, nullable=True)

    status = Column(
        Enum(TranscriptionStatus),
        nullable=False,
        default=TranscriptionStatus.PENDING,
        server_default="PENDING",
    )
    error_message = Column(Text, nullable=True)
    transcript = Column(Text, nullable=True)
    transcript_source = Column(String, nullable=True)
    transcript_generated_at = Column(DateTime, nullable=True)

    progress_json = Column(Text, nullable=True)
    progress_revision = Column(Integer, nullable=False, default=0, server_default="0")

    def __repr__(self):
        return (
            f"<CatalogEntry(id={self.id}, title='{self.title}', date='{self.date}', "
            f"status={self.status.value if self.status else None})>"
        )


class EntrySource(Base, TimestampMixin):
    """Source identifiers attached to an entry, one row per (entry, source)."""

    __tablename__ = "entry_sources"
    __table_args__ = (
        UniqueConstraint("entry_id", "source_type", "source_id", name="uq_entry_source"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    entry_id = Column(
        String, ForeignKey("catalog_entries.id", ondelete="CASCADE"), nullable=False
    )
    source_type = Column(String, nullable=False)
    source_url = Column(String, nullable=True)
    source_id = Column(String, nullable=False)

    def __repr__(self):
        return f"<EntrySource(entry_id={self.entry_id}, {self.source_type}:{self.source_id})>"


class QueueItemStatus(str, PyEnum):
    """
    State of a transcription queue item.

    QUEUED -> PROCESSING -> COMPLETED | FAILED
    QUEUED items are removed on cancel; PROCESSING items become CANCELLED.
    """

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TranscriptionQueueItem(Base, TimestampMixin):
    """
    One entry waiting for (or going through) scheduled transcription.

    Attributes:
        entry_id: Queued catalog entry; at most one queue row per entry
        position: 1 is next to process; renumbered when items leave the queue
        started_at: When the item was claimed for processing
        completed_at: When the item reached a final state
    """

    __tablename__ = "transcription_queue"

    id = Column(String, primary_key=True)
    entry_id = Column(
        String,
        ForeignKey("catalog_entries.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    status = Column(
        Enum(QueueItemStatus),
        nullable=False,
        default=QueueItemStatus.QUEUED,
        server_default="QUEUED",
        index=True,
    )
    position = Column(Integer, nullable=False, index=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)

    def __repr__(self):
        return (
            f"<TranscriptionQueueItem(entry_id={self.entry_id}, position={self.position}, "
            f"status={self.status.value if self.status else None})>"
        )
