"""
Row-level access to the catalog used by the reconciler, orchestrator and worker.
It also owns the transcription queue table (ordered positions, one row per
entry, conditional claims).

Progress writes are optimistic: every write of ``progress_json`` bumps
``progress_revision`` and ``write_progress`` only succeeds when the revision it
read is still current. ``mutate_progress`` wraps the read-modify-write loop.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, ContextManager, Optional

import uuid_utils as uuid
from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .database import get_db_session
from .models import (
    CatalogEntry,
    EntrySource,
    QueueItemStatus,
    TranscriptionQueueItem,
    TranscriptionStatus,
)
from sermon_catalog.errors import EntryNotFoundError, ProgressConflictError
from sermon_catalog.transcription.progress import ProgressRecord

logger = logging.getLogger("database")

MAX_PROGRESS_WRITE_ATTEMPTS = 5


class CatalogStore:
    """
    Catalog persistence collaborator.

    Returned CatalogEntry objects are detached snapshots; mutate rows through
    ``update`` / ``write_progress`` only.
    """

    def __init__(self, session_scope: Callable[[], ContextManager[Session]] = get_db_session):
        self._session_scope = session_scope

    # ------------------------------------------------------------------ reads

    def get(self, entry_id: str) -> Optional[CatalogEntry]:
        with self._session_scope() as session:
            return session.get(CatalogEntry, entry_id)

    def require(self, entry_id: str) -> CatalogEntry:
        entry = self.get(entry_id)
        if entry is None:
            raise EntryNotFoundError(f"Catalog entry {entry_id!r} not found")
        return entry

    def get_status(self, entry_id: str) -> Optional[TranscriptionStatus]:
        with self._session_scope() as session:
            row = (
                session.query(CatalogEntry.status)
                .filter(CatalogEntry.id == entry_id)
                .first()
            )
            return row[0] if row else None

    def find_by_feed_url(self, feed_url: str) -> Optional[CatalogEntry]:
        """Entry carrying this feed URL; an entry with both sources wins."""
        with self._session_scope() as session:
            return (
                session.query(CatalogEntry)
                .filter(CatalogEntry.feed_url == feed_url)
                .order_by(CatalogEntry.video_id.is_(None), CatalogEntry.created_at)
                .first()
            )

    def find_by_video_id(self, video_id: str) -> Optional[CatalogEntry]:
        """Entry carrying this video id; an entry with both sources wins."""
        with self._session_scope() as session:
            return (
                session.query(CatalogEntry)
                .filter(CatalogEntry.video_id == video_id)
                .order_by(CatalogEntry.feed_url.is_(None), CatalogEntry.created_at)
                .first()
            )

    def list_entries(
        self,
        status: Optional[TranscriptionStatus] = None,
        limit: Optional[int] = None,
    ) -> list[CatalogEntry]:
        """Entries newest first, optionally filtered by status."""
        with self._session_scope() as session:
            query = session.query(CatalogEntry).order_by(CatalogEntry.date.desc())
            if status is not None:
                query = query.filter(CatalogEntry.status == status)
            if limit:
                query = query.limit(limit)
            return query.all()

    def list_video_only(self) -> list[CatalogEntry]:
        """Entries known only from the video platform."""
        with self._session_scope() as session:
            return (
                session.query(CatalogEntry)
                .filter(
                    and_(CatalogEntry.video_id.isnot(None), CatalogEntry.feed_url.is_(None))
                )
                .order_by(CatalogEntry.date.desc())
                .all()
            )

    def list_feed_only(self) -> list[CatalogEntry]:
        """Entries known only from the podcast feed."""
        with self._session_scope() as session:
            return (
                session.query(CatalogEntry)
                .filter(
                    and_(
                        CatalogEntry.feed_url.isnot(None),
                        or_(CatalogEntry.video_id.is_(None), CatalogEntry.video_id == ""),
                    )
                )
                .order_by(CatalogEntry.date.desc())
                .all()
            )

    # ----------------------------------------------------------------- writes

    def insert(self, **fields: Any) -> CatalogEntry:
        """Insert a new entry; a UUID7 id is assigned when none is given."""
        fields.setdefault("id", str(uuid.uuid7()))
        fields.setdefault("status", TranscriptionStatus.PENDING)
        entry = CatalogEntry(**fields)
        with self._session_scope() as session:
            session.add(entry)
            session.commit()
        return entry

    def update(self, entry_id: str, **fields: Any) -> None:
        """
        Set the given columns (None writes NULL).

        Writing ``progress_json`` bumps ``progress_revision`` so concurrent
        optimistic writers notice the change.

        Raises:
            EntryNotFoundError: If no row has this id
        """
        if not fields:
            return
        if "progress_json" in fields:
            fields["progress_revision"] = CatalogEntry.progress_revision + 1
        with self._session_scope() as session:
            count = (
                session.query(CatalogEntry)
                .filter(CatalogEntry.id == entry_id)
                .update(fields, synchronize_session=False)
            )
            session.commit()
        if count == 0:
            raise EntryNotFoundError(f"Catalog entry {entry_id!r} not found")

    def add_source(
        self,
        entry_id: str,
        source_type: str,
        source_id: str,
        source_url: Optional[str] = None,
    ) -> bool:
        """Record a source identifier; returns False if it already exists."""
        with self._session_scope() as session:
            session.add(
                EntrySource(
                    entry_id=entry_id,
                    source_type=source_type,
                    source_id=source_id,
                    source_url=source_url,
                )
            )
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return False
        return True

    def list_sources(self, entry_id: str) -> list[EntrySource]:
        with self._session_scope() as session:
            return (
                session.query(EntrySource)
                .filter(EntrySource.entry_id == entry_id)
                .order_by(EntrySource.id)
                .all()
            )

    # --------------------------------------------------------------- progress

    def read_progress(self, entry_id: str) -> tuple[Optional[ProgressRecord], int]:
        """
        Returns:
            (progress record or None, current revision)

        Raises:
            EntryNotFoundError: If no row has this id
        """
        with self._session_scope() as session:
            row = (
                session.query(CatalogEntry.progress_json, CatalogEntry.progress_revision)
                .filter(CatalogEntry.id == entry_id)
                .first()
            )
        if row is None:
            raise EntryNotFoundError(f"Catalog entry {entry_id!r} not found")
        return ProgressRecord.from_json(row[0]), row[1] or 0

    def write_progress(
        self,
        entry_id: str,
        progress: Optional[ProgressRecord],
        expected_revision: int,
        **fields: Any,
    ) -> int:
        """
        Conditionally replace the progress record (and optional extra columns).

        Args:
            entry_id: Entry to update
            progress: New record, or None to clear it
            expected_revision: Revision read before modifying the record
            **fields: Extra columns written in the same statement (e.g. status)

        Returns:
            The new revision

        Raises:
            ProgressConflictError: If another writer changed the record meanwhile
            EntryNotFoundError: If no row has this id
        """
        if progress is not None:
            progress.touch()
        values = dict(fields)
        values["progress_json"] = progress.to_json() if progress is not None else None
        values["progress_revision"] = expected_revision + 1

        with self._session_scope() as session:
            count = (
                session.query(CatalogEntry)
                .filter(
                    CatalogEntry.id == entry_id,
                    CatalogEntry.progress_revision == expected_revision,
                )
                .update(values, synchronize_session=False)
            )
            session.commit()

        if count == 0:
            if self.get(entry_id) is None:
                raise EntryNotFoundError(f"Catalog entry {entry_id!r} not found")
            raise ProgressConflictError(entry_id, expected_revision)
        return expected_revision + 1

    def mutate_progress(
        self,
        entry_id: str,
        mutate: Callable[[ProgressRecord], None],
        max_attempts: int = MAX_PROGRESS_WRITE_ATTEMPTS,
        **fields: Any,
    ) -> ProgressRecord:
        """
        Read-modify-write the progress record, retrying on revision conflicts.

        ``mutate`` receives the current record (a fresh one when none exists)
        and changes it in place; it is re-applied on every retry.
        """
        for attempt in range(1, max_attempts + 1):
            progress, revision = self.read_progress(entry_id)
            if progress is None:
                progress = ProgressRecord()
            mutate(progress)
            try:
                self.write_progress(entry_id, progress, revision, **fields)
                return progress
            except ProgressConflictError:
                logger.warning(
                    f"Progress conflict on entry {entry_id} "
                    f"(attempt {attempt}/{max_attempts}), retrying"
                )
        raise ProgressConflictError(entry_id, revision)

    # ------------------------------------------------------------------ queue

    def get_queue_item(self, entry_id: str) -> Optional[TranscriptionQueueItem]:
        with self._session_scope() as session:
            return (
                session.query(TranscriptionQueueItem)
                .filter(TranscriptionQueueItem.entry_id == entry_id)
                .first()
            )

    def list_queue(self, status: Optional[QueueItemStatus] = None) -> list[TranscriptionQueueItem]:
        """Queue items by position, optionally filtered by status."""
        with self._session_scope() as session:
            query = session.query(TranscriptionQueueItem)
            if status is not None:
                query = query.filter(TranscriptionQueueItem.status == status)
            return query.order_by(
                TranscriptionQueueItem.position, TranscriptionQueueItem.created_at
            ).all()

    def enqueue(self, entry_id: str) -> tuple[TranscriptionQueueItem, bool]:
        """
        Put an entry at the end of the queue.

        An entry that is already queued or processing keeps its item. A
        finished item (completed, failed or cancelled) is queued again.

        Returns:
            (queue item, True if the entry was newly queued)
        """
        with self._session_scope() as session:
            item = (
                session.query(TranscriptionQueueItem)
                .filter(TranscriptionQueueItem.entry_id == entry_id)
                .first()
            )
            if item is not None and item.status in (
                QueueItemStatus.QUEUED,
                QueueItemStatus.PROCESSING,
            ):
                return item, False

            max_position = session.query(func.max(TranscriptionQueueItem.position)).scalar()
            position = (max_position or 0) + 1
            if item is None:
                item = TranscriptionQueueItem(id=str(uuid.uuid7()), entry_id=entry_id)
                session.add(item)
            item.status = QueueItemStatus.QUEUED
            item.position = position
            item.started_at = None
            item.completed_at = None
            item.error_message = None
            try:
                session.commit()
            except IntegrityError:
                # Queued concurrently by another caller
                session.rollback()
                existing = (
                    session.query(TranscriptionQueueItem)
                    .filter(TranscriptionQueueItem.entry_id == entry_id)
                    .first()
                )
                if existing is None:
                    raise
                return existing, False
            return item, True

    def claim_next_queue_item(self) -> Optional[TranscriptionQueueItem]:
        """
        Mark the first queued item as processing.

        The claim is a conditional update on the item's status, so two
        processors never claim the same item.
        """
        while True:
            candidates = self.list_queue(QueueItemStatus.QUEUED)
            if not candidates:
                return None
            item = candidates[0]
            with self._session_scope() as session:
                count = (
                    session.query(TranscriptionQueueItem)
                    .filter(
                        TranscriptionQueueItem.id == item.id,
                        TranscriptionQueueItem.status == QueueItemStatus.QUEUED,
                    )
                    .update(
                        {
                            "status": QueueItemStatus.PROCESSING,
                            "started_at": _utcnow(),
                        },
                        synchronize_session=False,
                    )
                )
                session.commit()
                if count == 1:
                    return session.get(TranscriptionQueueItem, item.id)
            logger.debug(f"Queue item {item.id} was claimed elsewhere, trying the next one")

    def finish_queue_item(
        self,
        item_id: str,
        status: QueueItemStatus,
        error_message: Optional[str] = None,
    ) -> None:
        """Move an item to a final state and close the gaps in the queue."""
        with self._session_scope() as session:
            session.query(TranscriptionQueueItem).filter(
                TranscriptionQueueItem.id == item_id
            ).update(
                {
                    "status": status,
                    "completed_at": _utcnow(),
                    "error_message": error_message,
                },
                synchronize_session=False,
            )
            session.commit()
        self.renumber_queue()

    def remove_queue_item(self, item_id: str) -> None:
        with self._session_scope() as session:
            session.query(TranscriptionQueueItem).filter(
                TranscriptionQueueItem.id == item_id
            ).delete(synchronize_session=False)
            session.commit()
        self.renumber_queue()

    def renumber_queue(self) -> None:
        """Give queued items consecutive positions starting at 1."""
        with self._session_scope() as session:
            queued = (
                session.query(TranscriptionQueueItem)
                .filter(TranscriptionQueueItem.status == QueueItemStatus.QUEUED)
                .order_by(TranscriptionQueueItem.position, TranscriptionQueueItem.created_at)
                .all()
            )
            for position, item in enumerate(queued, start=1):
                item.position = position
            session.commit()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
