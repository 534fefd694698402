"""
Transcription queue: scheduled transcription, one entry at a time.

Entries are added with ordered positions. A scheduler (cron calling
``queue process``, or the ``queue run`` loop) calls ``process_next``:

    an item is processing       -> settle it from its entry's status
    still processing            -> nothing else starts
    nothing processing          -> claim the first queued item and generate it

Delegated jobs stay ``processing`` until the worker leaves the entry
``completed`` or ``failed``. A run that stops writing progress for
``GENERATING_STALE_MINUTES`` is failed so the queue keeps moving.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from sermon_catalog.db import (
    CatalogStore,
    QueueItemStatus,
    TranscriptionQueueItem,
    TranscriptionStatus,
)
from sermon_catalog.errors import EntryNotFoundError, MediaNotFoundError, QueueStateError
from sermon_catalog.logger import setup_logging, log_function
from .orchestrator import (
    CANCELLED_MESSAGE,
    NO_MEDIA_MESSAGE,
    TranscriptionOrchestrator,
    resolve_media_url,
)
from .validation import is_nontrivial_transcript


logger = setup_logging(logger_name="queue", log_file="logs/queue.log")

STALLED_MESSAGE = "Transcription stalled (no progress written)"


@dataclass
class QueueResult:
    """Outcome of a queue operation."""

    message: str
    item: Optional[TranscriptionQueueItem] = None
    processed: bool = False


class TranscriptionQueue:
    """
    Ordered transcription queue on top of the orchestrator.

    Args:
        store: Catalog and queue persistence
        orchestrator: Runs (or delegates) the transcription of a claimed entry
    """

    def __init__(self, store: CatalogStore, orchestrator: TranscriptionOrchestrator):
        self.store = store
        self.orchestrator = orchestrator

    def add(self, entry_id: str) -> QueueResult:
        """
        Queue an entry for transcription.

        Raises:
            EntryNotFoundError: If the entry does not exist
            MediaNotFoundError: If the entry has nothing to transcribe
        """
        entry = self.store.require(entry_id)
        if is_nontrivial_transcript(entry.transcript):
            return QueueResult("Transcript already exists")
        if not resolve_media_url(entry):
            raise MediaNotFoundError(NO_MEDIA_MESSAGE)

        item, created = self.store.enqueue(entry_id)
        if not created:
            return QueueResult(f"Entry already in queue ({item.status.value})", item=item)
        logger.info(f"Queued {entry_id} at position {item.position}")
        return QueueResult(
            f"Added to transcription queue (position {item.position})", item=item
        )

    def snapshot(self) -> dict[str, Any]:
        """Processing item, queued items in order, and every item."""
        items = self.store.list_queue()
        processing = next(
            (i for i in items if i.status == QueueItemStatus.PROCESSING), None
        )
        return {
            "processing": processing,
            "queued": [i for i in items if i.status == QueueItemStatus.QUEUED],
            "all": items,
        }

    def cancel(self, entry_id: str) -> QueueResult:
        """
        Remove a queued entry, or stop the one being processed.

        Raises:
            EntryNotFoundError: If the entry is not in the queue
            QueueStateError: If the item already finished
        """
        item = self.store.get_queue_item(entry_id)
        if item is None:
            raise EntryNotFoundError(f"Entry {entry_id!r} is not in the queue")

        if item.status == QueueItemStatus.QUEUED:
            self.store.remove_queue_item(item.id)
            logger.info(f"Removed {entry_id} from the queue")
            return QueueResult("Removed from transcription queue", item=item)

        if item.status == QueueItemStatus.PROCESSING:
            self.store.finish_queue_item(item.id, QueueItemStatus.CANCELLED, CANCELLED_MESSAGE)
            self.orchestrator.cancel(entry_id)
            return QueueResult(
                "Transcription cancelled; the running job stops before its next chunk",
                item=item,
            )

        raise QueueStateError(f"Cannot cancel: queue item is {item.status.value}")

    @log_function(logger_name="queue", log_execution_time=True)
    def process_next(self) -> QueueResult:
        """Settle the processing item, then start the next queued one if free."""
        for item in self.store.list_queue(QueueItemStatus.PROCESSING):
            if not self._settle(item):
                return QueueResult(f"Still processing {item.entry_id}", item=item)

        item = self.store.claim_next_queue_item()
        if item is None:
            return QueueResult("No items in queue")

        logger.info(f"Processing {item.entry_id} (queue item {item.id})")
        try:
            result = self.orchestrator.generate(item.entry_id)
        except Exception as e:
            logger.error(f"Queue item {item.id} failed: {e}")
            self.store.finish_queue_item(item.id, QueueItemStatus.FAILED, str(e))
            return QueueResult(f"Failed: {e}", item=item, processed=True)

        if result.status == TranscriptionStatus.COMPLETED.value:
            self.store.finish_queue_item(item.id, QueueItemStatus.COMPLETED)
        elif result.status == TranscriptionStatus.FAILED.value:
            self.store.finish_queue_item(item.id, QueueItemStatus.FAILED, result.message)
        return QueueResult(result.message, item=item, processed=True)

    def run(
        self,
        interval_seconds: float,
        iterations: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> int:
        """
        Call ``process_next`` every ``interval_seconds``.

        Returns:
            Number of items started
        """
        started = 0
        count = 0
        while iterations is None or count < iterations:
            result = self.process_next()
            count += 1
            if result.processed:
                started += 1
                logger.info(f"{result.item.entry_id}: {result.message}")
            if iterations is None or count < iterations:
                sleep(interval_seconds)
        return started

    def _settle(self, item: TranscriptionQueueItem) -> bool:
        """Finish a processing item whose entry is done; True if it was finished."""
        entry = self.store.get(item.entry_id)
        if entry is None:
            self.store.finish_queue_item(
                item.id, QueueItemStatus.FAILED, "Entry no longer exists"
            )
            return True

        if entry.status == TranscriptionStatus.COMPLETED:
            self.store.finish_queue_item(item.id, QueueItemStatus.COMPLETED)
        elif entry.status == TranscriptionStatus.FAILED:
            self.store.finish_queue_item(
                item.id, QueueItemStatus.FAILED, entry.error_message or "Transcription failed"
            )
        elif entry.status == TranscriptionStatus.PENDING:
            self.store.finish_queue_item(
                item.id, QueueItemStatus.FAILED, "Entry was reset to pending"
            )
        elif self.orchestrator.run_is_fresh(entry):
            return False
        else:
            logger.warning(f"Queue item {item.id} stalled; failing it")
            self.store.update(
                entry.id, status=TranscriptionStatus.FAILED, error_message=STALLED_MESSAGE
            )
            self.store.finish_queue_item(item.id, QueueItemStatus.FAILED, STALLED_MESSAGE)
        return True
