"""Tests for the scheduled transcription queue."""

from unittest.mock import Mock

import pytest

from sermon_catalog.db import QueueItemStatus, TranscriptionStatus
from sermon_catalog.errors import EntryNotFoundError, MediaNotFoundError, QueueStateError
from sermon_catalog.transcription.orchestrator import GenerateResult, TranscriptionOrchestrator
from sermon_catalog.transcription.queue import STALLED_MESSAGE, TranscriptionQueue

TRANSCRIPT = "Today we read from the book of James about patience in trials. " * 4


@pytest.fixture
def orchestrator():
    orchestrator = Mock(spec=TranscriptionOrchestrator)
    orchestrator.generate.return_value = GenerateResult("completed", "Transcript generated")
    orchestrator.run_is_fresh.return_value = True
    return orchestrator


@pytest.fixture
def queue(store, orchestrator):
    return TranscriptionQueue(store, orchestrator)


def add_entry(store, title):
    slug = title.lower().replace(" ", "-")
    return store.insert(title=title, media_url=f"https://cdn.example.com/{slug}.mp3")


class TestAdd:
    """Test queueing entries."""

    def test_positions_follow_insertion_order(self, store, queue):
        first = add_entry(store, "Walking in Grace")
        second = add_entry(store, "Faith Series Part 3")

        queue.add(first.id)
        result = queue.add(second.id)

        assert result.item.position == 2
        assert "position 2" in result.message
        assert [i.entry_id for i in queue.snapshot()["queued"]] == [first.id, second.id]

    def test_already_queued_entry_keeps_its_item(self, store, queue):
        entry = add_entry(store, "Walking in Grace")
        queue.add(entry.id)

        result = queue.add(entry.id)

        assert "already in queue" in result.message
        assert result.item.position == 1
        assert len(store.list_queue()) == 1

    def test_entry_with_transcript_is_not_queued(self, store, queue):
        entry = store.insert(title="Walking in Grace", transcript=TRANSCRIPT)

        result = queue.add(entry.id)

        assert result.message == "Transcript already exists"
        assert result.item is None
        assert store.list_queue() == []

    def test_entry_without_media_is_rejected(self, store, queue):
        entry = store.insert(title="Walking in Grace")

        with pytest.raises(MediaNotFoundError):
            queue.add(entry.id)

    def test_unknown_entry(self, queue):
        with pytest.raises(EntryNotFoundError):
            queue.add("missing")

    def test_failed_item_is_queued_again_at_the_end(self, store, queue, orchestrator):
        failing = add_entry(store, "Walking in Grace")
        other = add_entry(store, "Faith Series Part 3")
        queue.add(failing.id)
        orchestrator.generate.return_value = GenerateResult("failed", "Total failure")
        queue.process_next()
        queue.add(other.id)

        result = queue.add(failing.id)

        assert result.item.status == QueueItemStatus.QUEUED
        assert result.item.error_message is None
        assert [i.entry_id for i in queue.snapshot()["queued"]] == [other.id, failing.id]


class TestProcessNext:
    """Test the one-at-a-time processing contract."""

    def test_empty_queue(self, queue, orchestrator):
        result = queue.process_next()

        assert result.message == "No items in queue"
        assert not result.processed
        orchestrator.generate.assert_not_called()

    def test_processes_in_order_and_records_outcome(self, store, queue, orchestrator):
        first = add_entry(store, "Walking in Grace")
        second = add_entry(store, "Faith Series Part 3")
        queue.add(first.id)
        queue.add(second.id)

        result = queue.process_next()

        assert result.processed
        orchestrator.generate.assert_called_once_with(first.id)
        assert store.get_queue_item(first.id).status == QueueItemStatus.COMPLETED
        assert store.get_queue_item(first.id).completed_at is not None
        assert store.get_queue_item(second.id).position == 1

        queue.process_next()

        orchestrator.generate.assert_called_with(second.id)

    def test_delegated_job_blocks_the_queue_until_done(self, store, queue, orchestrator):
        first = add_entry(store, "Walking in Grace")
        second = add_entry(store, "Faith Series Part 3")
        queue.add(first.id)
        queue.add(second.id)
        orchestrator.generate.return_value = GenerateResult(
            "generating", "Transcription queued", delegated=True
        )
        queue.process_next()
        store.update(first.id, status=TranscriptionStatus.GENERATING)

        result = queue.process_next()

        assert result.message == f"Still processing {first.id}"
        assert orchestrator.generate.call_count == 1
        assert queue.snapshot()["processing"].entry_id == first.id

        store.update(first.id, status=TranscriptionStatus.COMPLETED, transcript=TRANSCRIPT)
        queue.process_next()

        assert store.get_queue_item(first.id).status == QueueItemStatus.COMPLETED
        orchestrator.generate.assert_called_with(second.id)

    def test_failed_generation_is_recorded(self, store, queue, orchestrator):
        entry = add_entry(store, "Walking in Grace")
        queue.add(entry.id)
        orchestrator.generate.return_value = GenerateResult("failed", "Failed to trigger worker")

        queue.process_next()

        item = store.get_queue_item(entry.id)
        assert item.status == QueueItemStatus.FAILED
        assert item.error_message == "Failed to trigger worker"

    def test_generation_error_is_recorded(self, store, queue, orchestrator):
        entry = add_entry(store, "Walking in Grace")
        queue.add(entry.id)
        orchestrator.generate.side_effect = RuntimeError("database is locked")

        result = queue.process_next()

        assert result.processed
        assert store.get_queue_item(entry.id).error_message == "database is locked"

    def test_stalled_job_is_failed_and_next_one_starts(self, store, queue, orchestrator):
        first = add_entry(store, "Walking in Grace")
        second = add_entry(store, "Faith Series Part 3")
        queue.add(first.id)
        queue.add(second.id)
        orchestrator.generate.return_value = GenerateResult("generating", "queued", delegated=True)
        queue.process_next()
        store.update(first.id, status=TranscriptionStatus.GENERATING)
        orchestrator.run_is_fresh.return_value = False
        orchestrator.generate.return_value = GenerateResult("completed", "Transcript generated")

        queue.process_next()

        assert store.get_queue_item(first.id).status == QueueItemStatus.FAILED
        assert store.get(first.id).status == TranscriptionStatus.FAILED
        assert store.get(first.id).error_message == STALLED_MESSAGE
        orchestrator.generate.assert_called_with(second.id)

    def test_run_polls_with_interval(self, store, queue):
        queue.add(add_entry(store, "Walking in Grace").id)
        waits = []

        started = queue.run(30, iterations=3, sleep=waits.append)

        assert started == 1
        assert waits == [30, 30]


class TestCancel:
    """Test removing and stopping queue items."""

    def test_cancel_queued_item_renumbers(self, store, queue):
        entries = [add_entry(store, t) for t in ("Walking in Grace", "Faith Part 3", "Hope")]
        for entry in entries:
            queue.add(entry.id)

        result = queue.cancel(entries[0].id)

        assert result.message == "Removed from transcription queue"
        assert store.get_queue_item(entries[0].id) is None
        assert [(i.entry_id, i.position) for i in queue.snapshot()["queued"]] == [
            (entries[1].id, 1),
            (entries[2].id, 2),
        ]

    def test_cancel_processing_item_stops_the_run(self, store, queue, orchestrator):
        entry = add_entry(store, "Walking in Grace")
        queue.add(entry.id)
        orchestrator.generate.return_value = GenerateResult("generating", "queued", delegated=True)
        queue.process_next()

        queue.cancel(entry.id)

        assert store.get_queue_item(entry.id).status == QueueItemStatus.CANCELLED
        orchestrator.cancel.assert_called_once_with(entry.id)

    def test_cancel_finished_item(self, store, queue):
        entry = add_entry(store, "Walking in Grace")
        queue.add(entry.id)
        queue.process_next()

        with pytest.raises(QueueStateError, match="completed"):
            queue.cancel(entry.id)

    def test_cancel_entry_not_in_queue(self, store, queue):
        with pytest.raises(EntryNotFoundError):
            queue.cancel(add_entry(store, "Walking in Grace").id)
