"""
Transcription orchestrator.

Decides how an entry gets its transcript:

    transcript already present      -> no-op
    already generating (fresh)      -> no-op, another run owns it
    no media asset                  -> failed (needs a user-supplied URL)
    worker configured               -> delegate over HTTP and return
    video or page URL only          -> run the chunk pipeline in-process
    asset above the size threshold  -> run the chunk pipeline in-process
    otherwise                       -> one ASR call on the whole asset

The "already generating" check is a soft guard: two triggers racing between
the status read and the status write can both start a run. Progress writes
stay consistent through the revision counter either way.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, TYPE_CHECKING

import requests

from sermon_catalog.config import Settings
from sermon_catalog.db import CatalogEntry, CatalogStore, SourceType, TranscriptionStatus
from sermon_catalog.logger import setup_logging, log_function
from sermon_catalog.worker.downloader import is_video_platform_url
from .asr_client import ASRClient
from .progress import ProgressRecord, ProgressStep
from .validation import is_nontrivial_transcript, validate_transcript

if TYPE_CHECKING:
    from sermon_catalog.worker.pipeline import ChunkPipeline


logger = setup_logging(logger_name="orchestrator", log_file="logs/orchestrator.log")

NO_MEDIA_MESSAGE = (
    "No audio source available for transcription. "
    "Set an audio_url, or make sure the entry has a YouTube URL or Podbean URL."
)
CANCELLED_MESSAGE = "Cancelled by user"
HEAD_TIMEOUT_SECONDS = 15


@dataclass
class GenerateResult:
    """Outcome of a generate request."""

    status: str
    message: str
    delegated: bool = False


def resolve_media_url(entry: CatalogEntry) -> Optional[str]:
    """Direct asset first, then the video and feed pages as fallback sources."""
    return entry.media_url or entry.video_url or entry.feed_url or None


def _default_pipeline_factory(settings: Settings, store: CatalogStore, asr_client: ASRClient):
    def factory() -> "ChunkPipeline":
        from sermon_catalog.storage import get_storage
        from sermon_catalog.worker.pipeline import ChunkPipeline

        return ChunkPipeline(store, get_storage(settings), asr_client, settings)

    return factory


class TranscriptionOrchestrator:
    """
    Entry point for generating, cancelling and resetting transcriptions.

    Args:
        store: Catalog persistence
        settings: Worker URL, thresholds and timeouts
        asr_client: Used for small assets transcribed in one call
        pipeline_factory: Builds the in-process ChunkPipeline for large assets
        http_session: requests.Session used for HEAD requests and delegation
        sleep: Sleep function used before the delegation re-check
    """

    def __init__(
        self,
        store: CatalogStore,
        settings: Settings,
        asr_client: Optional[ASRClient] = None,
        pipeline_factory: Optional[Callable[[], "ChunkPipeline"]] = None,
        http_session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.settings = settings
        self.asr_client = asr_client or ASRClient(settings.huggingface_api_key)
        self.pipeline_factory = pipeline_factory or _default_pipeline_factory(
            settings, store, self.asr_client
        )
        self.http = http_session or requests.Session()
        self._sleep = sleep

    # --------------------------------------------------------------- generate

    @log_function(logger_name="orchestrator", log_execution_time=True)
    def generate(self, entry_id: str) -> GenerateResult:
        """
        Produce a transcript for an entry, or hand the job to the worker.

        Raises:
            EntryNotFoundError: If the entry does not exist
        """
        entry = self.store.require(entry_id)

        if is_nontrivial_transcript(entry.transcript):
            logger.info(f"Entry {entry_id} already has a transcript")
            return GenerateResult(TranscriptionStatus.COMPLETED.value, "Transcript already exists")

        if entry.status == TranscriptionStatus.GENERATING and self.run_is_fresh(entry):
            logger.info(f"Entry {entry_id} is already being transcribed")
            return GenerateResult(
                TranscriptionStatus.GENERATING.value, "Transcription already in progress"
            )

        media_url = resolve_media_url(entry)
        if not media_url:
            logger.warning(f"Entry {entry_id} has no media to transcribe")
            self.store.update(
                entry_id, status=TranscriptionStatus.FAILED, error_message=NO_MEDIA_MESSAGE
            )
            return GenerateResult(TranscriptionStatus.FAILED.value, NO_MEDIA_MESSAGE)

        if self.settings.audio_worker_url:
            return self._delegate(entry_id, media_url)
        if media_url != entry.media_url or is_video_platform_url(media_url):
            logger.info(f"Entry {entry_id} only has a page URL; using the chunk pipeline")
            return self._run_pipeline(entry_id, media_url)
        return self._transcribe_in_process(entry_id, media_url)

    def run_is_fresh(self, entry: CatalogEntry) -> bool:
        """True while the generating run has written progress recently."""
        progress = ProgressRecord.from_json(entry.progress_json)
        last_update = progress.updated_at_datetime() if progress else None
        if last_update is None and entry.updated_at is not None:
            last_update = entry.updated_at.replace(tzinfo=timezone.utc)
        if last_update is None:
            return False

        age = datetime.now(timezone.utc) - last_update
        if age > timedelta(minutes=self.settings.generating_stale_minutes):
            logger.warning(
                f"Entry {entry.id} stuck in generating for {age}; resuming the run"
            )
            return False
        return True

    def _delegate(self, entry_id: str, media_url: str) -> GenerateResult:
        """POST the job to the worker; a connect timeout is settled by re-reading status."""

        def queue(progress: ProgressRecord) -> None:
            progress.step = ProgressStep.QUEUED
            progress.message = "Queued for transcription..."

        self.store.mutate_progress(
            entry_id, queue, status=TranscriptionStatus.GENERATING, error_message=None
        )
        _, queued_revision = self.store.read_progress(entry_id)

        url = f"{self.settings.audio_worker_url.rstrip('/')}/transcribe"
        timeout = self.settings.worker_connect_timeout_seconds
        logger.info(f"Delegating {entry_id} to worker at {url}")

        try:
            response = self.http.post(
                url,
                json={"episodeId": entry_id, "audioUrl": media_url},
                timeout=(timeout, timeout),
            )
        except requests.Timeout:
            logger.warning(f"Worker call timed out for {entry_id}; re-checking status")
            return self._recheck_delegation(entry_id, queued_revision)
        except requests.RequestException as e:
            return self._fail(entry_id, f"Failed to trigger worker: {e}")

        if response.status_code >= 300:
            return self._fail(
                entry_id,
                f"Worker rejected the job (HTTP {response.status_code}): {response.text[:200]}",
            )

        logger.info(f"Worker accepted {entry_id}")
        return GenerateResult(
            TranscriptionStatus.GENERATING.value,
            "Transcription queued. Check back in a few minutes.",
            delegated=True,
        )

    def _recheck_delegation(self, entry_id: str, queued_revision: int) -> GenerateResult:
        """
        Settle a timed-out POST by looking at the entry again.

        The worker counts as having accepted the job only if it wrote
        progress after the queued record, i.e. the revision moved on.
        """
        self._sleep(self.settings.delegation_recheck_delay_seconds)
        entry = self.store.require(entry_id)
        worker_wrote = (entry.progress_revision or 0) > queued_revision
        if entry.status == TranscriptionStatus.GENERATING and worker_wrote:
            logger.info(f"Entry {entry_id} shows progress after timeout; delegation accepted")
            return GenerateResult(
                TranscriptionStatus.GENERATING.value,
                "Transcription queued. Check back in a few minutes.",
                delegated=True,
            )
        if entry.status == TranscriptionStatus.FAILED:
            return GenerateResult(
                TranscriptionStatus.FAILED.value, entry.error_message or "Transcription failed"
            )
        return self._fail(entry_id, "Failed to trigger worker: connection timed out")

    def _transcribe_in_process(self, entry_id: str, media_url: str) -> GenerateResult:
        size = self.remote_size(media_url)
        threshold = self.settings.chunking_threshold_bytes
        if size is None or size > threshold:
            size_text = f"{size / (1024 * 1024):.1f} MB" if size else "unknown size"
            logger.info(f"Chunking {entry_id} in-process ({size_text})")
            return self._run_pipeline(entry_id, media_url)

        def start(progress: ProgressRecord) -> None:
            progress.step = ProgressStep.INITIALIZING
            progress.message = "Initializing transcription..."

        self.store.mutate_progress(
            entry_id, start, status=TranscriptionStatus.GENERATING, error_message=None
        )
        try:
            text = validate_transcript(self.asr_client.transcribe_url(media_url))
        except Exception as e:
            logger.error(f"Direct transcription of {entry_id} failed: {e}")
            return self._fail(entry_id, str(e))

        self.store.update(
            entry_id,
            status=TranscriptionStatus.COMPLETED,
            transcript=text,
            transcript_source=SourceType.GENERATED.value,
            transcript_generated_at=datetime.now(timezone.utc).replace(tzinfo=None),
            error_message=None,
            progress_json=None,
        )
        logger.info(f"Transcribed {entry_id} in one call ({len(text):,} characters)")
        return GenerateResult(TranscriptionStatus.COMPLETED.value, "Transcript generated")

    def _run_pipeline(self, entry_id: str, media_url: str) -> GenerateResult:
        self.store.update(entry_id, status=TranscriptionStatus.GENERATING, error_message=None)
        status = self.pipeline_factory().run(entry_id, media_url)
        entry = self.store.require(entry_id)
        if status == TranscriptionStatus.COMPLETED:
            return GenerateResult(status.value, "Transcript generated")
        return GenerateResult(status.value, entry.error_message or "Transcription failed")

    def remote_size(self, media_url: str) -> Optional[int]:
        """Content-Length from a HEAD request; None when unknown."""
        try:
            response = self.http.head(
                media_url, allow_redirects=True, timeout=HEAD_TIMEOUT_SECONDS
            )
        except requests.RequestException as e:
            logger.warning(f"HEAD request failed for {media_url[:100]}: {e}")
            return None
        length = response.headers.get("Content-Length")
        if response.status_code >= 400 or not length or not length.isdigit():
            return None
        return int(length)

    def _fail(self, entry_id: str, message: str) -> GenerateResult:
        self.store.update(entry_id, status=TranscriptionStatus.FAILED, error_message=message)
        return GenerateResult(TranscriptionStatus.FAILED.value, message)

    # ------------------------------------------------------------- management

    def cancel(self, entry_id: str) -> ProgressRecord:
        """Stop a run; chunks transcribed so far are kept for a later resume."""
        self.store.require(entry_id)

        def mark_cancelled(progress: ProgressRecord) -> None:
            progress.step = ProgressStep.CANCELLED
            progress.message = CANCELLED_MESSAGE

        progress = self.store.mutate_progress(
            entry_id,
            mark_cancelled,
            status=TranscriptionStatus.FAILED,
            error_message=CANCELLED_MESSAGE,
        )
        logger.info(
            f"Cancelled {entry_id} with {len(progress.completed_chunks)} completed chunks kept"
        )
        return progress

    def delete_chunks(self, entry_id: str) -> None:
        """Forget all chunk results so the next run starts from scratch."""
        entry = self.store.require(entry_id)
        fields = {"progress_json": None}
        if entry.status == TranscriptionStatus.FAILED:
            fields.update(status=TranscriptionStatus.PENDING, error_message=None)
        self.store.update(entry_id, **fields)
        logger.info(f"Deleted chunk progress of {entry_id}")

    def update_media_url(self, entry_id: str, media_url: str, reset: bool = True) -> None:
        """
        Override the asset used for transcription.

        Chunk results of the previous asset are dropped; with ``reset`` the
        entry also goes back to pending with its error cleared.
        """
        self.store.require(entry_id)
        fields = {"media_url": media_url, "progress_json": None}
        if reset:
            fields.update(status=TranscriptionStatus.PENDING, error_message=None)
        self.store.update(entry_id, **fields)
        logger.info(f"Media URL of {entry_id} set to {media_url[:100]}")
