"""
Chunked transcription pipeline.

Steps (each persisted in the entry's progress record):
    downloading -> chunking -> transcribing -> combining -> validating -> saving

The persisted progress record is the only job state. A crashed or failed run
leaves completed chunks in place and the next run skips them; the entry status
is re-read before every chunk so a cancellation stops the run cooperatively.
"""

import shutil
import tempfile
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

import uuid_utils as uuid

from sermon_catalog.config import Settings
from sermon_catalog.db import CatalogStore, SourceType, TranscriptionStatus
from sermon_catalog.errors import ConfigurationError, TranscriptionCancelled
from sermon_catalog.logger import setup_logging, log_function
from sermon_catalog.storage import BaseStorage
from sermon_catalog.transcription.asr_client import ASRAuthError, ASRClient, ASRError
from sermon_catalog.transcription.progress import ProgressRecord, ProgressStep
from sermon_catalog.transcription.validation import (
    MIN_CHUNK_TRANSCRIPT_CHARS,
    combine_chunks,
    validate_transcript,
)
from .downloader import download_media
from .segmenter import segment_audio


logger = setup_logging(logger_name="worker", log_file="logs/worker.log")


@dataclass
class AudioChunk:
    """One uploaded segment of the source audio."""

    index: int
    path: Path
    url: Optional[str]
    duration_seconds: int
    start_offset_seconds: int


class ChunkPipeline:
    """
    Download, split, transcribe and assemble one entry's audio.

    Args:
        store: Catalog persistence (progress and status)
        storage: Blob storage receiving the chunk files
        asr_client: Speech-recognition client
        settings: Chunk duration and inter-chunk delay
        downloader: ``(url, workdir) -> Path``
        segmenter: ``(path, outdir, chunk_seconds) -> list[Path]``
        sleep: Sleep function used for the inter-chunk delay
    """

    def __init__(
        self,
        store: CatalogStore,
        storage: BaseStorage,
        asr_client: ASRClient,
        settings: Settings,
        downloader: Callable[[str, Path], Path] = download_media,
        segmenter: Callable[[Path, Path, int], list[Path]] = segment_audio,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.storage = storage
        self.asr_client = asr_client
        self.settings = settings
        self._download = downloader
        self._segment = segmenter
        self._sleep = sleep

    @log_function(logger_name="worker", log_execution_time=True)
    def run(self, entry_id: str, media_url: str) -> TranscriptionStatus:
        """
        Transcribe an entry end to end.

        Failures are not raised: they are written to the entry (status
        ``failed`` and the error message) with the progress record kept for a
        later resume.

        Returns:
            The status the entry was left in
        """
        workdir = Path(tempfile.mkdtemp(prefix=f"transcribe_{entry_id[:12]}_"))
        try:
            self._set_step(
                entry_id,
                ProgressStep.INITIALIZING,
                "Starting transcription...",
                status=TranscriptionStatus.GENERATING,
                error_message=None,
            )

            self._set_step(entry_id, ProgressStep.DOWNLOADING, "Downloading audio...")
            audio_path = self._download(media_url, workdir)

            self._set_step(entry_id, ProgressStep.CHUNKING, "Splitting audio into chunks...")
            chunk_paths = self._segment(
                audio_path, workdir / "chunks", self.settings.chunk_duration_seconds
            )
            chunks = self._upload_chunks(entry_id, chunk_paths)

            total = self._transcribe_chunks(entry_id, chunks)

            self._ensure_generating(entry_id)
            self._set_step(entry_id, ProgressStep.COMBINING, "Combining chunk transcripts...")
            progress, _ = self.store.read_progress(entry_id)
            completed = progress.completed_chunks if progress else {}
            combined = combine_chunks(completed, total)

            self._set_step(entry_id, ProgressStep.VALIDATING, "Validating transcript...")
            transcript = validate_transcript(combined)

            self._ensure_generating(entry_id)
            self._set_step(entry_id, ProgressStep.SAVING, "Saving transcript...")
            self.store.update(
                entry_id,
                status=TranscriptionStatus.COMPLETED,
                transcript=transcript,
                transcript_source=SourceType.GENERATED.value,
                transcript_generated_at=datetime.now(timezone.utc).replace(tzinfo=None),
                error_message=None,
                progress_json=None,
            )
            logger.info(
                f"Transcription of {entry_id} completed: {len(transcript):,} characters "
                f"from {len(completed)}/{total} chunks"
            )
            return TranscriptionStatus.COMPLETED

        except TranscriptionCancelled as e:
            logger.info(f"Transcription of {entry_id} stopped: {e}")
            return self.store.get_status(entry_id) or TranscriptionStatus.FAILED

        except Exception as e:
            logger.error(f"Transcription of {entry_id} failed: {e}")
            self._mark_failed(entry_id, str(e))
            return TranscriptionStatus.FAILED

        finally:
            shutil.rmtree(workdir, ignore_errors=True)

    # ------------------------------------------------------------------ steps

    def _upload_chunks(self, entry_id: str, chunk_paths: list[Path]) -> list[AudioChunk]:
        """Upload chunks not yet transcribed; completed ones keep no URL."""
        progress, _ = self.store.read_progress(entry_id)
        completed = progress.completed_chunks if progress else {}
        workspace = self.storage.create_chunk_workspace(entry_id)
        chunk_seconds = self.settings.chunk_duration_seconds

        chunks = []
        for index, path in enumerate(chunk_paths):
            url = None
            if index not in completed:
                filename = f"chunk_{index:03d}_{uuid.uuid7()}.mp3"
                url = self.storage.save_file(workspace, filename, path.read_bytes())
                logger.debug(f"Uploaded chunk {index} to {url}")
            chunks.append(
                AudioChunk(
                    index=index,
                    path=path,
                    url=url,
                    duration_seconds=chunk_seconds,
                    start_offset_seconds=index * chunk_seconds,
                )
            )
        return chunks

    def _transcribe_chunks(self, entry_id: str, chunks: list[AudioChunk]) -> int:
        """
        Transcribe chunks sequentially, persisting each result.

        Raises:
            TranscriptionCancelled: If the entry left the generating state
        """
        total = len(chunks)
        transcribed = 0

        for chunk in chunks:
            self._ensure_generating(entry_id)

            progress, _ = self.store.read_progress(entry_id)
            if progress is not None and chunk.index in progress.completed_chunks:
                logger.info(f"Chunk {chunk.index + 1}/{total} already transcribed, skipping")
                continue

            if transcribed > 0 and self.settings.inter_chunk_delay_seconds > 0:
                self._sleep(self.settings.inter_chunk_delay_seconds)

            self._set_step(
                entry_id,
                ProgressStep.TRANSCRIBING,
                f"Transcribing chunk {chunk.index + 1} of {total}...",
                current=chunk.index + 1,
                total=total,
            )

            try:
                text = self.asr_client.transcribe_bytes(
                    chunk.path.read_bytes(), filename=chunk.path.name
                )
                if len(text.strip()) < MIN_CHUNK_TRANSCRIPT_CHARS:
                    raise ASRError(
                        f"Chunk transcript too short ({len(text.strip())} characters)"
                    )
            except (ConfigurationError, ASRAuthError):
                # Same credential for every chunk
                raise
            except ASRError as e:
                logger.warning(f"Chunk {chunk.index + 1}/{total} failed: {e}")
                self.store.mutate_progress(
                    entry_id, lambda p, i=chunk.index, err=str(e): p.mark_failed(i, err)
                )
                transcribed += 1
                continue

            self.store.mutate_progress(
                entry_id, lambda p, i=chunk.index, t=text.strip(): p.mark_completed(i, t)
            )
            transcribed += 1
            logger.info(f"Chunk {chunk.index + 1}/{total} transcribed ({len(text):,} chars)")

        return total

    # ---------------------------------------------------------------- helpers

    def _ensure_generating(self, entry_id: str) -> None:
        status = self.store.get_status(entry_id)
        if status != TranscriptionStatus.GENERATING:
            status_name = status.value if status else "missing"
            raise TranscriptionCancelled(f"Entry {entry_id} is now {status_name}")

    def _set_step(
        self,
        entry_id: str,
        step: ProgressStep,
        message: str,
        current: Optional[int] = None,
        total: Optional[int] = None,
        **fields,
    ) -> ProgressRecord:
        def mutate(progress: ProgressRecord) -> None:
            progress.step = step
            progress.message = message
            if current is not None:
                progress.current = current
            if total is not None:
                progress.total = total

        return self.store.mutate_progress(entry_id, mutate, **fields)

    def _mark_failed(self, entry_id: str, message: str) -> None:
        try:
            self.store.update(
                entry_id, status=TranscriptionStatus.FAILED, error_message=message[:2000]
            )
        except Exception as e:
            logger.error(f"Could not record failure of {entry_id}: {e}")
