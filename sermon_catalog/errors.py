"""
Error taxonomy for the catalog and transcription pipeline.

    CatalogError
    ├── ConfigurationError        missing credential or endpoint (terminal)
    ├── EntryNotFoundError        unknown catalog entry id
    ├── MediaNotFoundError        nothing to transcribe (terminal)
    ├── TranscriptValidationError output failed quality checks (resumable)
    ├── TranscriptionCancelled    user cancelled; partial progress kept
    ├── ProgressConflictError     optimistic revision mismatch (retried)
    ├── MediaDownloadError        asset download failed
    ├── SegmentationError         ffmpeg re-encode/split failed
    └── QueueStateError           queue item cannot change state

ASR errors have their own retryable / non-retryable hierarchy in
``sermon_catalog.transcription.asr_client``.
"""


class CatalogError(Exception):
    """Base class for sermon_catalog errors."""

    pass


class ConfigurationError(CatalogError):
    """A required setting (credential, endpoint) is missing."""

    pass


class EntryNotFoundError(CatalogError):
    """No catalog entry with the requested id."""

    pass


class MediaNotFoundError(CatalogError):
    """The entry has no media asset that could be transcribed."""

    pass


class TranscriptValidationError(CatalogError):
    """The assembled transcript failed a quality check."""

    pass


class TranscriptionCancelled(CatalogError):
    """The entry left the generating state while the pipeline was running."""

    pass


class ProgressConflictError(CatalogError):
    """The progress record changed between read and conditional write."""

    def __init__(self, entry_id: str, expected_revision: int):
        super().__init__(
            f"Progress of entry {entry_id} changed (expected revision {expected_revision})"
        )
        self.entry_id = entry_id
        self.expected_revision = expected_revision


class MediaDownloadError(CatalogError):
    """The media asset could not be downloaded."""

    pass


class SegmentationError(CatalogError):
    """ffmpeg could not re-encode or split the audio."""

    pass


class QueueStateError(CatalogError):
    """The queue item is not in a state that allows the requested operation."""

    pass
