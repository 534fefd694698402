"""
Persisted progress record of a transcription job.

The record is the only state shared between the orchestrator and the worker.
It is stored as JSON in ``catalog_entries.progress_json``; chunk maps are keyed
by integer chunk index in memory and converted explicitly on (de)serialization
because JSON object keys are always strings.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Optional


class ProgressStep(str, PyEnum):
    """Pipeline step currently running (or last reached)."""

    QUEUED = "queued"
    INITIALIZING = "initializing"
    DOWNLOADING = "downloading"
    CHUNKING = "chunking"
    TRANSCRIBING = "transcribing"
    COMBINING = "combining"
    VALIDATING = "validating"
    SAVING = "saving"
    CANCELLED = "cancelled"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _int_keyed(raw: Optional[dict]) -> dict[int, str]:
    if not raw:
        return {}
    return {int(k): str(v) for k, v in raw.items()}


@dataclass
class ProgressRecord:
    """
    Progress of one transcription run.

    Attributes:
        step: Current pipeline step
        current: Chunk currently being processed (1-based, for display)
        total: Total number of chunks, once known
        message: Human-readable status line
        completed_chunks: chunk index -> transcript text
        failed_chunks: chunk index -> last error message
        updated_at: ISO timestamp of the last change
    """

    step: ProgressStep = ProgressStep.QUEUED
    current: Optional[int] = None
    total: Optional[int] = None
    message: str = ""
    completed_chunks: dict[int, str] = field(default_factory=dict)
    failed_chunks: dict[int, str] = field(default_factory=dict)
    updated_at: str = field(default_factory=_utc_now_iso)

    def mark_completed(self, index: int, text: str) -> None:
        """Record a chunk transcript; a previously failed index moves over."""
        self.failed_chunks.pop(index, None)
        self.completed_chunks[index] = text

    def mark_failed(self, index: int, error: str) -> None:
        if index in self.completed_chunks:
            # A completed chunk is never downgraded
            return
        self.failed_chunks[index] = error

    def touch(self) -> None:
        self.updated_at = _utc_now_iso()

    def updated_at_datetime(self) -> Optional[datetime]:
        try:
            parsed = datetime.fromisoformat(self.updated_at)
        except (TypeError, ValueError):
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    def to_dict(self) -> dict:
        return {
            "step": self.step.value,
            "current": self.current,
            "total": self.total,
            "message": self.message,
            "completedChunks": {
                str(k): v for k, v in sorted(self.completed_chunks.items())
            },
            "failedChunks": {str(k): v for k, v in sorted(self.failed_chunks.items())},
            "updatedAt": self.updated_at,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "ProgressRecord":
        try:
            step = ProgressStep(data.get("step", ProgressStep.QUEUED.value))
        except ValueError:
            step = ProgressStep.QUEUED
        record = cls(
            step=step,
            current=data.get("current"),
            total=data.get("total"),
            message=data.get("message") or "",
            completed_chunks=_int_keyed(data.get("completedChunks")),
            failed_chunks=_int_keyed(data.get("failedChunks")),
            updated_at=data.get("updatedAt") or _utc_now_iso(),
        )
        # Keep the maps disjoint even if an older writer left an overlap
        for index in list(record.failed_chunks):
            if index in record.completed_chunks:
                del record.failed_chunks[index]
        return record

    @classmethod
    def from_json(cls, raw: Optional[str]) -> Optional["ProgressRecord"]:
        if not raw:
            return None
        return cls.from_dict(json.loads(raw))
