"""
Configuration settings for sermon_catalog.

All settings come from the environment (optionally a ``.env`` file loaded
with python-dotenv). Credentials are not validated here: components raise
``ConfigurationError`` when they actually need a missing value.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


DEFAULT_FEED_RSS_URL = "https://feed.podbean.com/fxtalk/feed.xml"
DEFAULT_VIDEO_CHANNEL = "@fxchurch"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


def _env_str(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


@dataclass
class Settings:
    """Runtime configuration for sync, orchestrator and worker."""

    # Persistence
    database_url: str = "sqlite:///data/catalog.db"

    # Sources
    feed_rss_url: str = DEFAULT_FEED_RSS_URL
    video_channel: str = DEFAULT_VIDEO_CHANNEL
    youtube_api_key: Optional[str] = None

    # Transcription
    huggingface_api_key: Optional[str] = None
    audio_worker_url: Optional[str] = None
    chunking_threshold_mb: int = 20
    chunk_duration_seconds: int = 600
    inter_chunk_delay_seconds: float = 2.0
    worker_connect_timeout_seconds: float = 10.0
    delegation_recheck_delay_seconds: float = 2.0
    generating_stale_minutes: int = 30
    queue_poll_interval_seconds: float = 30.0

    # Blob storage
    storage_backend: str = "local"
    local_storage_dir: str = "data/chunks"
    bucket_endpoint: Optional[str] = None
    bucket_key_id: Optional[str] = None
    bucket_access_key: Optional[str] = None
    bucket_name: Optional[str] = None
    bucket_region: str = "ams3"

    @property
    def chunking_threshold_bytes(self) -> int:
        return self.chunking_threshold_mb * 1024 * 1024

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables (and ``.env``)."""
        load_dotenv()
        bucket_endpoint = _env_str("BUCKET_ENDPOINT")
        backend = _env_str("STORAGE_BACKEND") or ("cloud" if bucket_endpoint else "local")
        return cls(
            database_url=_env_str("DATABASE_URL") or cls.database_url,
            feed_rss_url=_env_str("FEED_RSS_URL") or DEFAULT_FEED_RSS_URL,
            video_channel=_env_str("VIDEO_CHANNEL") or DEFAULT_VIDEO_CHANNEL,
            youtube_api_key=_env_str("YOUTUBE_API_KEY"),
            huggingface_api_key=_env_str("HUGGINGFACE_API_KEY"),
            audio_worker_url=_env_str("AUDIO_WORKER_URL"),
            chunking_threshold_mb=_env_int("CHUNKING_THRESHOLD_MB", 20),
            chunk_duration_seconds=_env_int("CHUNK_DURATION_SECONDS", 600),
            inter_chunk_delay_seconds=_env_float("INTER_CHUNK_DELAY_SECONDS", 2.0),
            generating_stale_minutes=_env_int("GENERATING_STALE_MINUTES", 30),
            queue_poll_interval_seconds=_env_float("QUEUE_POLL_INTERVAL_SECONDS", 30.0),
            storage_backend=backend,
            local_storage_dir=_env_str("LOCAL_STORAGE_DIR") or "data/chunks",
            bucket_endpoint=bucket_endpoint,
            bucket_key_id=_env_str("BUCKET_KEY_ID"),
            bucket_access_key=_env_str("BUCKET_ACCESS_KEY"),
            bucket_name=_env_str("BUCKET_NAME"),
            bucket_region=_env_str("BUCKET_REGION") or "ams3",
        )
