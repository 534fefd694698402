"""Shared fixtures: in-memory catalog database and instant retries."""

import os
import tempfile
from datetime import datetime

# Module-level loggers are created at import time
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="sermon_catalog_logs_"))

import pytest

from sermon_catalog.config import Settings
from sermon_catalog.db import Base, CatalogStore, configure_database, get_engine
from sermon_catalog.ingestion.models import FEED, VIDEO, SourceEpisode
from sermon_catalog.transcription.asr_client import TEST_RETRY_CONFIG


@pytest.fixture(autouse=True)
def fast_retry_config(monkeypatch):
    """Use fast retry configuration for all tests to avoid long delays."""
    monkeypatch.setattr(
        "sermon_catalog.transcription.asr_client.DEFAULT_RETRY_CONFIG", TEST_RETRY_CONFIG
    )


@pytest.fixture
def store():
    """CatalogStore over a fresh in-memory SQLite database."""
    configure_database("sqlite://")
    Base.metadata.create_all(bind=get_engine())
    yield CatalogStore()
    Base.metadata.drop_all(bind=get_engine())


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url="sqlite://",
        huggingface_api_key="hf_test",
        inter_chunk_delay_seconds=0,
        delegation_recheck_delay_seconds=0,
        local_storage_dir=str(tmp_path / "chunks"),
    )


def feed_episode(title, date, description="", url=None, media_url=None):
    slug = title.lower().replace(" ", "-")
    return SourceEpisode(
        source=FEED,
        title=title,
        description=description,
        publish_date=date,
        canonical_url=url or f"https://feed.example.com/e/{slug}",
        external_id=url or f"https://feed.example.com/e/{slug}",
        media_url=media_url or f"https://cdn.example.com/{slug}.mp3",
    )


def video_episode(title, date, video_id, description=""):
    return SourceEpisode(
        source=VIDEO,
        title=title,
        description=description,
        publish_date=date,
        canonical_url=f"https://www.youtube.com/watch?v={video_id}",
        external_id=video_id,
    )


def day(month, dom, year=2024):
    return datetime(year, month, dom, 10, 0)
