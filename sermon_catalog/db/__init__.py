"""
Database package for the sermon catalog.

Structure:
- models.py: SQLAlchemy ORM models (CatalogEntry, EntrySource, TimestampMixin)
- database.py: Engine configuration and the get_db_session() context manager
- store.py: CatalogStore, the row-level API used by the rest of the system

Usage:
    from sermon_catalog.db import CatalogStore, TranscriptionStatus

    store = CatalogStore()
    entry = store.find_by_feed_url(url)
"""

from .models import (
    Base,
    CatalogEntry,
    EntrySource,
    QueueItemStatus,
    SourceType,
    TimestampMixin,
    TranscriptionQueueItem,
    TranscriptionStatus,
)
from .database import (
    build_engine,
    check_database_connection,
    configure_database,
    get_db_session,
    get_engine,
    init_database,
)
from .store import CatalogStore

__all__ = [
    # Models
    "Base",
    "CatalogEntry",
    "EntrySource",
    "QueueItemStatus",
    "SourceType",
    "TimestampMixin",
    "TranscriptionQueueItem",
    "TranscriptionStatus",
    # Database utilities
    "build_engine",
    "check_database_connection",
    "configure_database",
    "get_db_session",
    "get_engine",
    "init_database",
    # Store
    "CatalogStore",
]
