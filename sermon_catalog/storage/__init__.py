"""
Blob storage for audio chunks.

Backends:
    LocalStorage: files under a base directory, file:// URLs
    CloudStorage: S3-compatible bucket via boto3, public https URLs
"""

from .base import BaseStorage
from .cloud import CloudStorage
from .local import LocalStorage
from sermon_catalog.config import Settings


def get_storage(settings: Settings) -> BaseStorage:
    """Storage backend selected by ``settings.storage_backend``."""
    if settings.storage_backend == "cloud":
        return CloudStorage(settings)
    return LocalStorage(settings.local_storage_dir)


__all__ = [
    "BaseStorage",
    "CloudStorage",
    "LocalStorage",
    "get_storage",
]
