"""
sermon_catalog: cross-source episode catalog with resumable transcription.

Sub-packages:
    config: Environment-driven settings (python-dotenv)
    logger: Logging setup and function decorators
    db: SQLAlchemy models and the row-level CatalogStore
    ingestion: Feed / video-platform adapters and catalog sync
    matching: Cross-source episode matcher
    transcription: ASR client, progress record, validation, orchestrator
    worker: Chunk pipeline and the FastAPI worker service
    storage: Local and S3-compatible blob storage
"""

__version__ = "0.1.0"
