"""
Worker HTTP service.

    POST /transcribe  {"episodeId": ..., "audioUrl": ...}
        202 {"accepted": true} once the job is queued; the pipeline runs in the
        background and reports through the entry's progress record.
    GET /health
        {"status": "ok"}
"""

from typing import Callable, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException
from pydantic import BaseModel

from sermon_catalog.config import Settings
from sermon_catalog.db import CatalogStore, configure_database
from sermon_catalog.logger import setup_logging
from sermon_catalog.storage import get_storage
from sermon_catalog.transcription.asr_client import ASRClient
from .pipeline import ChunkPipeline


logger = setup_logging(logger_name="worker", log_file="logs/worker.log")


class TranscribeRequest(BaseModel):
    episodeId: Optional[str] = None
    audioUrl: Optional[str] = None


def build_pipeline(settings: Optional[Settings] = None) -> ChunkPipeline:
    """Pipeline wired to the configured database, storage and ASR service."""
    settings = settings or Settings.from_env()
    configure_database(settings.database_url)
    return ChunkPipeline(
        store=CatalogStore(),
        storage=get_storage(settings),
        asr_client=ASRClient(settings.huggingface_api_key),
        settings=settings,
    )


def create_app(pipeline_factory: Callable[[], ChunkPipeline] = build_pipeline) -> FastAPI:
    """
    Build the worker application.

    The pipeline is created on the first job so importing the module needs no
    database or credentials.
    """
    app = FastAPI(title="sermon_catalog worker")
    state: dict[str, ChunkPipeline] = {}

    def get_pipeline() -> ChunkPipeline:
        if "pipeline" not in state:
            state["pipeline"] = pipeline_factory()
        return state["pipeline"]

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/transcribe", status_code=202)
    def transcribe(request: TranscribeRequest, background_tasks: BackgroundTasks):
        """Queue a chunked transcription job."""
        if not request.episodeId or not request.audioUrl:
            raise HTTPException(status_code=400, detail="episodeId and audioUrl are required")

        pipeline = get_pipeline()
        logger.info(f"Accepted transcription job for {request.episodeId}")
        background_tasks.add_task(pipeline.run, request.episodeId, request.audioUrl)
        return {"accepted": True}

    return app


app = create_app()
