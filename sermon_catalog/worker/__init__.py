"""
Out-of-process transcription worker.

Modules:
- downloader.py: direct audio download and video-platform audio extraction
- segmenter.py: ffmpeg re-encode and fixed-duration split
- pipeline.py: ChunkPipeline, the resumable chunked transcription job
- server.py: FastAPI service accepting jobs from the orchestrator
"""
