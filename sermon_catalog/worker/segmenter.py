"""
Audio segmentation with ffmpeg.

The input is re-encoded to 64 kbps mono 16 kHz MP3 and split with the segment
muxer into fixed-duration chunks named chunk_000.mp3, chunk_001.mp3, ...
"""

import subprocess
from pathlib import Path

from sermon_catalog.errors import SegmentationError
from sermon_catalog.logger import setup_logging, log_function


logger = setup_logging(logger_name="worker", log_file="logs/worker.log")

CHUNK_DURATION_SECONDS = 600
CHUNK_PATTERN = "chunk_%03d.mp3"


def build_segment_command(input_path: Path, output_dir: Path, chunk_seconds: int) -> list[str]:
    return [
        "ffmpeg",
        "-y",
        "-hide_banner",
        "-loglevel",
        "error",
        "-i",
        str(input_path),
        "-vn",
        "-acodec",
        "libmp3lame",
        "-b:a",
        "64k",
        "-ar",
        "16000",
        "-ac",
        "1",
        "-f",
        "segment",
        "-segment_time",
        str(chunk_seconds),
        "-segment_format",
        "mp3",
        "-reset_timestamps",
        "1",
        str(output_dir / CHUNK_PATTERN),
    ]


@log_function(logger_name="worker", log_execution_time=True)
def segment_audio(
    input_path: Path, output_dir: Path, chunk_seconds: int = CHUNK_DURATION_SECONDS
) -> list[Path]:
    """
    Split an audio file into fixed-duration chunks.

    Args:
        input_path: Source audio (any format ffmpeg reads)
        output_dir: Directory receiving the chunk files
        chunk_seconds: Chunk duration (default: 600 = 10 min)

    Returns:
        Chunk paths in index order

    Raises:
        SegmentationError: If ffmpeg is missing, fails, or produces nothing
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    command = build_segment_command(input_path, output_dir, chunk_seconds)
    logger.info(f"Segmenting {input_path.name} into {chunk_seconds}s chunks")

    try:
        subprocess.run(command, capture_output=True, text=True, check=True)
    except FileNotFoundError as e:
        raise SegmentationError("ffmpeg not found - install ffmpeg") from e
    except subprocess.CalledProcessError as e:
        raise SegmentationError(f"ffmpeg failed: {(e.stderr or '').strip()[:500]}") from e

    chunks = sorted(output_dir.glob("chunk_*.mp3"))
    if not chunks:
        raise SegmentationError(f"ffmpeg produced no chunks for {input_path.name}")

    logger.info(f"Created {len(chunks)} chunks")
    return chunks
