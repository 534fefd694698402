"""
Media download for the worker.

Direct audio URLs are streamed with requests (browser headers, retries with
exponential backoff, size sanity check). Video-platform URLs go through
yt-dlp, which extracts the best audio stream.
"""

import os
import time
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlparse

import requests
from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadError, ExtractorError

from sermon_catalog.errors import MediaDownloadError
from sermon_catalog.logger import setup_logging, log_function


logger = setup_logging(logger_name="worker", log_file="logs/worker.log")

VIDEO_HOSTS = ("youtube.com", "youtu.be", "m.youtube.com", "www.youtube.com")
MIN_MEDIA_BYTES = 100 * 1024
DOWNLOAD_TIMEOUT_SECONDS = 300

# Some podcast CDNs redirect differently for non-browser clients
BROWSER_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36",
    "Accept": "audio/mpeg, audio/*, */*",
    "Accept-Language": "en-US,en;q=0.9",
}


def is_video_platform_url(url: str) -> bool:
    host = (urlparse(url).hostname or "").lower()
    return any(host == h or host.endswith("." + h) for h in VIDEO_HOSTS)


def _extension_for(url: str) -> str:
    suffix = Path(urlparse(url).path).suffix.lower()
    return suffix if suffix in (".mp3", ".m4a", ".mp4", ".wav", ".ogg", ".aac") else ".mp3"


def download_direct(
    url: str,
    workdir: Path,
    max_retries: int = 3,
    sleep: Callable[[float], None] = time.sleep,
) -> Path:
    """
    Stream a direct audio URL to ``workdir``.

    Raises:
        MediaDownloadError: After ``max_retries`` failed attempts
    """
    target = workdir / f"input{_extension_for(url)}"
    last_error: Optional[Exception] = None

    for attempt in range(max_retries):
        try:
            logger.info(f"Downloading {url[:100]} (attempt {attempt + 1}/{max_retries})")
            response = requests.get(
                url, stream=True, headers=BROWSER_HEADERS, timeout=DOWNLOAD_TIMEOUT_SECONDS
            )
            response.raise_for_status()

            with open(target, "wb") as f:
                for chunk in response.iter_content(chunk_size=64 * 1024):
                    if chunk:
                        f.write(chunk)

            size = os.path.getsize(target)
            if size < MIN_MEDIA_BYTES:
                raise MediaDownloadError(f"Downloaded file too small: {size} bytes")

            logger.info(f"Downloaded {target.name} ({size:,} bytes)")
            return target

        except (requests.RequestException, MediaDownloadError) as e:
            last_error = e
            logger.warning(f"Download attempt {attempt + 1} failed: {e}")
            if target.exists():
                target.unlink()

        if attempt < max_retries - 1:
            wait_time = 2**attempt  # 1s, 2s, 4s
            logger.info(f"Waiting {wait_time}s before retry...")
            sleep(wait_time)

    raise MediaDownloadError(f"Failed to download {url} after {max_retries} attempts: {last_error}")


def download_video_audio(url: str, workdir: Path) -> Path:
    """
    Extract the best audio stream of a video with yt-dlp.

    Raises:
        MediaDownloadError: If extraction fails or produces no file
    """
    ydl_opts = {
        "format": "bestaudio/best",
        "outtmpl": str(workdir / "input.%(ext)s"),
        "noplaylist": True,
        "quiet": True,
        "no_warnings": True,
    }
    try:
        with YoutubeDL(ydl_opts) as ydl:
            info = ydl.extract_info(url, download=True)
            if not info:
                raise MediaDownloadError(f"No video information for {url}")
            path = Path(ydl.prepare_filename(info))
    except (DownloadError, ExtractorError) as e:
        raise MediaDownloadError(f"Failed to extract audio from {url}: {e}") from e

    if not path.exists():
        # Post-processing may have changed the extension
        matches = sorted(workdir.glob("input.*"))
        if not matches:
            raise MediaDownloadError(f"Download finished but no file found for {url}")
        path = matches[0]

    logger.info(f"Extracted video audio to {path.name} ({path.stat().st_size:,} bytes)")
    return path


@log_function(logger_name="worker", log_execution_time=True)
def download_media(url: str, workdir: Path) -> Path:
    """Download the media asset of an entry into ``workdir``."""
    workdir.mkdir(parents=True, exist_ok=True)
    if is_video_platform_url(url):
        return download_video_audio(url, workdir)
    return download_direct(url, workdir)
