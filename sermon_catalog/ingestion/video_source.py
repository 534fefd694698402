"""
Video platform adapter (source B).

Two ways to list a channel's uploads:
- YouTube Data API v3 (uploads playlist, paginated) when an API key is set
- yt-dlp flat extraction of the channel's videos tab otherwise

Videos have no direct media URL; the worker extracts audio from the watch URL.
"""

from datetime import datetime, timezone
from typing import Any, Optional

import requests
from yt_dlp import YoutubeDL

from .models import VIDEO, SourceEpisode
from sermon_catalog.logger import setup_logging, log_function


logger = setup_logging(logger_name="sync_catalog", log_file="logs/sync_catalog.log")

YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
API_TIMEOUT_SECONDS = 30
MAX_API_PAGES = 20


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def channel_videos_url(channel: str) -> str:
    """Videos tab URL for a handle (@name), channel id (UC...) or full URL."""
    if channel.startswith("http://") or channel.startswith("https://"):
        return channel
    if channel.startswith("UC") and len(channel) == 24:
        return f"https://www.youtube.com/channel/{channel}/videos"
    handle = channel if channel.startswith("@") else f"@{channel}"
    return f"https://www.youtube.com/{handle}/videos"


def _parse_api_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


def _parse_ytdlp_date(entry: dict[str, Any]) -> Optional[datetime]:
    timestamp = entry.get("timestamp") or entry.get("release_timestamp")
    if timestamp:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc).replace(tzinfo=None)
    upload_date = entry.get("upload_date")
    if upload_date:
        try:
            return datetime.strptime(upload_date, "%Y%m%d")
        except ValueError:
            return None
    return None


def _get_json(path: str, params: dict[str, Any]) -> dict[str, Any]:
    response = requests.get(f"{YOUTUBE_API_BASE}/{path}", params=params, timeout=API_TIMEOUT_SECONDS)
    response.raise_for_status()
    return response.json()


def _uploads_playlist_id(channel: str, api_key: str) -> str:
    params = {"part": "contentDetails", "key": api_key}
    if channel.startswith("UC") and len(channel) == 24:
        params["id"] = channel
    else:
        params["forHandle"] = channel if channel.startswith("@") else f"@{channel}"

    data = _get_json("channels", params)
    items = data.get("items") or []
    uploads = (
        items[0].get("contentDetails", {}).get("relatedPlaylists", {}).get("uploads")
        if items
        else None
    )
    if not uploads:
        raise ValueError(f"Could not find uploads playlist for channel {channel!r}")
    return uploads


def fetch_via_api(channel: str, api_key: str) -> list[SourceEpisode]:
    """List all uploads through the Data API (newest first)."""
    playlist_id = _uploads_playlist_id(channel, api_key)
    episodes = []
    page_token = None

    for _ in range(MAX_API_PAGES):
        params = {
            "part": "snippet",
            "playlistId": playlist_id,
            "maxResults": 50,
            "key": api_key,
        }
        if page_token:
            params["pageToken"] = page_token
        data = _get_json("playlistItems", params)

        for item in data.get("items", []):
            snippet = item.get("snippet", {})
            video_id = snippet.get("resourceId", {}).get("videoId")
            title = snippet.get("title")
            if not video_id or not title:
                continue
            episodes.append(
                SourceEpisode(
                    source=VIDEO,
                    title=title,
                    description=snippet.get("description") or "",
                    publish_date=_parse_api_date(snippet.get("publishedAt")),
                    canonical_url=watch_url(video_id),
                    external_id=video_id,
                )
            )

        page_token = data.get("nextPageToken")
        if not page_token:
            break

    return episodes


def fetch_via_ytdlp(channel: str, limit: Optional[int] = None) -> list[SourceEpisode]:
    """List uploads with yt-dlp flat extraction (no downloads)."""
    ydl_opts: dict[str, Any] = {
        "extract_flat": "in_playlist",
        "skip_download": True,
        "quiet": True,
        "no_warnings": True,
    }
    if limit:
        ydl_opts["playlistend"] = limit

    with YoutubeDL(ydl_opts) as ydl:
        info = ydl.extract_info(channel_videos_url(channel), download=False)

    episodes = []
    for entry in (info or {}).get("entries") or []:
        if not entry:
            continue
        video_id = entry.get("id")
        title = entry.get("title")
        if not video_id or not title:
            continue
        episodes.append(
            SourceEpisode(
                source=VIDEO,
                title=title,
                description=entry.get("description") or "",
                publish_date=_parse_ytdlp_date(entry),
                canonical_url=watch_url(video_id),
                external_id=video_id,
            )
        )
    return episodes


@log_function(logger_name="sync_catalog", log_execution_time=True)
def fetch_video_episodes(
    channel: str, api_key: Optional[str] = None, limit: Optional[int] = None
) -> list[SourceEpisode]:
    """
    List a channel's videos.

    Args:
        channel: Handle ("@name"), channel id ("UC...") or channel URL
        api_key: YouTube Data API key; yt-dlp is used without one
        limit: Maximum number of videos (yt-dlp path only)

    Raises:
        requests.RequestException, yt_dlp.utils.DownloadError, ValueError
    """
    logger.info(f"Fetching video catalog for {channel}...")
    if api_key:
        episodes = fetch_via_api(channel, api_key)
    else:
        episodes = fetch_via_ytdlp(channel, limit=limit)
    if limit:
        episodes = episodes[:limit]
    logger.info(f"Found {len(episodes)} videos")
    return episodes
