"""
Catalog sync: fetch both sources, match them, reconcile into the store.

A source that fails to fetch contributes zero episodes; the sync carries on
with the other one.
"""

from typing import Any, Callable, Optional

from .feed_source import fetch_feed_episodes
from .models import SourceEpisode
from .reconcile import reconcile_candidates
from .video_source import fetch_video_episodes
from sermon_catalog.config import Settings
from sermon_catalog.db import CatalogStore
from sermon_catalog.matching import match_episodes
from sermon_catalog.logger import setup_logging, log_function


logger = setup_logging(logger_name="sync_catalog", log_file="logs/sync_catalog.log")


def _safe_fetch(
    label: str, fetch: Callable[[], list[SourceEpisode]], errors: list[str]
) -> list[SourceEpisode]:
    try:
        return fetch()
    except Exception as e:
        logger.error(f"Failed to fetch {label} catalog, continuing without it: {e}")
        errors.append(f"{label} source: {e}")
        return []


@log_function(logger_name="sync_catalog", log_execution_time=True)
def sync_catalog(
    settings: Settings,
    store: Optional[CatalogStore] = None,
    feed_url: Optional[str] = None,
    channel: Optional[str] = None,
    limit: Optional[int] = None,
    dry_run: bool = False,
) -> dict[str, Any]:
    """
    Run one sync.

    Args:
        settings: Runtime settings (feed URL, channel, API key)
        store: Catalog store (default: CatalogStore())
        feed_url: Override of settings.feed_rss_url
        channel: Override of settings.video_channel
        limit: Keep only the N most recent episodes of each source
        dry_run: Match only, write nothing

    Returns:
        Summary with source counts, candidate count, reconciliation stats and
        an ``errors`` list
    """
    errors: list[str] = []
    feed_episodes = _safe_fetch(
        "feed", lambda: fetch_feed_episodes(feed_url or settings.feed_rss_url), errors
    )
    video_episodes = _safe_fetch(
        "video",
        lambda: fetch_video_episodes(
            channel or settings.video_channel,
            api_key=settings.youtube_api_key,
            limit=limit,
        ),
        errors,
    )
    if limit:
        feed_episodes = feed_episodes[:limit]

    candidates = match_episodes(feed_episodes, video_episodes)
    summary: dict[str, Any] = {
        "feed_episodes": len(feed_episodes),
        "video_episodes": len(video_episodes),
        "candidates": len(candidates),
        "pairs": sum(1 for c in candidates if c.is_pair),
    }

    if dry_run:
        for candidate in candidates:
            logger.info(
                f"[dry-run] {candidate.date:%Y-%m-%d} {candidate.title[:60]} "
                f"({candidate.confidence:.2f}: {candidate.match_reason})"
                if candidate.date
                else f"[dry-run] (undated) {candidate.title[:60]} ({candidate.match_reason})"
            )
        summary["errors"] = errors
        summary["candidate_list"] = candidates
        return summary

    stats = reconcile_candidates(candidates, store or CatalogStore())
    summary.update(stats)
    summary["errors"] = errors + stats["errors"]
    return summary
