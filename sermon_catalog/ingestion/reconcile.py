#!/usr/bin/env python3
"""
Catalog reconciliation: merge match candidates into the persisted catalog.

For each candidate the stored entry is looked up by feed URL, then by video
id. Updates are non-destructive: a stored media URL, feed URL or video URL is
never cleared by a candidate that lacks it. Title, date and description follow
the merge preferences (feed title, newest date, longest description).

Single-source candidates without a stored entry go through a reverse-lookup
pass against stored entries of the other source (date window first, then the
matcher's score), so an entry created before its counterpart appeared is
completed instead of duplicated. A last pass folds stored feed-only entries
into matching stored video-only entries and reports the leftover rows.

Every failure is recorded per title; the batch never aborts.
"""

from datetime import datetime
from typing import Any, Callable, Optional, Sequence

from sermon_catalog.db import CatalogEntry, CatalogStore, SourceType
from sermon_catalog.ingestion.models import FEED, SourceEpisode
from sermon_catalog.matching import MatchCandidate
from sermon_catalog.matching.scoring import (
    DEFAULT_DATE_WINDOW_DAYS,
    date_distance_days,
    score_pair,
)
from sermon_catalog.logger import setup_logging, log_function


logger = setup_logging(logger_name="reconcile", log_file="logs/reconcile.log")


def _empty_stats() -> dict[str, Any]:
    return {
        "created": 0,
        "updated": 0,
        "merged": 0,
        "skipped": 0,
        "backfilled": 0,
        "redundant": [],
        "errors": [],
    }


def _has_feed(entry: CatalogEntry) -> bool:
    return bool(entry.feed_url)


def _has_video(entry: CatalogEntry) -> bool:
    return bool(entry.video_id)


def merge_changes(existing: CatalogEntry, candidate: MatchCandidate) -> dict[str, Any]:
    """
    Compute the column changes a candidate brings to a stored entry.

    Only fields the candidate improves are returned; nothing is cleared.
    """
    feed = candidate.feed_episode
    video = candidate.video_episode
    changes: dict[str, Any] = {}

    # Feed titles win; a video-only candidate never renames a feed-backed entry
    if candidate.title and candidate.title != existing.title:
        if feed is not None or not _has_feed(existing):
            changes["title"] = candidate.title

    if candidate.date and (existing.date is None or candidate.date > existing.date):
        changes["date"] = candidate.date

    if candidate.description and len(candidate.description) > len(existing.description or ""):
        changes["description"] = candidate.description

    if feed is not None and not existing.feed_url:
        changes["feed_url"] = feed.canonical_url
    if video is not None:
        if not existing.video_id:
            changes["video_id"] = video.external_id
        if not existing.video_url:
            changes["video_url"] = video.canonical_url

    if not existing.media_url and feed is not None and feed.media_url:
        changes["media_url"] = feed.media_url

    return changes


def _record_sources(store: CatalogStore, entry_id: str, feed: Optional[SourceEpisode], video: Optional[SourceEpisode]) -> None:
    """Write source rows; failures are logged and never fail the entry."""
    for source_type, episode in ((SourceType.FEED, feed), (SourceType.VIDEO, video)):
        if episode is None:
            continue
        try:
            store.add_source(
                entry_id,
                source_type.value,
                episode.external_id,
                episode.canonical_url,
            )
        except Exception as e:
            logger.warning(f"Could not record {source_type.value} source for {entry_id}: {e}")


def _create(store: CatalogStore, candidate: MatchCandidate) -> CatalogEntry:
    feed = candidate.feed_episode
    video = candidate.video_episode
    entry = store.insert(
        title=candidate.title,
        date=candidate.date,
        description=candidate.description or None,
        feed_url=feed.canonical_url if feed else None,
        video_url=video.canonical_url if video else None,
        video_id=video.external_id if video else None,
        media_url=feed.media_url if feed else None,
    )
    _record_sources(store, entry.id, feed, video)
    return entry


def _apply_merge(store: CatalogStore, existing: CatalogEntry, candidate: MatchCandidate) -> str:
    """Update a stored entry; returns "merged", "updated" or "skipped"."""
    changes = merge_changes(existing, candidate)
    if not changes:
        return "skipped"

    store.update(existing.id, **changes)
    _record_sources(
        store,
        existing.id,
        candidate.feed_episode if "feed_url" in changes else None,
        candidate.video_episode if "video_id" in changes else None,
    )

    had_feed, had_video = _has_feed(existing), _has_video(existing)
    now_feed = had_feed or "feed_url" in changes
    now_video = had_video or "video_id" in changes
    if had_feed != had_video and now_feed and now_video:
        return "merged"
    return "updated"


def find_existing(store: CatalogStore, candidate: MatchCandidate) -> Optional[CatalogEntry]:
    """Stored entry for a candidate: by feed URL first, then by video id."""
    if candidate.feed_episode is not None and candidate.feed_episode.canonical_url:
        existing = store.find_by_feed_url(candidate.feed_episode.canonical_url)
        if existing is not None:
            return existing
    if candidate.video_episode is not None and candidate.video_episode.external_id:
        return store.find_by_video_id(candidate.video_episode.external_id)
    return None


def _best_counterpart(
    title: str,
    date: Optional[datetime],
    description: Optional[str],
    stored: Sequence[CatalogEntry],
    taken: set[str],
    window_days: float,
) -> Optional[CatalogEntry]:
    """Closest-scoring stored entry inside the date window, or None."""
    if date is None:
        return None

    best_entry, best_key = None, None
    for entry in stored:
        if entry.id in taken:
            continue
        distance = date_distance_days(date, entry.date)
        if distance is None or distance > window_days:
            continue
        score = score_pair(
            title,
            date,
            description,
            entry.title,
            entry.date,
            entry.description,
            window_days=window_days,
        )
        if not score.accepted:
            continue
        key = (score.total, -distance, score.title_score)
        if best_key is None or key > best_key:
            best_entry, best_key = entry, key
    return best_entry


@log_function(logger_name="reconcile", log_execution_time=True)
def reconcile_candidates(
    candidates: Sequence[MatchCandidate],
    store: CatalogStore,
    date_window_days: float = DEFAULT_DATE_WINDOW_DAYS,
) -> dict[str, Any]:
    """
    Merge candidates into the catalog.

    Args:
        candidates: Matcher output
        store: Catalog persistence
        date_window_days: Window used by the reverse-lookup passes

    Returns:
        Stats dict with keys created, updated, merged, skipped, backfilled,
        redundant (ids of feed-only rows folded into a video entry) and
        errors (list of "title: message" strings)
    """
    stats = _empty_stats()
    deferred_feed: list[MatchCandidate] = []
    deferred_video: list[MatchCandidate] = []

    for candidate in candidates:
        try:
            existing = find_existing(store, candidate)
            if existing is None:
                if not candidate.is_pair:
                    if candidate.feed_episode is not None:
                        deferred_feed.append(candidate)
                    else:
                        deferred_video.append(candidate)
                    continue
                _create(store, candidate)
                stats["created"] += 1
                logger.info(f"Created: {candidate.title[:60]}")
            else:
                outcome = _apply_merge(store, existing, candidate)
                stats[outcome] += 1
                if outcome != "skipped":
                    logger.info(f"{outcome.capitalize()}: {candidate.title[:60]}")
        except Exception as e:
            logger.error(f"Error reconciling '{candidate.title}': {e}")
            stats["errors"].append(f"{candidate.title}: {e}")

    if deferred_feed:
        _reverse_lookup_pass(store, deferred_feed, store.list_video_only, stats, date_window_days)
    if deferred_video:
        _reverse_lookup_pass(store, deferred_video, store.list_feed_only, stats, date_window_days)
    _fold_stored_pairs(store, stats, date_window_days)

    logger.info(
        f"Reconciliation done: {stats['created']} created, {stats['updated']} updated, "
        f"{stats['merged']} merged, {stats['backfilled']} backfilled, "
        f"{stats['skipped']} skipped, {len(stats['redundant'])} redundant, "
        f"{len(stats['errors'])} errors"
    )
    return stats


def _reverse_lookup_pass(
    store: CatalogStore,
    deferred: Sequence[MatchCandidate],
    load_counterparts: Callable[[], list[CatalogEntry]],
    stats: dict[str, Any],
    window_days: float,
) -> None:
    """Attach single-source candidates to stored entries of the other source, else create them."""
    try:
        counterparts = load_counterparts()
    except Exception as e:
        logger.error(f"Could not load stored entries for backfill: {e}")
        counterparts = []

    taken: set[str] = set()
    for candidate in deferred:
        kind = "feed" if candidate.feed_episode is not None else "video"
        try:
            target = _best_counterpart(
                candidate.title,
                candidate.date,
                candidate.description,
                counterparts,
                taken,
                window_days,
            )
            if target is None:
                _create(store, candidate)
                stats["created"] += 1
                logger.info(f"Created {kind}-only: {candidate.title[:60]}")
                continue

            taken.add(target.id)
            _apply_merge(store, target, candidate)
            stats["backfilled"] += 1
            logger.info(
                f"Backfilled {kind} episode '{candidate.title[:50]}' into entry {target.id}"
            )
        except Exception as e:
            logger.error(f"Error reconciling '{candidate.title}': {e}")
            stats["errors"].append(f"{candidate.title}: {e}")


def _feed_candidate_from_entry(entry: CatalogEntry) -> MatchCandidate:
    """Wrap a stored feed-only entry so it can be merged like a fresh candidate."""
    feed = SourceEpisode(
        source=FEED,
        title=entry.title,
        description=entry.description or "",
        publish_date=entry.date,
        canonical_url=entry.feed_url,
        external_id=entry.feed_url,
        media_url=entry.media_url,
    )
    return MatchCandidate(
        title=entry.title,
        date=entry.date,
        description=entry.description or "",
        feed_episode=feed,
        video_episode=None,
        confidence=0.0,
        match_reason=f"stored feed entry {entry.id}",
    )


def _fold_stored_pairs(store: CatalogStore, stats: dict[str, Any], window_days: float) -> None:
    """
    Heal stored video-only entries whose feed counterpart was stored separately.

    The feed entry's URL and media are folded into the video-only entry. The
    feed-only row stays in place and its id is reported under "redundant".
    """
    try:
        video_only = store.list_video_only()
        feed_only = store.list_feed_only()
    except Exception as e:
        logger.error(f"Could not load stored entries for the stored-pair pass: {e}")
        return

    taken: set[str] = set()
    for feed_entry in feed_only:
        owner = store.find_by_feed_url(feed_entry.feed_url)
        if owner is not None and owner.id != feed_entry.id:
            # Already folded by an earlier sync
            taken.add(feed_entry.id)
            if feed_entry.id not in stats["redundant"]:
                stats["redundant"].append(feed_entry.id)

    for video_entry in video_only:
        try:
            target = _best_counterpart(
                video_entry.title,
                video_entry.date,
                video_entry.description,
                feed_only,
                taken,
                window_days,
            )
            if target is None:
                continue

            taken.add(target.id)
            _apply_merge(store, video_entry, _feed_candidate_from_entry(target))
            stats["backfilled"] += 1
            stats["redundant"].append(target.id)
            logger.warning(
                f"Folded stored feed entry {target.id} into video entry {video_entry.id}; "
                f"{target.id} is now redundant"
            )
        except Exception as e:
            logger.error(f"Error reconciling '{video_entry.title}': {e}")
            stats["errors"].append(f"{video_entry.title}: {e}")
