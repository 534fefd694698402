"""
Cross-source episode matcher.

Pairs feed episodes (source A) with video episodes (source B) that describe
the same real-world episode. Deterministic for a given input: no randomness,
no clock. Steps:

1. Forward pass: each unconsumed feed episode takes its best unconsumed video
   if the score clears the threshold.
2. Reverse pass: each unconsumed video that looks like real content takes its
   best unconsumed feed episode under the same rule.
3. Residuals: leftover feed episodes, and leftover videos that look like
   content, become single-source candidates (confidence 1.0).

Output is sorted newest first; equal dates keep input order (feed list first,
then video list).
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from .scoring import (
    DEFAULT_DATE_WINDOW_DAYS,
    MatchScore,
    looks_like_content,
    score_pair,
)
from sermon_catalog.ingestion.models import SourceEpisode
from sermon_catalog.logger import setup_logging, log_function


logger = setup_logging(logger_name="matcher", log_file="logs/matcher.log")

TIE_TOLERANCE = 1e-9


@dataclass
class MatchCandidate:
    """A proposed catalog entry, before it is reconciled into the store."""

    title: str
    date: Optional[datetime]
    description: str
    feed_episode: Optional[SourceEpisode]
    video_episode: Optional[SourceEpisode]
    confidence: float
    match_reason: str
    order: int = 0

    @property
    def is_pair(self) -> bool:
        return self.feed_episode is not None and self.video_episode is not None


def _pick_best(
    scored: list[tuple[int, MatchScore]],
) -> Optional[tuple[int, MatchScore]]:
    """
    Best (index, score) by total, then closest date, then title similarity.

    Remaining ties keep the earliest index.
    """
    best = None
    for index, score in scored:
        if best is None:
            best = (index, score)
            continue
        _, current = best
        if score.total > current.total + TIE_TOLERANCE:
            best = (index, score)
            continue
        if abs(score.total - current.total) > TIE_TOLERANCE:
            continue
        distance = score.distance_days if score.distance_days is not None else float("inf")
        current_distance = (
            current.distance_days if current.distance_days is not None else float("inf")
        )
        if distance < current_distance:
            best = (index, score)
        elif distance == current_distance and score.title_score > current.title_score:
            best = (index, score)
    return best


def _score(feed: SourceEpisode, video: SourceEpisode, window_days: float) -> MatchScore:
    return score_pair(
        feed.title,
        feed.publish_date,
        feed.description,
        video.title,
        video.publish_date,
        video.description,
        window_days=window_days,
    )


def _paired(
    feed: SourceEpisode, video: SourceEpisode, score: MatchScore, order: int, reverse: bool
) -> MatchCandidate:
    reason = score.reason + ("; matched in reverse pass" if reverse else "")
    return MatchCandidate(
        title=feed.title,
        date=feed.publish_date or video.publish_date,
        description=feed.description or video.description,
        feed_episode=feed,
        video_episode=video,
        confidence=score.total,
        match_reason=reason,
        order=order,
    )


@log_function(logger_name="matcher", log_execution_time=True)
def match_episodes(
    feed_episodes: Sequence[SourceEpisode],
    video_episodes: Sequence[SourceEpisode],
    date_window_days: float = DEFAULT_DATE_WINDOW_DAYS,
) -> list[MatchCandidate]:
    """
    Match two independently ordered episode lists.

    Args:
        feed_episodes: Source A episodes, in source order
        video_episodes: Source B episodes, in source order
        date_window_days: Days after which the date signal reaches zero

    Returns:
        Candidates sorted by date descending (undated last), ties by input order
    """
    feed_consumed: set[int] = set()
    video_consumed: set[int] = set()
    candidates: list[MatchCandidate] = []
    video_offset = len(feed_episodes)

    # Forward pass
    for i, feed in enumerate(feed_episodes):
        scored = [
            (j, _score(feed, video, date_window_days))
            for j, video in enumerate(video_episodes)
            if j not in video_consumed
        ]
        best = _pick_best(scored)
        if best is None or not best[1].accepted:
            continue
        j, score = best
        feed_consumed.add(i)
        video_consumed.add(j)
        candidates.append(_paired(feed, video_episodes[j], score, i, reverse=False))
        logger.debug(
            f"Matched '{feed.title[:50]}' <-> '{video_episodes[j].title[:50]}' "
            f"({score.total:.2f}: {score.reason})"
        )

    # Reverse pass
    for j, video in enumerate(video_episodes):
        if j in video_consumed or not looks_like_content(video.title):
            continue
        scored = [
            (i, _score(feed, video, date_window_days))
            for i, feed in enumerate(feed_episodes)
            if i not in feed_consumed
        ]
        best = _pick_best(scored)
        if best is None or not best[1].accepted:
            continue
        i, score = best
        feed_consumed.add(i)
        video_consumed.add(j)
        candidates.append(_paired(feed_episodes[i], video, score, i, reverse=True))
        logger.debug(f"Reverse-matched '{video.title[:50]}' ({score.total:.2f})")

    # Residuals
    for i, feed in enumerate(feed_episodes):
        if i in feed_consumed:
            continue
        candidates.append(
            MatchCandidate(
                title=feed.title,
                date=feed.publish_date,
                description=feed.description,
                feed_episode=feed,
                video_episode=None,
                confidence=1.0,
                match_reason="feed only: no video counterpart above threshold",
                order=i,
            )
        )
    for j, video in enumerate(video_episodes):
        if j in video_consumed or not looks_like_content(video.title):
            continue
        candidates.append(
            MatchCandidate(
                title=video.title,
                date=video.publish_date,
                description=video.description,
                feed_episode=None,
                video_episode=video,
                confidence=1.0,
                match_reason="video only: no feed counterpart above threshold",
                order=video_offset + j,
            )
        )

    candidates.sort(key=lambda c: c.order)
    candidates.sort(key=lambda c: c.date or datetime.min, reverse=True)

    pairs = sum(1 for c in candidates if c.is_pair)
    logger.info(
        f"Matched {pairs} pairs from {len(feed_episodes)} feed episodes and "
        f"{len(video_episodes)} videos ({len(candidates)} candidates)"
    )
    return candidates
