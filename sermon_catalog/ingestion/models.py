"""Source-level episode snapshot shared by the adapters and the matcher."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

FEED = "feed"
VIDEO = "video"


@dataclass(frozen=True)
class SourceEpisode:
    """
    One episode as listed by a single source at fetch time.

    Attributes:
        source: FEED or VIDEO
        title: Episode title as published
        description: Plain-text description (may be empty)
        publish_date: Naive UTC publication datetime, None when unknown
        canonical_url: Public page of the episode on its source
        media_url: Direct audio asset URL, when the source exposes one
        external_id: Identifier unique within the source (RSS guid, video id)
    """

    source: str
    title: str
    description: str
    publish_date: Optional[datetime]
    canonical_url: str
    external_id: str
    media_url: Optional[str] = None
