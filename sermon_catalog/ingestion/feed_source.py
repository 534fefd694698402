"""
Podcast RSS feed adapter (source A).

Fetches the feed with requests and parses items with BeautifulSoup's XML
parser into SourceEpisode snapshots. Transport and HTTP errors propagate:
the sync layer decides how to degrade.
"""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

import requests
from bs4 import BeautifulSoup

from .models import FEED, SourceEpisode
from sermon_catalog.logger import setup_logging, log_function


logger = setup_logging(logger_name="sync_catalog", log_file="logs/sync_catalog.log")

FEED_TIMEOUT_SECONDS = 30


def parse_rss_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an RFC 2822 pubDate into a naive UTC datetime.

    Returns None for empty or unparseable values.
    """
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError):
        logger.warning(f"Could not parse feed date: {value!r}")
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _text(item, tag: str) -> str:
    node = item.find(tag)
    return node.get_text(strip=True) if node else ""


def parse_feed(xml_content: bytes | str) -> list[SourceEpisode]:
    """
    Parse RSS XML into episodes, in feed order.

    Items without a title are skipped. The item ``link`` is the canonical URL
    (falling back to the guid), the enclosure URL is the media URL.
    """
    soup = BeautifulSoup(xml_content, "xml")
    episodes = []

    for item in soup.find_all("item"):
        title = _text(item, "title")
        if not title:
            continue

        guid = _text(item, "guid")
        link = _text(item, "link") or guid
        if not link:
            logger.warning(f"Feed item '{title[:50]}' has no link or guid, skipping")
            continue

        enclosure = item.find("enclosure")
        media_url = enclosure.get("url") if enclosure is not None else None

        raw_description = _text(item, "description")
        description = (
            BeautifulSoup(raw_description, "html.parser").get_text(" ", strip=True)
            if raw_description
            else ""
        )

        episodes.append(
            SourceEpisode(
                source=FEED,
                title=title,
                description=description,
                publish_date=parse_rss_date(_text(item, "pubDate")),
                canonical_url=link,
                external_id=guid or link,
                media_url=media_url or None,
            )
        )

    return episodes


@log_function(logger_name="sync_catalog", log_execution_time=True)
def fetch_feed_episodes(rss_url: str) -> list[SourceEpisode]:
    """
    Fetch and parse the podcast feed.

    Args:
        rss_url: RSS feed URL

    Returns:
        Episodes in feed order

    Raises:
        requests.RequestException: If the feed cannot be fetched
    """
    logger.info(f"Fetching feed from {rss_url}...")
    response = requests.get(rss_url, timeout=FEED_TIMEOUT_SECONDS)
    response.raise_for_status()

    episodes = parse_feed(response.content)
    logger.info(f"Found {len(episodes)} feed episodes")
    return episodes
