"""Tests for the source adapters and the sync entry point."""

from datetime import datetime
from unittest.mock import Mock, patch

import requests

from sermon_catalog.ingestion import video_source
from sermon_catalog.ingestion.feed_source import parse_feed, parse_rss_date
from sermon_catalog.ingestion.sync import sync_catalog
from conftest import day, video_episode

RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>FX Talk</title>
    <item>
      <title>Faith Series - Part 3</title>
      <link>https://fxtalk.podbean.com/e/faith-series-part-3/</link>
      <guid>fxtalk-faith-3</guid>
      <pubDate>Wed, 01 May 2024 14:00:00 +0200</pubDate>
      <description><![CDATA[<p>Pastor James on <b>faith</b> that endures.</p>]]></description>
      <enclosure url="https://mcdn.podbean.com/faith-3.mp3" type="audio/mpeg" length="123"/>
    </item>
    <item>
      <title>No Link Episode</title>
      <guid>guid-only-item</guid>
    </item>
    <item>
      <description>Untitled item is skipped</description>
    </item>
  </channel>
</rss>
"""


class TestFeedSource:
    """Test RSS parsing."""

    def test_parse_feed(self):
        episodes = parse_feed(RSS.encode("utf-8"))

        assert [e.title for e in episodes] == ["Faith Series - Part 3", "No Link Episode"]
        first = episodes[0]
        assert first.canonical_url == "https://fxtalk.podbean.com/e/faith-series-part-3/"
        assert first.external_id == "fxtalk-faith-3"
        assert first.media_url == "https://mcdn.podbean.com/faith-3.mp3"
        assert first.description == "Pastor James on faith that endures."
        assert first.publish_date == datetime(2024, 5, 1, 12, 0)

    def test_guid_fallback_and_missing_enclosure(self):
        second = parse_feed(RSS.encode("utf-8"))[1]

        assert second.canonical_url == "guid-only-item"
        assert second.media_url is None
        assert second.publish_date is None

    def test_parse_rss_date_invalid(self):
        assert parse_rss_date("not a date") is None
        assert parse_rss_date("") is None


class TestVideoSource:
    """Test the video platform adapter."""

    def test_channel_videos_url(self):
        assert video_source.channel_videos_url("@fxchurch") == "https://www.youtube.com/@fxchurch/videos"
        assert video_source.channel_videos_url("fxchurch") == "https://www.youtube.com/@fxchurch/videos"
        channel_id = "UC" + "x" * 22
        assert video_source.channel_videos_url(channel_id).endswith(f"/channel/{channel_id}/videos")

    @patch("sermon_catalog.ingestion.video_source.YoutubeDL")
    def test_fetch_via_ytdlp(self, mock_ydl_class):
        ydl = mock_ydl_class.return_value.__enter__.return_value
        ydl.extract_info.return_value = {
            "entries": [
                {"id": "abc", "title": "Faith Series Pt. 3", "upload_date": "20240502"},
                {"id": "def", "title": "Hope Rising", "timestamp": 1714730400},
                None,
                {"id": "ghi"},
            ]
        }

        episodes = video_source.fetch_video_episodes("@fxchurch", limit=10)

        assert [e.external_id for e in episodes] == ["abc", "def"]
        assert episodes[0].publish_date == datetime(2024, 5, 2)
        assert episodes[0].canonical_url == "https://www.youtube.com/watch?v=abc"
        assert episodes[1].publish_date == datetime(2024, 5, 3, 10, 0)
        assert mock_ydl_class.call_args.args[0]["playlistend"] == 10

    @patch("sermon_catalog.ingestion.video_source._get_json")
    def test_fetch_via_api_paginates(self, mock_get_json):
        def item(video_id, title):
            return {
                "snippet": {
                    "title": title,
                    "description": "desc",
                    "publishedAt": "2024-05-02T10:00:00Z",
                    "resourceId": {"videoId": video_id},
                }
            }

        mock_get_json.side_effect = [
            {"items": [{"contentDetails": {"relatedPlaylists": {"uploads": "UUxyz"}}}]},
            {"items": [item("a", "First")], "nextPageToken": "p2"},
            {"items": [item("b", "Second")]},
        ]

        episodes = video_source.fetch_video_episodes("@fxchurch", api_key="key")

        assert [e.external_id for e in episodes] == ["a", "b"]
        assert episodes[0].publish_date == datetime(2024, 5, 2, 10, 0)
        assert mock_get_json.call_args_list[0].args[1]["forHandle"] == "@fxchurch"
        assert mock_get_json.call_args_list[2].args[1]["pageToken"] == "p2"


class TestSyncCatalog:
    """Test the end-to-end sync with patched adapters."""

    @patch("sermon_catalog.ingestion.sync.fetch_video_episodes")
    @patch("sermon_catalog.ingestion.sync.fetch_feed_episodes")
    def test_sync_writes_catalog(self, mock_feed, mock_video, store, settings):
        mock_feed.return_value = parse_feed(RSS.encode("utf-8"))[:1]
        mock_video.return_value = [video_episode("Faith Series Pt. 3", datetime(2024, 5, 2), "abc")]

        summary = sync_catalog(settings, store=store)

        assert summary["pairs"] == 1
        assert summary["created"] == 1
        assert summary["errors"] == []
        assert store.find_by_video_id("abc").media_url == "https://mcdn.podbean.com/faith-3.mp3"

    @patch("sermon_catalog.ingestion.sync.fetch_video_episodes")
    @patch("sermon_catalog.ingestion.sync.fetch_feed_episodes")
    def test_failed_source_counts_as_empty(self, mock_feed, mock_video, store, settings):
        mock_feed.side_effect = requests.ConnectionError("feed down")
        mock_video.return_value = [video_episode("Sunday Sermon: Hope", day(4, 14), "hope")]

        summary = sync_catalog(settings, store=store)

        assert summary["feed_episodes"] == 0
        assert summary["created"] == 1
        assert summary["errors"] == ["feed source: feed down"]

    @patch("sermon_catalog.ingestion.sync.fetch_video_episodes")
    @patch("sermon_catalog.ingestion.sync.fetch_feed_episodes")
    def test_dry_run_writes_nothing(self, mock_feed, mock_video, store, settings):
        mock_feed.return_value = parse_feed(RSS.encode("utf-8"))
        mock_video.return_value = []
        store = Mock(wraps=store)

        summary = sync_catalog(settings, store=store, dry_run=True)

        assert summary["candidates"] == 2
        assert len(summary["candidate_list"]) == 2
        store.insert.assert_not_called()
