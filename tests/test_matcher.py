"""Tests for the cross-source episode matcher."""

from datetime import datetime

import pytest

from sermon_catalog.matching import MATCH_THRESHOLD, match_episodes
from conftest import day, feed_episode, video_episode


class TestMatchEpisodes:
    """Test forward matching, residuals and ordering."""

    def test_faith_series_scenario(self):
        feed = [feed_episode("Faith Series - Part 3", datetime(2024, 5, 1))]
        videos = [video_episode("Faith Series Pt. 3", datetime(2024, 5, 2), "vid3")]

        candidates = match_episodes(feed, videos)

        assert len(candidates) == 1
        candidate = candidates[0]
        assert candidate.is_pair
        assert candidate.confidence >= MATCH_THRESHOLD
        assert "date" in candidate.match_reason
        assert "title" in candidate.match_reason
        assert candidate.title == "Faith Series - Part 3"

    def test_identical_pairs_have_full_confidence(self):
        feed = [feed_episode("Walking in Grace", day(3, 10))]
        videos = [video_episode("Walking in Grace", day(3, 10), "abc")]

        candidate = match_episodes(feed, videos)[0]

        assert candidate.confidence == pytest.approx(1.0)
        assert candidate.video_episode.external_id == "abc"

    def test_no_match_outside_window_without_title_overlap(self):
        feed = [feed_episode("Grace Abounds", day(3, 1))]
        videos = [video_episode("Sermon: Walking With Power", day(3, 20), "xyz")]

        candidates = match_episodes(feed, videos)

        assert not any(c.is_pair for c in candidates)
        assert len(candidates) == 2

    def test_residuals_and_content_filter(self):
        feed = [feed_episode("Renewed Mind", day(4, 7))]
        videos = [
            video_episode("Church picnic highlights", day(4, 20), "picnic"),
            video_episode("Sunday Sermon: Hope Rising", day(4, 14), "hope"),
        ]

        candidates = match_episodes(feed, videos)

        assert [c.title for c in candidates] == ["Sunday Sermon: Hope Rising", "Renewed Mind"]
        video_only, feed_only = candidates
        assert video_only.feed_episode is None
        assert video_only.confidence == 1.0
        assert video_only.match_reason.startswith("video only")
        assert feed_only.video_episode is None
        assert feed_only.confidence == 1.0
        assert feed_only.match_reason.startswith("feed only")

    def test_tie_broken_by_closest_date(self):
        feed = [feed_episode("Faith Series Part 3", datetime(2024, 5, 1, 10, 0))]
        videos = [
            video_episode("Faith Series Part 3", datetime(2024, 5, 1, 20, 0), "later"),
            video_episode("Faith Series Part 3", datetime(2024, 5, 1, 11, 0), "closer"),
        ]

        pair = next(c for c in match_episodes(feed, videos) if c.is_pair)

        assert pair.video_episode.external_id == "closer"

    def test_each_video_used_once(self):
        feed = [
            feed_episode("Faith Series Part 1", day(5, 1)),
            feed_episode("Faith Series Part 2", day(5, 8)),
        ]
        videos = [
            video_episode("Faith Series Part 2", day(5, 8), "p2"),
            video_episode("Faith Series Part 1", day(5, 1), "p1"),
        ]

        pairs = {c.feed_episode.title: c.video_episode.external_id for c in match_episodes(feed, videos)}

        assert pairs == {"Faith Series Part 1": "p1", "Faith Series Part 2": "p2"}

    def test_missing_date_requires_title_alone(self):
        feed = [
            feed_episode("Grace Abounds Today", None),
            feed_episode("Hope Rising", None),
        ]
        videos = [
            video_episode("Sermon: Walking in Grace", day(6, 2), "grace"),
            video_episode("Hope Rising Sermon", day(6, 9), "hope"),
        ]

        candidates = match_episodes(feed, videos)
        pairs = [c for c in candidates if c.is_pair]

        assert len(pairs) == 1
        assert pairs[0].video_episode.external_id == "hope"
        assert pairs[0].date == day(6, 9)

    def test_output_sorted_by_date_then_input_order(self):
        feed = [
            feed_episode("Alpha Teaching", day(1, 5)),
            feed_episode("Beta Teaching", day(1, 12)),
            feed_episode("Gamma Teaching", day(1, 5)),
            feed_episode("Undated Teaching", None),
        ]

        titles = [c.title for c in match_episodes(feed, [])]

        assert titles == ["Beta Teaching", "Alpha Teaching", "Gamma Teaching", "Undated Teaching"]

    def test_deterministic(self):
        feed = [feed_episode(f"Faith Series Part {i}", day(5, i)) for i in range(1, 6)]
        videos = [video_episode(f"Faith Series Pt. {i}", day(5, i + 1), f"v{i}") for i in range(1, 6)]

        first = [(c.title, c.confidence, c.match_reason) for c in match_episodes(feed, videos)]
        second = [(c.title, c.confidence, c.match_reason) for c in match_episodes(feed, videos)]

        assert first == second
