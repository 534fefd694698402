"""Tests for reconciling match candidates into the catalog."""

from datetime import datetime

from sermon_catalog.db import CatalogStore, TranscriptionStatus
from sermon_catalog.ingestion.reconcile import merge_changes, reconcile_candidates
from sermon_catalog.matching import match_episodes
from conftest import day, feed_episode, video_episode


class TestReconcileCandidates:
    """Test create / update / merge / backfill outcomes."""

    def test_creates_paired_entry(self, store):
        feed = [feed_episode("Walking in Grace", day(3, 10), "Grace for the week")]
        videos = [video_episode("Walking in Grace", day(3, 10), "wig1")]

        stats = reconcile_candidates(match_episodes(feed, videos), store)

        assert stats["created"] == 1
        assert stats["errors"] == []
        entry = store.find_by_video_id("wig1")
        assert entry.feed_url == feed[0].canonical_url
        assert entry.media_url == feed[0].media_url
        assert entry.video_url == "https://www.youtube.com/watch?v=wig1"
        assert entry.status == TranscriptionStatus.PENDING
        assert {s.source_type for s in store.list_sources(entry.id)} == {"feed", "video"}

    def test_second_run_is_skipped(self, store):
        candidates = match_episodes(
            [feed_episode("Walking in Grace", day(3, 10))],
            [video_episode("Walking in Grace", day(3, 10), "wig1")],
        )
        reconcile_candidates(candidates, store)

        stats = reconcile_candidates(candidates, store)

        assert stats["created"] == 0
        assert stats["skipped"] == 1
        assert len(store.list_entries()) == 1

    def test_video_only_gains_feed_is_merged(self, store):
        video = video_episode("Sermon: Hope Rising", day(4, 14), "hope")
        reconcile_candidates(match_episodes([], [video]), store)
        assert store.find_by_video_id("hope").feed_url is None

        feed = feed_episode("Hope Rising", day(4, 14))
        stats = reconcile_candidates(match_episodes([feed], [video]), store)

        assert stats["merged"] == 1
        entry = store.find_by_video_id("hope")
        assert entry.feed_url == feed.canonical_url
        assert entry.media_url == feed.media_url
        assert entry.title == "Hope Rising"

    def test_merge_never_drops_known_fields(self, store):
        existing = store.insert(
            title="Renewed Mind",
            date=day(4, 7),
            description="short",
            feed_url="https://feed.example.com/e/renewed-mind",
            video_id="rm1",
            video_url="https://www.youtube.com/watch?v=rm1",
            media_url="https://override.example.com/renewed.mp3",
        )
        longer = "A much longer description of the Renewed Mind sermon series"
        candidates = match_episodes(
            [], [video_episode("Renewed Mind Sermon", day(4, 7), "rm1", description=longer)]
        )

        stats = reconcile_candidates(candidates, store)

        assert stats["updated"] == 1
        entry = store.get(existing.id)
        assert entry.media_url == "https://override.example.com/renewed.mp3"
        assert entry.feed_url == "https://feed.example.com/e/renewed-mind"
        assert entry.video_url == "https://www.youtube.com/watch?v=rm1"
        assert entry.title == "Renewed Mind"
        assert entry.description == longer

    def test_reverse_lookup_backfills_video_only_entry(self, store):
        reconcile_candidates(
            match_episodes([], [video_episode("Faith Series Pt. 3", datetime(2024, 5, 2), "vid3")]),
            store,
        )

        feed = feed_episode("Faith Series - Part 3", datetime(2024, 5, 1))
        stats = reconcile_candidates(match_episodes([feed], []), store)

        assert stats["backfilled"] == 1
        assert stats["created"] == 0
        entries = store.list_entries()
        assert len(entries) == 1
        assert entries[0].feed_url == feed.canonical_url
        assert entries[0].video_id == "vid3"
        assert entries[0].title == "Faith Series - Part 3"

    def test_video_only_candidate_backfills_stored_feed_entry(self, store):
        feed = feed_episode("Faith Series - Part 3", datetime(2024, 5, 1))
        video = video_episode("Faith Series Pt. 3", datetime(2024, 5, 2), "vid3")

        # Video source down, then feed source down, then both up
        reconcile_candidates(match_episodes([feed], []), store)
        second = reconcile_candidates(match_episodes([], [video]), store)
        third = reconcile_candidates(match_episodes([feed], [video]), store)

        assert second["backfilled"] == 1
        assert second["created"] == 0
        assert third["skipped"] == 1
        entries = store.list_entries()
        assert len(entries) == 1
        assert entries[0].feed_url == feed.canonical_url
        assert entries[0].video_id == "vid3"
        assert entries[0].media_url == feed.media_url

    def test_stored_duplicates_are_folded_and_reported(self, store):
        feed_entry = store.insert(
            title="Faith Series - Part 3",
            date=datetime(2024, 5, 1),
            feed_url="https://feed.example.com/e/faith-series-part-3",
            media_url="https://cdn.example.com/faith-3.mp3",
        )
        video_entry = store.insert(
            title="Faith Series Pt. 3",
            date=datetime(2024, 5, 2),
            video_id="vid3",
            video_url="https://www.youtube.com/watch?v=vid3",
        )

        stats = reconcile_candidates([], store)

        assert stats["backfilled"] == 1
        assert stats["redundant"] == [feed_entry.id]
        healed = store.get(video_entry.id)
        assert healed.feed_url == feed_entry.feed_url
        assert healed.media_url == "https://cdn.example.com/faith-3.mp3"
        assert store.get(feed_entry.id) is not None
        assert store.find_by_video_id("vid3").id == video_entry.id
        assert store.find_by_feed_url(feed_entry.feed_url).id == video_entry.id

        again = reconcile_candidates([], store)

        assert again["backfilled"] == 0
        assert again["redundant"] == [feed_entry.id]

    def test_feed_only_without_counterpart_is_created(self, store):
        reconcile_candidates(
            match_episodes([], [video_episode("Sermon: Power", day(8, 1), "pw")]), store
        )

        stats = reconcile_candidates(
            match_episodes([feed_episode("Quiet Strength", day(2, 1))], []), store
        )

        assert stats["created"] == 1
        assert stats["backfilled"] == 0
        assert len(store.list_entries()) == 2

    def test_errors_are_collected_per_title(self, store):
        class FlakyStore(CatalogStore):
            def insert(self, **fields):
                if fields["title"] == "Broken Teaching":
                    raise RuntimeError("write conflict")
                return super().insert(**fields)

        feed = [
            feed_episode("Broken Teaching", day(1, 5)),
            feed_episode("Working Teaching", day(1, 12)),
        ]

        stats = reconcile_candidates(match_episodes(feed, []), FlakyStore())

        assert stats["created"] == 1
        assert stats["errors"] == ["Broken Teaching: write conflict"]
        assert store.find_by_feed_url(feed[1].canonical_url) is not None


class TestMergeChanges:
    """Test the merge preferences in isolation."""

    def test_newer_date_wins_and_older_is_ignored(self, store):
        existing = store.insert(title="Grace", date=day(3, 10), video_id="g")
        newer = match_episodes([], [video_episode("Grace Sermon", day(3, 11), "g")])[0]
        older = match_episodes([], [video_episode("Grace Sermon", day(3, 9), "g")])[0]

        assert merge_changes(existing, newer)["date"] == day(3, 11)
        assert "date" not in merge_changes(existing, older)

    def test_video_title_does_not_rename_feed_entry(self, store):
        existing = store.insert(
            title="Grace", date=day(3, 10), feed_url="https://feed.example.com/e/grace"
        )
        candidate = match_episodes([], [video_episode("Grace Sermon LIVE", day(3, 10), "g")])[0]

        assert "title" not in merge_changes(existing, candidate)
