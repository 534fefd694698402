#!/usr/bin/env python3
"""
Catalog sync command.

Usage:
    python -m sermon_catalog.ingestion
    python -m sermon_catalog.ingestion --dry-run --verbose
"""

import argparse
import sys

from sermon_catalog.config import Settings
from sermon_catalog.db import init_database
from sermon_catalog.ingestion.sync import sync_catalog
from sermon_catalog.logger import setup_logging


def main():
    """
    Fetch the feed and the video channel, match them and reconcile the catalog.

    Exits with 0 on success, 1 when any error was recorded, 130 on interrupt.
    """
    parser = argparse.ArgumentParser(
        description="Sync the episode catalog from the podcast feed and the video channel",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m sermon_catalog.ingestion                              # Full sync
  python -m sermon_catalog.ingestion --limit 20                   # 20 most recent per source
  python -m sermon_catalog.ingestion --feed-url https://feeds.example.com/feed.xml
  python -m sermon_catalog.ingestion --channel @mychurch --dry-run --verbose
        """,
    )
    parser.add_argument("--feed-url", type=str, default=None, help="RSS feed URL (overrides FEED_RSS_URL)")
    parser.add_argument("--channel", type=str, default=None, help="Video channel (overrides VIDEO_CHANNEL)")
    parser.add_argument("--limit", type=int, help="Max episodes per source")
    parser.add_argument("--dry-run", action="store_true", help="Match only, do not write to the database")
    parser.add_argument("--verbose", action="store_true", help="Detailed console output")
    args = parser.parse_args()

    logger = setup_logging(
        logger_name="sync_catalog",
        log_file="logs/sync_catalog.log",
        verbose=args.verbose,
    )
    for name in ("matcher", "reconcile"):
        setup_logging(name, f"logs/{name}.log", verbose=args.verbose)

    try:
        settings = Settings.from_env()
        if not args.dry_run:
            init_database()

        summary = sync_catalog(
            settings,
            feed_url=args.feed_url,
            channel=args.channel,
            limit=args.limit,
            dry_run=args.dry_run,
        )

        print(
            f"\nSources: {summary['feed_episodes']} feed episodes, "
            f"{summary['video_episodes']} videos -> {summary['candidates']} candidates "
            f"({summary['pairs']} matched pairs)"
        )
        if not args.dry_run:
            print(
                f"Completed: {summary['created']} created, {summary['updated']} updated, "
                f"{summary['merged']} merged, {summary['backfilled']} backfilled, "
                f"{summary['skipped']} unchanged, {len(summary['errors'])} errors"
            )
            for entry_id in summary["redundant"]:
                print(f"  ! Redundant feed-only entry left in place: {entry_id}")
        for error in summary["errors"]:
            print(f"  ✗ {error}")
        logger.info(f"Sync completed: {len(summary['errors'])} errors")
        sys.exit(0 if not summary["errors"] else 1)
    except KeyboardInterrupt:
        print("\nSync interrupted by user")
        sys.exit(130)
    except Exception as e:
        print(f"✗ Sync failed: {e}")
        logger.error(f"Sync failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
