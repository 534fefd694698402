#!/usr/bin/env python3
"""
Transcription commands.

Usage:
    python -m sermon_catalog.transcription generate <entry_id>
    python -m sermon_catalog.transcription status <entry_id>
    python -m sermon_catalog.transcription cancel <entry_id>
    python -m sermon_catalog.transcription delete-chunks <entry_id>
    python -m sermon_catalog.transcription set-audio <entry_id> <url>
    python -m sermon_catalog.transcription generate --all-pending --limit 5
    python -m sermon_catalog.transcription queue add <entry_id> [<entry_id> ...]
    python -m sermon_catalog.transcription queue list
    python -m sermon_catalog.transcription queue process
    python -m sermon_catalog.transcription queue run --interval 30
"""

import argparse
import sys

from sermon_catalog.config import Settings
from sermon_catalog.db import CatalogStore, TranscriptionStatus, init_database
from sermon_catalog.errors import CatalogError
from sermon_catalog.logger import setup_logging
from sermon_catalog.transcription.orchestrator import TranscriptionOrchestrator
from sermon_catalog.transcription.queue import TranscriptionQueue


def _print_status(store: CatalogStore, entry_id: str) -> None:
    entry = store.require(entry_id)
    progress, revision = store.read_progress(entry_id)
    print(f"{entry.title}")
    print(f"  id:      {entry.id}")
    print(f"  status:  {entry.status.value}")
    print(f"  media:   {entry.media_url or entry.video_url or entry.feed_url or '-'}")
    if entry.error_message:
        print(f"  error:   {entry.error_message}")
    if entry.transcript:
        print(f"  transcript: {len(entry.transcript):,} characters")
    if progress is not None:
        total = progress.total if progress.total is not None else "?"
        print(f"  step:    {progress.step.value} ({progress.message})")
        print(
            f"  chunks:  {len(progress.completed_chunks)}/{total} completed, "
            f"{len(progress.failed_chunks)} failed (revision {revision})"
        )
        for index, error in sorted(progress.failed_chunks.items()):
            print(f"    ✗ chunk {index}: {error}")


def _queue_command(args, queue: TranscriptionQueue, settings: Settings) -> int:
    """Run a ``queue`` subcommand; returns the exit code."""
    if args.queue_command == "add":
        for entry_id in args.entry_ids:
            result = queue.add(entry_id)
            print(f"✓ {entry_id}: {result.message}")
        return 0

    if args.queue_command == "list":
        snapshot = queue.snapshot()
        processing = snapshot["processing"]
        print(f"Processing: {processing.entry_id if processing else '-'}")
        print(f"Queued:     {len(snapshot['queued'])}")
        for item in snapshot["all"]:
            error = f" - {item.error_message}" if item.error_message else ""
            print(f"  {item.position:>3}  {item.status.value:<10} {item.entry_id}{error}")
        return 0

    if args.queue_command == "cancel":
        print(f"✓ {queue.cancel(args.entry_id).message}")
        return 0

    if args.queue_command == "process":
        result = queue.process_next()
        print(f"{'✓' if result.processed else '-'} {result.message}")
        return 0

    interval = args.interval if args.interval is not None else settings.queue_poll_interval_seconds
    print(f"Processing the queue every {interval:g}s (Ctrl+C to stop)")
    started = queue.run(interval, iterations=args.iterations)
    print(f"✓ {started} queue items started")
    return 0


def main():
    """Exits with 0 on success, 1 on failure, 130 on interrupt."""
    parser = argparse.ArgumentParser(
        description="Generate and manage episode transcripts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Transcribe one entry (delegates to AUDIO_WORKER_URL when set)
  python -m sermon_catalog.transcription generate 0190c6c1-...

  # Transcribe the 5 newest pending entries
  python -m sermon_catalog.transcription generate --all-pending --limit 5

  # Inspect progress, then cancel and start over with another audio file
  python -m sermon_catalog.transcription status 0190c6c1-...
  python -m sermon_catalog.transcription cancel 0190c6c1-...
  python -m sermon_catalog.transcription delete-chunks 0190c6c1-...
  python -m sermon_catalog.transcription set-audio 0190c6c1-... https://cdn.example.com/ep.mp3

  # Queue entries and let a cron job start them one at a time
  python -m sermon_catalog.transcription queue add 0190c6c1-... 0190c6c2-...
  python -m sermon_catalog.transcription queue process
  python -m sermon_catalog.transcription queue run --interval 30
        """,
    )
    parser.add_argument("--verbose", action="store_true", help="Detailed console output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Generate a transcript")
    generate.add_argument("entry_id", nargs="?", help="Catalog entry id")
    generate.add_argument("--all-pending", action="store_true", help="Process pending entries")
    generate.add_argument("--limit", type=int, help="Max entries with --all-pending")

    for name, help_text in (
        ("status", "Show status and chunk progress"),
        ("cancel", "Cancel a running transcription (completed chunks are kept)"),
        ("delete-chunks", "Discard chunk progress so the next run starts over"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("entry_id", help="Catalog entry id")

    set_audio = subparsers.add_parser("set-audio", help="Override the audio URL of an entry")
    set_audio.add_argument("entry_id", help="Catalog entry id")
    set_audio.add_argument("url", help="Direct audio (or video) URL")
    set_audio.add_argument("--keep-status", action="store_true", help="Do not reset to pending")

    queue_parser = subparsers.add_parser("queue", help="Scheduled one-at-a-time transcription")
    queue_sub = queue_parser.add_subparsers(dest="queue_command", required=True)
    queue_add = queue_sub.add_parser("add", help="Queue entries for transcription")
    queue_add.add_argument("entry_ids", nargs="+", help="Catalog entry ids")
    queue_sub.add_parser("list", help="Show the queue")
    queue_cancel = queue_sub.add_parser("cancel", help="Remove or stop a queued entry")
    queue_cancel.add_argument("entry_id", help="Catalog entry id")
    queue_sub.add_parser("process", help="Start the next queued entry if none is running")
    queue_run = queue_sub.add_parser("run", help="Process the queue periodically")
    queue_run.add_argument("--interval", type=float, help="Seconds between checks")
    queue_run.add_argument("--iterations", type=int, help="Stop after this many checks")

    args = parser.parse_args()

    logger = setup_logging(
        logger_name="transcription_cli",
        log_file="logs/transcription_cli.log",
        verbose=args.verbose,
    )
    for name in ("orchestrator", "queue", "worker", "asr_client"):
        setup_logging(name, f"logs/{name}.log", verbose=args.verbose)

    try:
        settings = Settings.from_env()
        init_database()
        store = CatalogStore()

        if args.command == "status":
            _print_status(store, args.entry_id)
            sys.exit(0)

        orchestrator = TranscriptionOrchestrator(store, settings)

        if args.command == "queue":
            sys.exit(_queue_command(args, TranscriptionQueue(store, orchestrator), settings))

        if args.command == "generate":
            if args.all_pending:
                entry_ids = [
                    e.id
                    for e in store.list_entries(TranscriptionStatus.PENDING, limit=args.limit)
                ]
            elif args.entry_id:
                entry_ids = [args.entry_id]
            else:
                parser.error("generate needs an entry id or --all-pending")

            failures = 0
            for entry_id in entry_ids:
                result = orchestrator.generate(entry_id)
                marker = "✗" if result.status == TranscriptionStatus.FAILED.value else "✓"
                suffix = " (delegated)" if result.delegated else ""
                print(f"{marker} {entry_id}: {result.status}{suffix} - {result.message}")
                failures += result.status == TranscriptionStatus.FAILED.value
            logger.info(f"Generate finished: {len(entry_ids)} entries, {failures} failed")
            sys.exit(0 if failures == 0 else 1)

        if args.command == "cancel":
            progress = orchestrator.cancel(args.entry_id)
            print(f"✓ Cancelled ({len(progress.completed_chunks)} completed chunks kept)")
        elif args.command == "delete-chunks":
            orchestrator.delete_chunks(args.entry_id)
            print("✓ Chunk progress deleted")
        elif args.command == "set-audio":
            orchestrator.update_media_url(args.entry_id, args.url, reset=not args.keep_status)
            print(f"✓ Audio URL updated for {args.entry_id}")
        sys.exit(0)

    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(130)
    except CatalogError as e:
        print(f"✗ {e}")
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
