"""
Transcription package: from a catalog entry's media asset to a saved transcript.

Modules:
    progress: ProgressRecord persisted between orchestrator and worker
    asr_client: Speech-recognition client with endpoint/encoding fallback
    validation: Chunk assembly and transcript quality checks
    orchestrator: Per-entry state machine (direct vs. delegated, chunked vs. single-shot)
    queue: Ordered one-at-a-time transcription queue for scheduled runs

Usage:
    python -m sermon_catalog.transcription generate <entry-id>
    python -m sermon_catalog.transcription generate --all-pending --limit 5
    python -m sermon_catalog.transcription status <entry-id>
    python -m sermon_catalog.transcription cancel <entry-id>
    python -m sermon_catalog.transcription delete-chunks <entry-id>
    python -m sermon_catalog.transcription set-audio <entry-id> <url>
    python -m sermon_catalog.transcription queue add <entry-id>
    python -m sermon_catalog.transcription queue process
"""
