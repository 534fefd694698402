"""
Ingestion package: fetch episodes from both sources and reconcile the catalog.

1. Source adapters:
   - feed_source.py: podcast RSS feed (source A)
   - video_source.py: video platform channel (source B)
2. Catalog sync (sync.py):
   - Matches both lists and reconciles them into the catalog
3. Reconciliation (reconcile.py):
   - Non-destructive merge of match candidates into stored entries

Usage:
    python -m sermon_catalog.ingestion                 # Full sync
    python -m sermon_catalog.ingestion --dry-run       # Match only
"""
