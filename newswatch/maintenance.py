"""
Story Maintenance Module
One-off repair passes over the story collection.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .merge import coerce_datetime
from .url_normalizer import dedupe_sources


def backfill_last_source_at(store, dry_run: bool = False) -> Dict[str, int]:
    """
    Fill last_source_at for stories created before it was maintained.

    Uses the latest of published_at (or ingested_at) and every source's
    published_at. Stories that already have the field are skipped.

    Returns:
        {'updated': n, 'skipped': m}
    """
    print("Starting backfill of last_source_at...")

    updates = []
    skipped = 0

    for story in store.query():
        if story.get('last_source_at'):
            skipped += 1
            continue

        max_date = (coerce_datetime(story.get('published_at'))
                    or coerce_datetime(story.get('ingested_at'))
                    or datetime.now(timezone.utc))

        for source in story.get('sources') or []:
            source_date = coerce_datetime(source.get('published_at'))
            if source_date and source_date > max_date:
                max_date = source_date

        updates.append((story['id'], {'last_source_at': max_date}))

    if updates and not dry_run:
        store.batch_update(updates)

    print("Backfill complete.")
    print(f"Updated: {len(updates)}")
    print(f"Skipped: {skipped}")
    return {'updated': len(updates), 'skipped': skipped}


def cleanup_duplicate_sources(store, dry_run: bool = False, limit: Optional[int] = None) -> Dict[str, Any]:
    """
    Remove repeated entries from every story's sources list.

    Returns:
        {'checked': n, 'updated': m, 'removed': k}
    """
    print("🧹 Starting Source Deduplication Cleanup...")

    stories = store.query(limit=limit)
    print(f"   Found {len(stories)} stories to check.")

    updates = []
    removed = 0

    for story in stories:
        sources = story.get('sources')
        if not isinstance(sources, list) or len(sources) <= 1:
            continue

        unique = dedupe_sources(sources)
        if len(unique) < len(sources):
            print(f"   Fixing story: \"{(story.get('headline') or '')[:50]}\"")
            print(f"     Sources: {len(sources)} -> {len(unique)}")
            removed += len(sources) - len(unique)
            updates.append((story['id'], {'sources': unique}))

    if updates and not dry_run:
        store.batch_update(updates)

    print(f"\n✅ Cleanup Complete. {'Would update' if dry_run else 'Updated'} {len(updates)} stories.")
    return {'checked': len(stories), 'updated': len(updates), 'removed': removed}
