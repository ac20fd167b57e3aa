"""
Local Development Runner
Run the deduplication jobs from the command line.

Usage:
    python run_local.py dedup [--dry-run] [--limit 500]
    python run_local.py backfill [--dry-run]
    python run_local.py cleanup-sources [--dry-run]
    python run_local.py sample
"""

import os
import sys
import asyncio
import argparse
from datetime import datetime, timedelta, timezone
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Add project directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))


SAMPLE_STORIES = [
    {
        'headline': "Black Forest Labs raises $300M Series B",
        'url': "https://techcrunch.com/2025/12/02/black-forest-labs-raises-300m",
        'content': "Black Forest Labs has raised $300 million in a Series B round led by Andreessen Horowitz. "
                   "The company develops generative AI models for image creation.",
        'summary': "Black Forest Labs raises $300M for generative AI image models.",
        'source': "TechCrunch",
        'offset_minutes': 0,
    },
    {
        'headline': "Generative AI startup Black Forest Labs secures $300 million",
        'url': "https://venturebeat.com/ai/black-forest-labs-secures-300-million-funding",
        'content': "Generative AI startup Black Forest Labs announced today it has secured $300 million in new "
                   "funding. The round values the company at $1.5 billion.",
        'summary': "Black Forest Labs secures $300 million funding at $1.5B valuation.",
        'source': "VentureBeat",
        'offset_minutes': 30,
    },
    {
        'headline': "Black Forest Labs gets $300M investment for AI art tools",
        'url': "https://www.theinformation.com/articles/black-forest-labs-gets-300m-investment",
        'content': "Black Forest Labs, the creator of the popular Flux model, has received a $300 million "
                   "investment. Investors include a16z and Sequoia.",
        'summary': "Black Forest Labs gets $300M investment from a16z and Sequoia.",
        'source': "The Information",
        'offset_minutes': 60,
    },
]


def check_env_vars():
    """Warn about optional environment variables."""
    from newswatch.ai_client import API_KEY_VARS

    if not any(os.environ.get(var) for var in API_KEY_VARS):
        print("⚠️ No AI API key set - using the lexical heuristic fallback")
    if os.environ.get('FIRESTORE_EMULATOR_HOST'):
        print(f"🔧 Using Firestore Emulator at {os.environ['FIRESTORE_EMULATOR_HOST']}")


def build_sample_stories():
    now = datetime.now(timezone.utc)
    stories = []
    for sample in SAMPLE_STORIES:
        story = {k: v for k, v in sample.items() if k != 'offset_minutes'}
        story['published_at'] = now + timedelta(minutes=sample['offset_minutes'])
        stories.append(story)
    return stories


def run_sample():
    """Replay the three-outlet funding scenario against the in-memory store."""
    from newswatch.ai_client import AIContentGenerator
    from newswatch.deduplication import StoryDeduplicator
    from newswatch.local_store import InMemoryStoryStore

    store = InMemoryStoryStore()
    deduplicator = StoryDeduplicator(store, ai_generator=AIContentGenerator.from_env())
    report = asyncio.run(deduplicator.ingest(build_sample_stories()))

    for story in store.query():
        print(f"  {story['headline']}")
        for source in story.get('sources', []):
            print(f"     - {source['name']} ({source['url']})")

    return 0 if len(store) == 1 and report.failed == 0 else 1


def run_dedup(dry_run: bool, limit=None):
    from newswatch.ai_client import AIContentGenerator
    from newswatch.batch_dedup import RetroactiveDeduplicator
    from newswatch.config import DedupConfig
    from newswatch.database import FirestoreStoryStore
    from newswatch.distributed_lock import DistributedLock
    from newswatch.main import BATCH_LOCK_NAME

    store = FirestoreStoryStore()
    job = RetroactiveDeduplicator(store, ai_generator=AIContentGenerator.from_env(), config=DedupConfig.from_env())

    with DistributedLock(BATCH_LOCK_NAME, db=store.db):
        report = asyncio.run(job.run(dry_run=dry_run, limit=limit))

    return 1 if report.aborted else 0


def handle_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='NewsWatch story deduplication jobs.')
    parser.add_argument('command', choices=['dedup', 'backfill', 'cleanup-sources', 'sample'])
    parser.add_argument('--dry-run', action='store_true', help='Report changes without writing them.')
    parser.add_argument('--limit', type=int, default=None, help='Number of recent stories to scan.')
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = handle_args(argv)

    print("=" * 50)
    print("  NewsWatch Deduplication - Local Run")
    print("=" * 50)
    check_env_vars()

    if args.command == 'sample':
        return run_sample()

    if args.command == 'dedup':
        return run_dedup(args.dry_run, args.limit)

    from newswatch.database import FirestoreStoryStore
    from newswatch.maintenance import backfill_last_source_at, cleanup_duplicate_sources

    store = FirestoreStoryStore()
    if args.command == 'backfill':
        backfill_last_source_at(store, dry_run=args.dry_run)
    else:
        cleanup_duplicate_sources(store, dry_run=args.dry_run, limit=args.limit)
    return 0


if __name__ == "__main__":
    sys.exit(main())
