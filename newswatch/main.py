"""
Main Entry Point for Cloud Functions
HTTP handlers for story ingestion and the retroactive deduplication job.
"""

import json
import asyncio
from datetime import datetime, timezone
import functions_framework
from flask import Request

from .batch_dedup import RetroactiveDeduplicator
from .deduplication import StoryDeduplicator
from .distributed_lock import DistributedLock
from .errors import LockAcquireError


BATCH_LOCK_NAME = 'retroactive_dedup'


def _json_default(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _respond(payload: dict, status: int = 200):
    return json.dumps(payload, default=_json_default), status, {'Content-Type': 'application/json'}


def _flag(value) -> bool:
    return str(value or '').lower() in ('1', 'true', 'yes', 'on')


# ============ INGESTION ============

@functions_framework.http
def process_stories(request: Request):
    """
    Ingest a batch of feed items.

    Body: {"stories": [{headline, url, content, summary, source, published_at}, ...]}
    """
    if request.method != 'POST':
        return _respond({'error': 'POST required'}, 405)

    body = request.get_json(silent=True) or {}
    items = body.get('stories')
    if not isinstance(items, list):
        return _respond({'error': 'Body must contain a "stories" list'}, 400)

    timeout = request.args.get('item_timeout')

    try:
        deduplicator = StoryDeduplicator.from_env()
        report = asyncio.run(deduplicator.ingest(items, item_timeout=float(timeout) if timeout else None))
        return _respond(report.to_dict())
    except Exception as e:
        print(f"Ingestion error: {e}")
        return _respond({'error': str(e)}, 500)


# ============ RETROACTIVE DEDUP ============

@functions_framework.http
def retroactive_dedup(request: Request):
    """
    Run the retroactive pairwise dedup job.

    Query params: dry_run=true, limit=N
    """
    from .ai_client import AIContentGenerator
    from .config import DedupConfig
    from .database import FirestoreStoryStore

    dry_run = _flag(request.args.get('dry_run'))
    limit = request.args.get('limit')

    try:
        store = FirestoreStoryStore()
        job = RetroactiveDeduplicator(
            store,
            ai_generator=AIContentGenerator.from_env(),
            config=DedupConfig.from_env()
        )
        with DistributedLock(BATCH_LOCK_NAME, db=store.db):
            report = asyncio.run(job.run(dry_run=dry_run, limit=int(limit) if limit else None))
    except LockAcquireError as e:
        return _respond({'error': str(e)}, 409)
    except Exception as e:
        print(f"Retroactive dedup error: {e}")
        return _respond({'error': str(e)}, 500)

    return _respond(report.to_dict(), 500 if report.aborted else 200)


# ============ HEALTH CHECK ============

@functions_framework.http
def health(request: Request):
    """Simple health check endpoint."""
    return _respond({
        'status': 'healthy',
        'timestamp': datetime.now(timezone.utc).isoformat()
    })
