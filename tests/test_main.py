"""
Tests for the HTTP entry points and the local runner.
"""

import json
from unittest.mock import MagicMock

import pytest

import run_local
from newswatch import main
from newswatch.deduplication import StoryDeduplicator
from newswatch.errors import LockAcquireError
from newswatch.local_store import InMemoryStoryStore

from conftest import make_story


def make_request(method='POST', body=None, args=None):
    request = MagicMock()
    request.method = method
    request.get_json.return_value = body
    request.args = args or {}
    return request


def decode(response):
    payload, status, headers = response
    assert headers['Content-Type'] == 'application/json'
    return json.loads(payload), status


class LocalStore(InMemoryStoryStore):
    db = None


@pytest.fixture
def no_ai(monkeypatch):
    for var in ('AI_API_KEY', 'DEEPSEEK_API_KEY', 'OPENAI_API_KEY'):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def local_firestore(monkeypatch, no_ai):
    """Route FirestoreStoryStore() and the job lock to in-memory stand-ins."""
    store = LocalStore([
        make_story('Black Forest Labs raises $300M Series B', 'https://techcrunch.com/bfl',
                   content='Black Forest Labs has raised $300 million in a Series B round.', id='older',
                   hours_ago=2),
        make_story('Black Forest Labs raises $300M Series B round', 'https://venturebeat.com/bfl',
                   content='Black Forest Labs has raised $300 million in a Series B round.', id='newer',
                   hours_ago=1),
    ])
    monkeypatch.setattr('newswatch.database.FirestoreStoryStore', lambda: store)
    monkeypatch.setattr('newswatch.distributed_lock.get_firestore_client', lambda: None)
    return store


class TestProcessStories:

    def test_requires_post(self):
        body, status = decode(main.process_stories(make_request(method='GET')))
        assert status == 405
        assert 'error' in body

    def test_requires_stories_list(self):
        _, status = decode(main.process_stories(make_request(body={'stories': 'nope'})))
        assert status == 400

        _, status = decode(main.process_stories(make_request(body=None)))
        assert status == 400

    def test_ingests_batch(self, monkeypatch, black_forest_stories):
        store = InMemoryStoryStore()
        monkeypatch.setattr(StoryDeduplicator, 'from_env', classmethod(lambda cls: cls(store)))

        body, status = decode(main.process_stories(make_request(body={'stories': black_forest_stories})))

        assert status == 200
        assert body['inserted'] == 1
        assert body['merged'] == 2
        assert len(store) == 1


class TestRetroactiveDedup:

    def test_dry_run(self, local_firestore):
        body, status = decode(main.retroactive_dedup(make_request(args={'dry_run': 'true', 'limit': '10'})))

        assert status == 200
        assert body['dry_run'] is True
        assert body['decisions'][0]['decision'] == 'would_merge'
        assert local_firestore.get('older')['is_duplicate'] is False

    def test_real_run(self, local_firestore):
        body, status = decode(main.retroactive_dedup(make_request()))

        assert status == 200
        assert body['merged'] == 1
        assert local_firestore.get('older')['merged_into'] == 'newer'

    def test_lock_held(self, local_firestore, monkeypatch):
        class HeldLock:
            def __init__(self, *args, **kwargs):
                pass

            def __enter__(self):
                raise LockAcquireError("Lock 'retroactive_dedup' is already held")

            def __exit__(self, *exc):
                return False

        monkeypatch.setattr(main, 'DistributedLock', HeldLock)
        body, status = decode(main.retroactive_dedup(make_request()))

        assert status == 409
        assert 'already held' in body['error']


def test_health():
    body, status = decode(main.health(make_request(method='GET')))
    assert status == 200
    assert body['status'] == 'healthy'


class TestRunLocal:

    def test_sample_collapses_to_one_story(self, no_ai):
        assert run_local.main(['sample']) == 0

    def test_rejects_unknown_command(self):
        with pytest.raises(SystemExit):
            run_local.handle_args(['explode'])

    def test_flags(self):
        args = run_local.handle_args(['dedup', '--dry-run', '--limit', '50'])
        assert args.dry_run is True
        assert args.limit == 50
