"""
Tests for the one-off repair passes.
"""

from datetime import timedelta

from newswatch.local_store import InMemoryStoryStore
from newswatch.maintenance import backfill_last_source_at, cleanup_duplicate_sources

from conftest import NOW, make_story


class TestBackfillLastSourceAt:

    def test_uses_latest_source_date(self):
        story = make_story('Multi-source', 'https://a.com/1', id='s1', hours_ago=5)
        story['sources'].append({'name': 'Later', 'url': 'https://b.com/1', 'published_at': NOW})
        store = InMemoryStoryStore([story])

        counts = backfill_last_source_at(store)

        assert counts == {'updated': 1, 'skipped': 0}
        assert store.get('s1')['last_source_at'] == NOW

    def test_falls_back_to_published_at(self):
        store = InMemoryStoryStore([make_story('Single', 'https://a.com/1', id='s1', hours_ago=2)])
        backfill_last_source_at(store)
        assert store.get('s1')['last_source_at'] == NOW - timedelta(hours=2)

    def test_existing_values_skipped(self):
        store = InMemoryStoryStore([
            make_story('Done', 'https://a.com/1', id='done', last_source_at=NOW),
            make_story('Todo', 'https://a.com/2', id='todo'),
        ])
        counts = backfill_last_source_at(store)
        assert counts == {'updated': 1, 'skipped': 1}

    def test_dry_run(self):
        store = InMemoryStoryStore([make_story('Todo', 'https://a.com/2', id='todo')])
        counts = backfill_last_source_at(store, dry_run=True)
        assert counts['updated'] == 1
        assert 'last_source_at' not in store.get('todo')


class TestCleanupDuplicateSources:

    def _story_with_repeats(self):
        story = make_story('Repeated', 'https://a.com/1', source='TechCrunch', id='s1')
        story['sources'] += [
            {'name': 'TechCrunch Feed', 'url': 'https://www.a.com/1/?utm_source=rss'},
            {'name': 'techcrunch', 'url': 'https://a.com/other'},
            {'name': 'VentureBeat', 'url': 'https://b.com/1'},
        ]
        return story

    def test_removes_repeated_sources(self):
        store = InMemoryStoryStore([
            self._story_with_repeats(),
            make_story('Clean', 'https://c.com/1', id='clean'),
        ])

        counts = cleanup_duplicate_sources(store)

        assert counts == {'checked': 2, 'updated': 1, 'removed': 2}
        assert [s['name'] for s in store.get('s1')['sources']] == ['TechCrunch', 'VentureBeat']

    def test_dry_run(self):
        store = InMemoryStoryStore([self._story_with_repeats()])
        counts = cleanup_duplicate_sources(store, dry_run=True)
        assert counts['removed'] == 2
        assert len(store.get('s1')['sources']) == 4
