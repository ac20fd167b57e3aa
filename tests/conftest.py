"""
Pytest configuration and shared fixtures.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from newswatch.ai_client import AIResponse
from newswatch.config import DedupConfig
from newswatch.local_store import InMemoryStoryStore


NOW = datetime(2025, 12, 2, 12, 0, tzinfo=timezone.utc)


class FakeGenerator:
    """
    Scripted stand-in for AIContentGenerator.

    Same-event prompts are answered from `verdicts` (last one repeats);
    any other prompt gets `summary`.
    """

    def __init__(self, verdicts=None, summary=None, error=None, delay=0.0):
        self.verdicts = list(verdicts or [])
        self.summary = summary
        self.error = error
        self.delay = delay
        self.prompts = []
        self.total_tokens = 0

    @property
    def verdict_calls(self):
        return [p for p, _ in self.prompts if '"is_duplicate"' in p]

    async def generate(self, prompt, **options):
        self.prompts.append((prompt, options))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error

        if '"is_duplicate"' in prompt:
            text = self.verdicts.pop(0) if len(self.verdicts) > 1 else (self.verdicts[0] if self.verdicts else '')
        else:
            if self.summary is None:
                raise RuntimeError("no summary scripted")
            text = self.summary
        self.total_tokens += 10
        return AIResponse(text=text, usage={'total_tokens': 10})


def verdict(is_duplicate: bool, confidence: int, reason: str = "same funding round") -> str:
    return (
        '{"is_duplicate": %s, "confidence": %d, "reason": "%s"}'
        % ('true' if is_duplicate else 'false', confidence, reason)
    )


def make_story(headline, url, content='', summary='', source='Example', hours_ago=1, **extra):
    """Stored-story document as the ingestion path would have written it."""
    ingested = NOW - timedelta(hours=hours_ago)
    story = {
        'headline': headline,
        'url': url,
        'content': content,
        'summary': summary,
        'source': source,
        'sources': [{'name': source, 'url': url, 'published_at': ingested}],
        'published_at': ingested,
        'ingested_at': ingested,
        'created_at': ingested,
        'is_duplicate': False,
    }
    story.update(extra)
    return story


@pytest.fixture
def store():
    return InMemoryStoryStore()


@pytest.fixture
def config():
    return DedupConfig()


@pytest.fixture
def black_forest_stories():
    """Three outlets reporting the same funding round within an hour."""
    return [
        {
            'headline': "Black Forest Labs raises $300M Series B",
            'url': "https://techcrunch.com/2025/12/02/black-forest-labs-raises-300m",
            'content': "Black Forest Labs has raised $300 million in a Series B round led by Andreessen "
                       "Horowitz. The company develops generative AI models for image creation.",
            'summary': "Black Forest Labs raises $300M for generative AI image models.",
            'source': "TechCrunch",
            'published_at': NOW,
        },
        {
            'headline': "Generative AI startup Black Forest Labs secures $300 million",
            'url': "https://venturebeat.com/ai/black-forest-labs-secures-300-million-funding",
            'content': "Generative AI startup Black Forest Labs announced today it has secured $300 million "
                       "in new funding. The round values the company at $1.5 billion.",
            'summary': "Black Forest Labs secures $300 million funding at $1.5B valuation.",
            'source': "VentureBeat",
            'published_at': NOW + timedelta(minutes=30),
        },
        {
            'headline': "Black Forest Labs gets $300M investment for AI art tools",
            'url': "https://www.theinformation.com/articles/black-forest-labs-gets-300m-investment",
            'content': "Black Forest Labs, the creator of the popular Flux model, has received a $300 million "
                       "investment. Investors include a16z and Sequoia.",
            'summary': "Black Forest Labs gets $300M investment from a16z and Sequoia.",
            'source': "The Information",
            'published_at': NOW + timedelta(minutes=60),
        },
    ]
