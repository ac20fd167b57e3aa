"""
Smart Deduplication Module
Detects when a newly ingested story describes an event already in the store
and merges it into that canonical story instead of creating a duplicate.
"""

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from .ai_client import AIContentGenerator, format_token_count
from .candidates import CandidateFinder, CandidateMatch
from .config import DedupConfig
from .merge import MergeExecutor
from .resilience import deadline_after
from .semantic import SemanticVerifier


@dataclass
class ProcessResult:
    """What happened to one incoming story."""
    story_id: str
    action: str  # 'inserted', 'merged' or 'unchanged'
    match: Optional[CandidateMatch] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'story_id': self.story_id,
            'action': self.action,
            'match': self.match.to_dict() if self.match else None,
        }


@dataclass
class IngestReport:
    """Per-run counters for the ingestion loop."""
    processed: int = 0
    inserted: int = 0
    merged: int = 0
    unchanged: int = 0
    failed: int = 0
    ai_tokens: int = 0
    results: List[ProcessResult] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'processed': self.processed,
            'inserted': self.inserted,
            'merged': self.merged,
            'unchanged': self.unchanged,
            'failed': self.failed,
            'ai_tokens': self.ai_tokens,
            'results': [r.to_dict() for r in self.results],
            'errors': self.errors,
        }


class StoryDeduplicator:
    """
    Ingestion-side entry point.

    Collaborators are injected: a content store, an optional AI content
    generator (None means heuristic-only), and an optional relevance scorer
    called with every newly inserted story.
    """

    def __init__(
        self,
        store,
        ai_generator: Optional[AIContentGenerator] = None,
        relevance_scorer: Optional[Callable[[Dict[str, Any]], Any]] = None,
        config: Optional[DedupConfig] = None
    ):
        self.store = store
        self.config = config or DedupConfig()
        self.relevance_scorer = relevance_scorer
        self.verifier = SemanticVerifier(ai_generator, self.config)
        self.finder = CandidateFinder(store, self.verifier, self.config)
        self.executor = MergeExecutor(store, self.verifier, self.config)

    @classmethod
    def from_env(cls, store=None, relevance_scorer=None) -> "StoryDeduplicator":
        """Wire Firestore, the AI client and thresholds from the environment."""
        if store is None:
            from .database import FirestoreStoryStore
            store = FirestoreStoryStore()
        return cls(
            store,
            ai_generator=AIContentGenerator.from_env(),
            relevance_scorer=relevance_scorer,
            config=DedupConfig.from_env()
        )

    async def process_story(self, new_story: Dict[str, Any], deadline: Optional[float] = None) -> ProcessResult:
        """
        Insert a story, or merge it into the existing story about the same event.

        Args:
            new_story: dict with headline, url, content, summary, source, published_at
            deadline: absolute time.monotonic() deadline for AI calls

        Returns:
            ProcessResult with the canonical story ID
        """
        if not new_story.get('headline'):
            raise ValueError("Story is missing a headline")

        match = await self.finder.find_similar(new_story, deadline=deadline)

        if match:
            result = await self.executor.merge_into(match.story, new_story, deadline=deadline)
            return ProcessResult(
                story_id=result.story_id,
                action='merged' if result.merged else 'unchanged',
                match=match
            )

        story = self.executor.insert_new(new_story)
        await self._score(story)
        return ProcessResult(story_id=story['id'], action='inserted')

    async def _score(self, story: Dict[str, Any]):
        if self.relevance_scorer is None:
            return
        try:
            result = self.relevance_scorer(story)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            print(f"    ✗ Analysis failed for story {story.get('id')}: {e}")

    async def ingest(self, items: Iterable[Dict[str, Any]], item_timeout: Optional[float] = None) -> IngestReport:
        """
        Process feed items one at a time.

        A failing item is recorded and skipped; it never stops the loop.

        Args:
            items: Incoming stories
            item_timeout: Seconds allowed for AI calls per item
        """
        report = IngestReport()
        tokens_before = self.verifier.tokens_used
        print("\n📡 Starting story deduplication...")

        for item in items:
            report.processed += 1
            try:
                result = await self.process_story(item, deadline=deadline_after(item_timeout))
            except Exception as e:
                report.failed += 1
                report.errors.append({'headline': str(item.get('headline', '')), 'error': str(e)})
                print(f"    Error processing item {item.get('url')}: {e}")
                continue

            report.results.append(result)
            if result.action == 'inserted':
                report.inserted += 1
            elif result.action == 'merged':
                report.merged += 1
            else:
                report.unchanged += 1

        print(f"\n✅ Deduplication complete: {report.inserted} new, {report.merged} merged, "
              f"{report.unchanged} unchanged, {report.failed} failed")
        report.ai_tokens = self.verifier.tokens_used - tokens_before
        if self.verifier.available:
            print(f"🤖 AI usage: {format_token_count(report.ai_tokens)}")
        print()
        return report
