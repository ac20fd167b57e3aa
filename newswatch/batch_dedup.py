"""
Retroactive Deduplication Module
Offline pass over the most recent stories that folds duplicates created before
(or despite) ingestion-time dedup into one canonical story.

Safe to stop and re-run: stories already marked is_duplicate are skipped.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .ai_client import format_token_count
from .candidates import CandidateFinder
from .config import DedupConfig
from .merge import MergeExecutor
from .resilience import deadline_after
from .semantic import SemanticVerifier


@dataclass
class BatchDecision:
    """One escalated pair and what was decided about it."""
    winner_id: str
    loser_id: str
    winner_headline: str
    loser_headline: str
    headline_similarity: float
    content_similarity: float
    decision: str  # 'merged', 'would_merge' or 'rejected'
    method: str
    confidence: float
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class BatchReport:
    """Progress and outcome of a retroactive run."""
    dry_run: bool
    analyzed: int = 0
    compared: int = 0
    escalated: int = 0
    merged: int = 0
    rejected: int = 0
    ai_tokens: int = 0
    aborted: bool = False
    cancelled: bool = False
    error: Optional[str] = None
    decisions: List[BatchDecision] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'dry_run': self.dry_run,
            'analyzed': self.analyzed,
            'compared': self.compared,
            'escalated': self.escalated,
            'merged': self.merged,
            'rejected': self.rejected,
            'ai_tokens': self.ai_tokens,
            'aborted': self.aborted,
            'cancelled': self.cancelled,
            'error': self.error,
            'decisions': [d.to_dict() for d in self.decisions],
        }


class RetroactiveDeduplicator:
    """Pairwise scan of a snapshot of recent stories."""

    def __init__(self, store, ai_generator=None, config: Optional[DedupConfig] = None):
        self.store = store
        self.config = config or DedupConfig()
        self.verifier = SemanticVerifier(ai_generator, self.config)
        self.finder = CandidateFinder(store, self.verifier, self.config)
        self.executor = MergeExecutor(store, self.verifier, self.config)

    def snapshot(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """The N most recently ingested stories, newest first."""
        return self.store.query(
            order_by=('ingested_at', 'desc'),
            limit=limit or self.config.batch_limit
        )

    async def run(
        self,
        dry_run: bool = False,
        limit: Optional[int] = None,
        should_stop: Optional[Callable[[], bool]] = None,
        pair_timeout: Optional[float] = None
    ) -> BatchReport:
        """
        Compare every live story with every later live story and merge confirmed pairs.

        Args:
            dry_run: Report intended merges without writing
            limit: Snapshot size (defaults to config.batch_limit)
            should_stop: Polled before each outer story; True cancels the run
            pair_timeout: Seconds allowed for the AI check of one pair

        Returns:
            BatchReport; on a write failure the run stops with aborted=True
            and the counts reached so far
        """
        report = BatchReport(dry_run=dry_run)
        tokens_before = self.verifier.tokens_used
        print(f"🧹 Starting Retroactive Deduplication {'(DRY RUN)' if dry_run else ''}...")
        print("─" * 58)

        stories = self.snapshot(limit)
        report.analyzed = len(stories)
        print(f"✓ Fetched {len(stories)} stories to analyze")

        processed = set()

        for i, story in enumerate(stories):
            if should_stop and should_stop():
                report.cancelled = True
                print("\n⏹️ Deduplication cancelled")
                break

            if story['id'] in processed or story.get('is_duplicate'):
                continue

            for candidate in stories[i + 1:]:
                if candidate['id'] in processed or candidate.get('is_duplicate'):
                    continue

                report.compared += 1
                pair = await self.finder.compare_pair(story, candidate, deadline=deadline_after(pair_timeout))
                if not pair.escalated:
                    continue

                report.escalated += 1
                check = pair.check
                decision = BatchDecision(
                    winner_id=story['id'],
                    loser_id=candidate['id'],
                    winner_headline=story.get('headline') or '',
                    loser_headline=candidate.get('headline') or '',
                    headline_similarity=round(pair.scores.headline, 3),
                    content_similarity=round(pair.scores.content, 3),
                    decision='rejected',
                    method=check.method,
                    confidence=check.confidence,
                    reason=check.reason,
                )
                report.decisions.append(decision)

                print("\n🔍 Potential Duplicate Found:")
                print(f"   A: [{story['id']}] {story.get('headline')}")
                print(f"   B: [{candidate['id']}] {candidate.get('headline')}")
                print(f"   Score: {pair.scores.combined:.2f} "
                      f"(H:{pair.scores.headline:.2f} C:{pair.scores.content:.2f}) "
                      f"{check.method}: {check.reason}")

                if not pair.is_match:
                    report.rejected += 1
                    print("   ✗ Not a duplicate")
                    continue

                if dry_run:
                    decision.decision = 'would_merge'
                    print("   [DRY RUN] Would merge B into A")
                else:
                    try:
                        self.executor.merge_existing_stories(story, candidate)
                    except Exception as e:
                        report.aborted = True
                        report.error = str(e)
                        print(f"\n❌ Deduplication Failed after {report.merged} merges: {e}")
                        self._record_usage(report, tokens_before)
                        return report
                    decision.decision = 'merged'
                    report.merged += 1

                processed.add(candidate['id'])

        print("\n" + "─" * 58)
        if dry_run:
            would = sum(1 for d in report.decisions if d.decision == 'would_merge')
            print(f"✅ Dry run complete. Would merge {would} pairs.")
        else:
            print(f"✅ Deduplication Complete. Merged {report.merged} pairs.")
        self._record_usage(report, tokens_before)
        return report

    def _record_usage(self, report: BatchReport, tokens_before: int):
        report.ai_tokens = self.verifier.tokens_used - tokens_before
        if self.verifier.available:
            print(f"🤖 AI usage: {format_token_count(report.ai_tokens)}")
