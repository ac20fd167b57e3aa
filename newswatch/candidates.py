"""
Candidate Finder Module
Locates an existing story that may describe the same event as an incoming one.

Stages, cheapest first, stopping at the first match:
1. Exact URL match over the whole collection
2. Normalized URL match over the recent window
3. Lexical pre-filter over the recent window (auto-merge or escalate)
4. Semantic check of the best escalated candidates (AI, or heuristic fallback)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .config import DedupConfig, DEFAULT_CONFIG
from .semantic import DuplicateCheck, SemanticVerifier, heuristic_check
from .similarity import SimilarityScores, score_pair
from .url_normalizer import normalize_url


@dataclass
class CandidateMatch:
    """An existing story judged to describe the same event, and why."""
    story: Dict[str, Any]
    stage: str  # 'exact_url', 'normalized_url', 'auto_merge', 'ai', 'heuristic'
    scores: Optional[SimilarityScores] = None
    check: Optional[DuplicateCheck] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {'story_id': self.story.get('id'), 'stage': self.stage}
        if self.scores:
            result['headline_similarity'] = round(self.scores.headline, 3)
            result['content_similarity'] = round(self.scores.content, 3)
        if self.check:
            result['check'] = self.check.to_dict()
        return result


@dataclass
class PairDecision:
    """Pairwise verdict used by the retroactive batch job."""
    scores: SimilarityScores
    escalated: bool
    check: Optional[DuplicateCheck] = None

    @property
    def is_match(self) -> bool:
        return self.escalated and self.check is not None and self.check.confirmed


def _short(text: Optional[str], length: int = 60) -> str:
    text = text or ''
    return text if len(text) <= length else text[:length] + '...'


class CandidateFinder:
    """Multi-stage duplicate candidate search against a content store."""

    def __init__(self, store, verifier: SemanticVerifier, config: DedupConfig = DEFAULT_CONFIG):
        self.store = store
        self.verifier = verifier
        self.config = config

    def recent_stories(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Stories ingested within the trailing window, newest first."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(hours=self.config.window_hours)
        return self.store.query(
            [('ingested_at', '>', cutoff)],
            order_by=('ingested_at', 'desc')
        )

    async def find_similar(
        self,
        new_story: Dict[str, Any],
        deadline: Optional[float] = None,
        now: Optional[datetime] = None
    ) -> Optional[CandidateMatch]:
        """
        Find an existing story about the same event.

        Store errors propagate to the caller; AI errors never do.

        Returns:
            CandidateMatch, or None when the story is new
        """
        url = new_story.get('url')

        # Stage 1: exact URL match (fastest, most reliable)
        if url:
            exact = self.store.query([('url', '==', url)], limit=1)
            if exact:
                print(f"  🔗 Exact URL match found for: {_short(new_story.get('headline'))}")
                return CandidateMatch(story=exact[0], stage='exact_url')

        recent = [s for s in self.recent_stories(now) if not s.get('is_duplicate')]

        # Stage 2: normalized URL match against story and source URLs
        url_key = normalize_url(url)
        if url_key:
            for existing in recent:
                urls = [existing.get('url')] + [s.get('url') for s in existing.get('sources') or []]
                if any(normalize_url(u) == url_key for u in urls if u):
                    print(f"  🔗 Normalized URL match found for: {_short(new_story.get('headline'))}")
                    return CandidateMatch(story=existing, stage='normalized_url')

        # Stage 3: lexical pre-filter
        candidates = []
        for existing in recent:
            scores = score_pair(new_story, existing, self.config.content_prefix_chars)

            # Both signals must be strong to skip the semantic check
            if (scores.headline > self.config.auto_merge_headline
                    and scores.content > self.config.auto_merge_content):
                print(f"  📝 Lexical auto-merge (H:{scores.headline:.2f} C:{scores.content:.2f}): "
                      f"{_short(existing.get('headline'))}")
                return CandidateMatch(story=existing, stage='auto_merge', scores=scores)

            if (scores.headline > self.config.escalate_headline
                    or scores.content > self.config.escalate_content):
                candidates.append((existing, scores))

        if not candidates:
            return None

        # Stage 4: semantic check of the strongest candidates
        candidates.sort(key=lambda c: c[1].strongest, reverse=True)
        for existing, scores in candidates[:self.config.max_ai_candidates]:
            check = await self.verify(
                new_story, existing, scores, self.config.no_oracle_ingest_bar, deadline
            )
            if check.confirmed:
                if check.method == 'ai':
                    print(f"    🤖 AI detected duplicate: {check.reason} (confidence: {check.confidence:.0f}%)")
                else:
                    print(f"    🧮 Heuristic duplicate: {check.reason}")
                return CandidateMatch(story=existing, stage=check.method, scores=scores, check=check)

        return None

    async def verify(
        self,
        story1: Dict[str, Any],
        story2: Dict[str, Any],
        scores: SimilarityScores,
        heuristic_bar: float,
        deadline: Optional[float] = None
    ) -> DuplicateCheck:
        """
        Semantic check with deterministic fallback.

        The heuristic applies when no oracle is configured or the oracle
        could not give an answer.
        """
        if self.verifier.available:
            check = await self.verifier.check(story1, story2, deadline=deadline)
            if not check.is_unknown:
                return check
        return heuristic_check(scores, heuristic_bar)

    async def compare_pair(
        self,
        story1: Dict[str, Any],
        story2: Dict[str, Any],
        deadline: Optional[float] = None
    ) -> PairDecision:
        """
        Pairwise variant for the batch job.

        Escalates when the averaged lexical score clears batch_escalate_bar,
        and falls back to the stricter batch heuristic bar without an oracle.
        """
        scores = score_pair(story1, story2, self.config.content_prefix_chars)
        if scores.combined <= self.config.batch_escalate_bar:
            return PairDecision(scores=scores, escalated=False)

        check = await self.verify(story1, story2, scores, self.config.no_oracle_batch_bar, deadline)
        return PairDecision(scores=scores, escalated=True, check=check)
