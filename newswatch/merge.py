"""
Story Merge Module
Applies deduplication decisions to the content store:
- insert a new canonical story
- fold a new source into an existing canonical story (ingestion)
- mark one canonical story as a duplicate of another (retroactive batch)

Duplicates are never deleted; they are hidden and point at their canonical story.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .config import DedupConfig, DEFAULT_CONFIG
from .errors import MergeChainError, MergeConflictError, StoryNotFoundError
from .semantic import SemanticVerifier
from .url_normalizer import normalize_url, source_keys


@dataclass
class MergeResult:
    """Outcome of a merge: the canonical story ID and whether anything changed."""
    story_id: str
    merged: bool
    source_count: int = 0
    pe_impact_score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'story_id': self.story_id,
            'merged': self.merged,
            'source_count': self.source_count,
            'pe_impact_score': self.pe_impact_score,
        }


# ============ HELPERS ============

def coerce_datetime(value: Any) -> Optional[datetime]:
    """Parse datetimes stored as datetime or ISO string; naive values are UTC."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def make_source(story: Dict[str, Any]) -> Dict[str, Any]:
    """Source record for a story's own publication."""
    return {
        'name': story.get('source'),
        'url': story.get('url'),
        'published_at': story.get('published_at'),
    }


def story_sources(story: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Sources of a story. Legacy stories without a sources list count their
    own url/source/published_at as the first source.
    """
    sources = story.get('sources')
    if isinstance(sources, list) and sources:
        return [dict(s) for s in sources]
    if story.get('url') or story.get('source'):
        return [make_source(story)]
    return []


def latest_source_at(story: Dict[str, Any], sources: List[Dict[str, Any]]) -> Optional[datetime]:
    """Most recent publication time across a story and its sources."""
    candidates = [
        coerce_datetime(story.get('last_source_at')),
        coerce_datetime(story.get('published_at')),
    ]
    candidates.extend(coerce_datetime(s.get('published_at')) for s in sources)
    candidates = [c for c in candidates if c is not None]
    return max(candidates) if candidates else None


def boost_impact_score(
    base_score: Optional[float],
    source_count: int,
    per_source: float = 0.15,
    ceiling: float = 99.99
) -> Optional[float]:
    """
    More sources = more important story.
    Formula: min(ceiling, base * (1 + (source_count - 1) * per_source))
    """
    if base_score is None:
        return None
    multiplier = 1 + (max(source_count, 1) - 1) * per_source
    return round(min(ceiling, base_score * multiplier), 4)


def resolve_base_score(story: Dict[str, Any]) -> Optional[float]:
    """
    Un-boosted score to multiply.

    The base recorded at the last boost is reused unless the relevance scorer
    has rewritten pe_impact_score since, in which case the new value is the base.
    """
    score = story.get('pe_impact_score')
    if score is None:
        return None
    base = story.get('base_impact_score')
    if base is not None and story.get('boosted_impact_score') == score:
        return base
    return score


def _longer(current: Optional[str], candidate: Optional[str]) -> Optional[str]:
    """candidate if it is strictly longer than current, else None."""
    if candidate and len(candidate) > len(current or ''):
        return candidate
    return None


# ============ MERGE EXECUTOR ============

class MergeExecutor:
    """Insert, fold and mark-duplicate operations over a content store."""

    def __init__(self, store, verifier: Optional[SemanticVerifier] = None, config: DedupConfig = DEFAULT_CONFIG):
        self.store = store
        self.verifier = verifier or SemanticVerifier(config=config)
        self.config = config

    def _score_updates(self, story: Dict[str, Any], source_count: int) -> Dict[str, Any]:
        base = resolve_base_score(story)
        boosted = boost_impact_score(
            base, source_count, self.config.boost_per_source, self.config.score_ceiling
        )
        if boosted is None:
            return {}
        return {
            'pe_impact_score': boosted,
            'base_impact_score': base,
            'boosted_impact_score': boosted,
        }

    def resolve_canonical(self, story: Dict[str, Any]) -> Dict[str, Any]:
        """
        Follow merged_into pointers to the live story.

        Raises:
            MergeChainError: on a cycle or a chain deeper than max_merge_depth
            StoryNotFoundError: if a pointer targets a missing story
        """
        chain = [story['id']]
        current = story

        while current.get('is_duplicate') and current.get('merged_into'):
            target_id = current['merged_into']
            if target_id in chain or len(chain) > self.config.max_merge_depth:
                raise MergeChainError(story['id'], chain + [target_id])

            target = self.store.get(target_id)
            if target is None:
                raise StoryNotFoundError(target_id)

            chain.append(target_id)
            current = target

        return current

    # ============ INSERT ============

    def insert_new(self, new_story: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
        """Create a canonical story whose only source is the incoming one."""
        now = now or datetime.now(timezone.utc)
        published_at = coerce_datetime(new_story.get('published_at')) or now

        source = make_source(new_story)
        source['published_at'] = published_at

        story_data = {
            'headline': new_story.get('headline'),
            'url': new_story.get('url'),
            'content': new_story.get('content') or '',
            'summary': new_story.get('summary') or '',
            'source': new_story.get('source'),
            'sources': [source],
            'published_at': published_at,
            'ingested_at': now,
            'created_at': now,
            'last_source_at': published_at,
            'is_duplicate': False,
        }
        if new_story.get('pe_impact_score') is not None:
            story_data['pe_impact_score'] = new_story['pe_impact_score']

        return self.store.insert(story_data)

    # ============ FOLD SOURCE INTO CANONICAL ============

    async def merge_into(
        self,
        existing: Dict[str, Any],
        new_story: Dict[str, Any],
        deadline: Optional[float] = None
    ) -> MergeResult:
        """
        Fold a newly ingested story into an existing canonical story.

        A source whose normalized URL is already present is a no-op, so
        re-ingesting the same feed item never duplicates a source entry.
        """
        canonical = self.resolve_canonical(existing)
        new_key = normalize_url(new_story.get('url'))

        if new_key and new_key in source_keys(story_sources(canonical)):
            print(f"  ⚠️  Source {new_story.get('source')} already exists for this story, skipping merge")
            return MergeResult(
                story_id=canonical['id'],
                merged=False,
                source_count=len(story_sources(canonical)),
                pe_impact_score=canonical.get('pe_impact_score')
            )

        combined_summary = await self.verifier.combine_summaries(canonical, new_story, deadline=deadline)

        new_source = make_source(new_story)
        new_source['published_at'] = coerce_datetime(new_story.get('published_at')) or datetime.now(timezone.utc)

        def fold(current: Dict[str, Any]) -> Optional[Dict[str, Any]]:
            if current.get('is_duplicate'):
                raise MergeConflictError(f"Story {current['id']} became a duplicate during merge")

            sources = story_sources(current)
            if new_key and new_key in source_keys(sources):
                return None
            sources.append(new_source)

            updates: Dict[str, Any] = {'sources': sources}
            updates.update(self._score_updates(current, len(sources)))

            content = _longer(current.get('content'), new_story.get('content'))
            if content:
                updates['content'] = content

            if combined_summary:
                updates['summary'] = combined_summary
            else:
                summary = _longer(current.get('summary'), new_story.get('summary'))
                if summary:
                    updates['summary'] = summary

            last_at = latest_source_at(current, sources)
            if last_at:
                updates['last_source_at'] = last_at
            return updates

        current, updates = self.store.update_in_transaction(canonical['id'], fold)

        if not updates:
            print(f"  ⚠️  Source {new_story.get('source')} was added concurrently, skipping merge")
            return MergeResult(
                story_id=canonical['id'],
                merged=False,
                source_count=len(story_sources(current)),
                pe_impact_score=current.get('pe_impact_score')
            )

        score = updates.get('pe_impact_score', current.get('pe_impact_score'))
        score_label = f"{score:.2f}" if score is not None else 'N/A'
        print(f"  📰 Merged story from {new_story.get('source')} "
              f"({len(updates['sources'])} sources, score: {score_label})")

        return MergeResult(
            story_id=canonical['id'],
            merged=True,
            source_count=len(updates['sources']),
            pe_impact_score=score
        )

    # ============ MERGE EXISTING PAIR ============

    def merge_existing_stories(
        self,
        winner: Dict[str, Any],
        loser: Dict[str, Any],
        now: Optional[datetime] = None
    ) -> MergeResult:
        """
        Merge one canonical story into another and mark it as a duplicate.

        The winner is written first; the loser is only marked once that write
        succeeded, so merged_into never points at a story missing the sources.
        Stories already folded into the loser are repointed at the winner in
        the same batch, keeping every merged_into one hop from a live story.

        Raises:
            MergeConflictError: self-merge, or loser already folded elsewhere
        """
        now = now or datetime.now(timezone.utc)
        if winner['id'] == loser['id']:
            raise MergeConflictError(f"Cannot merge story {winner['id']} into itself")

        winner_doc = self.store.get(winner['id'])
        loser_doc = self.store.get(loser['id'])
        if winner_doc is None:
            raise StoryNotFoundError(winner['id'])
        if loser_doc is None:
            raise StoryNotFoundError(loser['id'])

        target = self.resolve_canonical(winner_doc)

        if loser_doc.get('is_duplicate'):
            if self.resolve_canonical(loser_doc)['id'] == target['id']:
                return MergeResult(story_id=target['id'], merged=False,
                                   source_count=len(story_sources(target)),
                                   pe_impact_score=target.get('pe_impact_score'))
            raise MergeConflictError(
                f"Story {loser_doc['id']} is already a duplicate of {loser_doc.get('merged_into')}"
            )

        if target['id'] == loser_doc['id']:
            raise MergeConflictError(f"Story {winner['id']} resolves to {loser_doc['id']}; refusing cycle")

        def absorb(current: Dict[str, Any]) -> Dict[str, Any]:
            if current.get('is_duplicate'):
                raise MergeConflictError(f"Story {current['id']} became a duplicate during merge")

            sources = story_sources(current)
            keys = source_keys(sources)
            for source in story_sources(loser_doc):
                key = normalize_url(source.get('url'))
                if key and key in keys:
                    continue
                sources.append(source)
                if key:
                    keys.add(key)

            updates: Dict[str, Any] = {'sources': sources}
            updates.update(self._score_updates(current, len(sources)))

            content = _longer(current.get('content'), loser_doc.get('content'))
            if content:
                updates['content'] = content
            summary = _longer(current.get('summary'), loser_doc.get('summary'))
            if summary:
                updates['summary'] = summary

            last_at = latest_source_at(current, sources)
            if last_at:
                updates['last_source_at'] = last_at
            return updates

        current, updates = self.store.update_in_transaction(target['id'], absorb)

        # Earlier duplicates of the loser point straight at the new canonical story
        children = self.store.query([('merged_into', '==', loser_doc['id'])])
        self.store.batch_update(
            [(loser_doc['id'], {
                'is_duplicate': True,
                'merged_into': target['id'],
                'hidden': True,
                'merged_at': now,
            })]
            + [(child['id'], {'merged_into': target['id']}) for child in children]
        )

        print(f"  📰 Merged [{loser_doc['id']}] into [{target['id']}] ({len(updates['sources'])} sources"
              f"{f', {len(children)} repointed' if children else ''})")

        return MergeResult(
            story_id=target['id'],
            merged=True,
            source_count=len(updates['sources']),
            pe_impact_score=updates.get('pe_impact_score', current.get('pe_impact_score'))
        )
