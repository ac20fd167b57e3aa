"""
Semantic Verification Module
Asks the AI whether two stories describe the same event, and writes combined
summaries for merged stories. Every AI failure degrades to an "unknown" result
or to None; nothing here raises into the ingestion or batch loops.
"""

import re
import json
import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .config import DedupConfig, DEFAULT_CONFIG
from .resilience import run_with_deadline
from .similarity import SimilarityScores


CODE_FENCE = re.compile(r'```(?:json)?\s*|\s*```', re.IGNORECASE)
JSON_OBJECT = re.compile(r'\{.*\}', re.DOTALL)


SIMILARITY_PROMPT = """Compare these two news stories and determine if they are about the same event, topic, or company announcement.

Story 1:
Headline: "{headline1}"
Summary: {summary1}

Story 2:
Headline: "{headline2}"
Summary: {summary2}

Respond ONLY with valid JSON in this exact format:
{{
  "is_duplicate": true or false,
  "confidence": 0-100,
  "reason": "brief explanation"
}}"""


COMBINED_SUMMARY_PROMPT = """You are summarizing a news story that has been reported by multiple sources. Create a comprehensive summary that combines insights from all sources.

Headline: "{headline}"

Source 1 ({source1}):
{text1}

Source 2 ({source2}):
{text2}

Create a comprehensive 3-4 sentence summary that:
- Combines key facts from both sources
- Highlights any unique details from either source
- Maintains a neutral, journalistic tone
- Focuses on business/investment implications

Respond with ONLY the summary text, no additional formatting."""


@dataclass
class DuplicateCheck:
    """
    Outcome of a same-event check.

    method is 'ai', 'heuristic' or 'unknown'. An 'unknown' result means the
    oracle could not answer; it is never a confirmed "not a duplicate".
    """
    is_duplicate: bool
    confidence: float
    reason: str
    method: str = 'ai'
    confirmed: bool = False

    @property
    def is_unknown(self) -> bool:
        return self.method == 'unknown'

    @classmethod
    def unknown(cls, reason: str) -> "DuplicateCheck":
        return cls(is_duplicate=False, confidence=0, reason=reason, method='unknown')

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_duplicate': self.is_duplicate,
            'confidence': self.confidence,
            'reason': self.reason,
            'method': self.method,
            'confirmed': self.confirmed,
        }


def _summary_text(story: Dict[str, Any], limit: int) -> str:
    return (story.get('summary') or story.get('content') or '')[:limit]


def build_similarity_prompt(story1: Dict[str, Any], story2: Dict[str, Any], summary_chars: int = 300) -> str:
    """Prompt presenting both headlines and truncated summaries."""
    return SIMILARITY_PROMPT.format(
        headline1=story1.get('headline', ''),
        summary1=_summary_text(story1, summary_chars),
        headline2=story2.get('headline', ''),
        summary2=_summary_text(story2, summary_chars),
    )


def build_combined_summary_prompt(existing: Dict[str, Any], incoming: Dict[str, Any], text_chars: int = 800) -> str:
    return COMBINED_SUMMARY_PROMPT.format(
        headline=existing.get('headline', ''),
        source1=existing.get('source') or 'Unknown',
        text1=_summary_text(existing, text_chars),
        source2=incoming.get('source') or 'Unknown',
        text2=_summary_text(incoming, text_chars),
    )


def parse_similarity_response(text: Optional[str], confidence_min: float = 70) -> DuplicateCheck:
    """
    Parse the model's JSON verdict.

    Markdown code fences and surrounding chatter are tolerated. Anything that
    does not yield a boolean is_duplicate and a numeric confidence is unknown.
    """
    if not text:
        return DuplicateCheck.unknown('Empty AI response')

    cleaned = CODE_FENCE.sub('', text).strip()
    match = JSON_OBJECT.search(cleaned)
    if not match:
        return DuplicateCheck.unknown('AI response is not JSON')

    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        return DuplicateCheck.unknown(f'Malformed AI response: {e}')

    if not isinstance(payload, dict):
        return DuplicateCheck.unknown('AI response is not a JSON object')

    is_duplicate = payload.get('is_duplicate')
    if not isinstance(is_duplicate, bool):
        return DuplicateCheck.unknown('AI response missing is_duplicate')

    confidence = payload.get('confidence')
    if isinstance(confidence, bool):
        return DuplicateCheck.unknown('AI response has invalid confidence')
    try:
        confidence = float(confidence)
    except (TypeError, ValueError):
        return DuplicateCheck.unknown('AI response has invalid confidence')
    confidence = min(100.0, max(0.0, confidence))

    return DuplicateCheck(
        is_duplicate=is_duplicate,
        confidence=confidence,
        reason=str(payload.get('reason') or ''),
        method='ai',
        confirmed=is_duplicate and confidence > confidence_min,
    )


def heuristic_check(scores: SimilarityScores, bar: float) -> DuplicateCheck:
    """
    Deterministic fallback: duplicate when the averaged lexical score clears the bar.
    """
    combined = scores.combined
    is_duplicate = combined > bar
    return DuplicateCheck(
        is_duplicate=is_duplicate,
        confidence=round(combined * 100, 2),
        reason=f'Lexical score {combined:.2f} {">" if is_duplicate else "<="} {bar:.2f}',
        method='heuristic',
        confirmed=is_duplicate,
    )


class SemanticVerifier:
    """Same-event oracle backed by an optional AI content generator."""

    def __init__(self, generator=None, config: DedupConfig = DEFAULT_CONFIG):
        self.generator = generator
        self.config = config

    @property
    def available(self) -> bool:
        return self.generator is not None

    @property
    def tokens_used(self) -> int:
        """Tokens the generator has reported so far, 0 without one."""
        return getattr(self.generator, 'total_tokens', 0) if self.generator else 0

    async def check(
        self,
        story1: Dict[str, Any],
        story2: Dict[str, Any],
        deadline: Optional[float] = None
    ) -> DuplicateCheck:
        """
        Ask the AI whether two stories describe the same event.

        Returns:
            DuplicateCheck; confirmed only if is_duplicate and confidence
            exceed the configured minimum. Failures return an unknown result.
        """
        if not self.available:
            return DuplicateCheck.unknown('AI not configured')

        prompt = build_similarity_prompt(story1, story2, self.config.prompt_summary_chars)
        try:
            response = await run_with_deadline(
                self.generator.generate(prompt, temperature=0.1, max_tokens=200, json_mode=True),
                deadline=deadline,
                timeout=self.config.oracle_timeout_seconds,
            )
        except asyncio.TimeoutError:
            print("    ⚠️ AI similarity check timed out")
            return DuplicateCheck.unknown('AI timeout')
        except Exception as e:
            print(f"    ⚠️ AI similarity check failed: {e}")
            return DuplicateCheck.unknown('AI error')

        result = parse_similarity_response(response.text, self.config.oracle_confidence_min)
        if result.is_unknown:
            print(f"    ⚠️ AI similarity check unusable: {result.reason}")
        return result

    async def combine_summaries(
        self,
        existing: Dict[str, Any],
        incoming: Dict[str, Any],
        deadline: Optional[float] = None
    ) -> Optional[str]:
        """
        Write one summary spanning both sources.

        Returns:
            Summary text, or None if AI is unavailable or fails
        """
        if not self.available:
            return None

        prompt = build_combined_summary_prompt(existing, incoming, self.config.combined_summary_chars)
        try:
            response = await run_with_deadline(
                self.generator.generate(prompt, temperature=0.5, max_tokens=400),
                deadline=deadline,
                timeout=self.config.oracle_timeout_seconds,
            )
        except asyncio.TimeoutError:
            print("    ⚠️ Combined summary timed out")
            return None
        except Exception as e:
            print(f"    ⚠️ Failed to generate combined summary: {e}")
            return None

        summary = (response.text or '').strip()
        if not summary:
            return None

        print(f"  🤖 Generated combined summary from {existing.get('source')} + {incoming.get('source')}")
        return summary
