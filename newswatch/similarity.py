"""
Lexical Similarity Module
Token-set similarity between story headlines and story bodies.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Set


CURRENCY_SYMBOLS = re.compile(r'[$€£¥₹]')

# "$300m" -> "300", "2.5b" -> "2.5", "40k" -> "40"
# Decimal amounts then split on the dot, and one-digit parts are dropped,
# so "$1.5B" contributes no tokens. Whole amounts like "300" carry the signal.
MAGNITUDE_SUFFIX = re.compile(r'(\d+(?:\.\d+)?)[mkb]\b')

NON_ALNUM = re.compile(r'[^a-z0-9]+')


@dataclass
class SimilarityScores:
    """Headline and content similarity for one pair of stories."""
    headline: float
    content: float

    @property
    def combined(self) -> float:
        """Average of both signals, used by the heuristic fallback."""
        return (self.headline + self.content) / 2

    @property
    def strongest(self) -> float:
        return max(self.headline, self.content)


def tokenize(text: Optional[str]) -> Set[str]:
    """
    Extract comparable tokens from text.

    - Lowercase
    - Remove currency symbols
    - Collapse numbers with magnitude suffixes into the bare number
    - Split on non-alphanumeric characters
    - Keep tokens of length >= 3, or >= 2 when they contain a digit
    """
    if not text:
        return set()

    text = text.lower()
    text = CURRENCY_SYMBOLS.sub('', text)
    text = MAGNITUDE_SUFFIX.sub(r'\1', text)

    tokens = set()
    for word in NON_ALNUM.split(text):
        if len(word) >= 3:
            tokens.add(word)
        elif len(word) == 2 and any(ch.isdigit() for ch in word):
            tokens.add(word)
    return tokens


def jaccard(text1: Optional[str], text2: Optional[str]) -> float:
    """|A & B| / |A | B| over token sets; 0.0 if either side is empty."""
    tokens1 = tokenize(text1)
    tokens2 = tokenize(text2)
    if not tokens1 or not tokens2:
        return 0.0
    return len(tokens1 & tokens2) / len(tokens1 | tokens2)


def overlap(text1: Optional[str], text2: Optional[str]) -> float:
    """|A & B| / min(|A|, |B|) over token sets; 0.0 if either side is empty."""
    tokens1 = tokenize(text1)
    tokens2 = tokenize(text2)
    if not tokens1 or not tokens2:
        return 0.0
    return len(tokens1 & tokens2) / min(len(tokens1), len(tokens2))


def headline_similarity(headline1: Optional[str], headline2: Optional[str]) -> float:
    """
    Headline similarity.

    Takes the best of Jaccard and the overlap coefficient, so a headline whose
    salient terms are a subset of the other's still scores high.
    """
    return max(jaccard(headline1, headline2), overlap(headline1, headline2))


def story_body(story: Dict[str, Any]) -> str:
    """Body text of a story: content, or summary when content is empty."""
    return story.get('content') or story.get('summary') or ''


def content_similarity(story1: Dict[str, Any], story2: Dict[str, Any], prefix_chars: int = 200) -> float:
    """Jaccard similarity over the first prefix_chars characters of each body."""
    return jaccard(story_body(story1)[:prefix_chars], story_body(story2)[:prefix_chars])


def score_pair(story1: Dict[str, Any], story2: Dict[str, Any], prefix_chars: int = 200) -> SimilarityScores:
    """Compute both similarity signals for a pair of stories."""
    return SimilarityScores(
        headline=headline_similarity(story1.get('headline'), story2.get('headline')),
        content=content_similarity(story1, story2, prefix_chars),
    )
