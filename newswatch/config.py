"""
Dedup Configuration
Thresholds and limits used by the candidate finder, merge executor and batch job.
"""

import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

from .errors import ConfigError


ENV_PREFIX = "DEDUP_"


@dataclass(frozen=True)
class DedupConfig:
    """All tunable thresholds in one place."""

    # Lexical auto-merge: both signals must clear their bar
    auto_merge_headline: float = 0.8
    auto_merge_content: float = 0.75

    # Lexical escalation to the oracle: either signal may clear its bar
    escalate_headline: float = 0.4
    escalate_content: float = 0.4

    # Heuristic bars on the averaged score when no oracle answers
    no_oracle_ingest_bar: float = 0.35
    no_oracle_batch_bar: float = 0.4

    # Batch pre-filter on the averaged score
    batch_escalate_bar: float = 0.25

    window_hours: int = 48
    oracle_confidence_min: int = 70
    oracle_timeout_seconds: Optional[float] = None
    max_ai_candidates: int = 3

    # Text truncation
    content_prefix_chars: int = 200
    prompt_summary_chars: int = 300
    combined_summary_chars: int = 800

    # Score boost: base * (1 + (sources - 1) * boost_per_source), capped
    boost_per_source: float = 0.15
    score_ceiling: float = 99.99

    batch_limit: int = 500
    max_merge_depth: int = 10

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "DedupConfig":
        """
        Build a config from DEDUP_* environment variables.

        Example: DEDUP_WINDOW_HOURS=72 overrides window_hours.
        """
        environ = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}

        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            overrides[f.name] = _parse_value(f.name, f.default, raw)

        return replace(cls(), **overrides)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _parse_value(name: str, default: Any, raw: str) -> Any:
    """Parse an environment string using the field's default as the type hint."""
    raw = raw.strip()
    try:
        if default is None:
            # Only oracle_timeout_seconds is optional
            if raw.lower() in ("none", "off"):
                return None
            return float(raw)
        if isinstance(default, bool):
            return raw.lower() in ("1", "true", "yes", "on")
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
    except ValueError:
        raise ConfigError(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}")
    return raw


DEFAULT_CONFIG = DedupConfig()
