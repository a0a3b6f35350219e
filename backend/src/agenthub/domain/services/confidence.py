"""Heuristic confidence score for a provider response."""

from __future__ import annotations

import re

PROVIDER_BASELINES: dict[str, float] = {
    "openai": 0.85,
    "anthropic": 0.80,
    "gemini": 0.75,
}
DEFAULT_BASELINE = 0.70

MIN_CONFIDENCE = 0.10
MAX_CONFIDENCE = 0.95

HEDGING_PHRASES = ("not sure", "might be", "uncertain")

_LIST_LINE = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s+", re.MULTILINE)


def has_structure(content: str) -> bool:
    """Code fences, numbered lists or bulleted lists."""
    return "```" in content or bool(_LIST_LINE.search(content))


def score_confidence(provider: str, content: str) -> float:
    text = content.strip()
    if len(text) < 10:
        return MIN_CONFIDENCE

    score = PROVIDER_BASELINES.get(provider, DEFAULT_BASELINE)
    if len(text) > 500:
        score += 0.05
    if has_structure(text):
        score += 0.05
    lowered = text.lower()
    if any(phrase in lowered for phrase in HEDGING_PHRASES):
        score -= 0.10

    return round(min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, score)), 2)
