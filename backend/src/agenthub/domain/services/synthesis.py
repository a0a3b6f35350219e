"""Query analysis and multi-response synthesis.

Pure functions over :class:`AIResponse` lists. Theme extraction is a word
frequency heuristic, not semantic analysis.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field

from agenthub.domain.entities import AIResponse
from agenthub.domain.enums import QueryComplexity

SYSTEM_PROMPTS: dict[str, str] = {
    "default": (
        "You are a helpful AI assistant. Provide accurate, comprehensive, and well-structured "
        "responses. Include relevant examples and explanations when appropriate."
    ),
    "analysis": (
        "You are an expert analyst. Break down complex problems systematically, provide "
        "evidence-based insights, and structure your response with clear headings and bullet "
        "points."
    ),
    "coding": (
        "You are a senior software engineer. Provide clean, well-commented code examples with "
        "explanations. Include best practices and potential pitfalls to avoid."
    ),
    "creative": (
        "You are a creative assistant. Generate original, engaging content while maintaining "
        "accuracy and relevance to the user's request."
    ),
}

_CODE_WORDS = ("code", "function", "class", "algorithm", "programming", "debug")
_REASONING_WORDS = ("analyze", "compare", "explain", "why", "how", "logic")
_CREATIVE_WORDS = ("create", "write", "story", "poem", "design", "imagine")

_DOMAIN_KEYWORDS: dict[str, tuple[str, ...]] = {
    "technology": ("tech", "software", "programming", "computer", "ai", "machine learning"),
    "science": ("science", "research", "experiment", "theory", "hypothesis"),
    "business": ("business", "marketing", "strategy", "finance", "management"),
    "creative": ("art", "design", "creative", "writing", "story", "music"),
    "education": ("learn", "teach", "education", "study", "academic"),
}

SCORE_CONFIDENCE_WEIGHT = 0.7
SCORE_LENGTH_WEIGHT = 0.3
SOURCE_EXCERPT_CHARS = 300
MAX_THEMES = 5


@dataclass(frozen=True, slots=True)
class QueryAnalysis:
    complexity: QueryComplexity
    domains: tuple[str, ...]
    requires_code: bool
    requires_reasoning: bool
    requires_creativity: bool


@dataclass(frozen=True, slots=True)
class Synthesis:
    best_response: str
    confidence: float
    consensus: bool
    sources: list[dict[str, object]] = field(default_factory=list)
    themes: list[str] = field(default_factory=list)
    total_tokens: int = 0
    providers_used: str = ""


def analyze_query(query: str) -> QueryAnalysis:
    lowered = query.lower()
    if len(query) > 200:
        complexity = QueryComplexity.COMPLEX
    elif len(query) > 50:
        complexity = QueryComplexity.MODERATE
    else:
        complexity = QueryComplexity.SIMPLE

    domains = tuple(
        name
        for name, keywords in _DOMAIN_KEYWORDS.items()
        if any(word in lowered for word in keywords)
    )
    return QueryAnalysis(
        complexity=complexity,
        domains=domains or ("general",),
        requires_code=any(word in lowered for word in _CODE_WORDS),
        requires_reasoning=any(word in lowered for word in _REASONING_WORDS),
        requires_creativity=any(word in lowered for word in _CREATIVE_WORDS),
    )


def select_system_prompt(analysis: QueryAnalysis) -> str:
    if analysis.requires_code:
        return SYSTEM_PROMPTS["coding"]
    if analysis.requires_reasoning:
        return SYSTEM_PROMPTS["analysis"]
    if analysis.requires_creativity:
        return SYSTEM_PROMPTS["creative"]
    return SYSTEM_PROMPTS["default"]


def extract_common_themes(responses: list[AIResponse]) -> list[str]:
    """Top words longer than four characters that appear at least twice."""
    text = " ".join(r.content for r in responses).lower()
    counts = Counter(word for word in re.split(r"\W+", text) if len(word) > 4)
    return [word for word, count in counts.most_common() if count >= 2][:MAX_THEMES]


def _score(response: AIResponse) -> float:
    return (
        response.confidence * SCORE_CONFIDENCE_WEIGHT
        + (len(response.content) / 1000) * SCORE_LENGTH_WEIGHT
    )


def synthesize(responses: list[AIResponse]) -> Synthesis:
    if not responses:
        raise ValueError("synthesize() needs at least one response")

    if len(responses) == 1:
        only = responses[0]
        return Synthesis(
            best_response=only.content,
            confidence=only.confidence,
            consensus=True,
            sources=[_source(only)],
            total_tokens=only.tokens,
            providers_used=only.provider,
        )

    best = max(responses, key=_score)
    themes = extract_common_themes(responses)
    return Synthesis(
        best_response=best.content,
        confidence=sum(r.confidence for r in responses) / len(responses),
        consensus=len(themes) > 0,
        sources=[_source(r) for r in responses],
        themes=themes,
        total_tokens=sum(r.tokens for r in responses),
        providers_used=", ".join(r.provider for r in responses),
    )


def _source(response: AIResponse) -> dict[str, object]:
    excerpt = response.content[:SOURCE_EXCERPT_CHARS]
    if len(response.content) > SOURCE_EXCERPT_CHARS:
        excerpt += "..."
    return {
        "provider": response.provider,
        "model": response.model,
        "content": excerpt,
        "confidence": response.confidence,
        "tokens": response.tokens,
    }
