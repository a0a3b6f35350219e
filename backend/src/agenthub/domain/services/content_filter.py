"""Content filter: sanity layer for text sent upstream to LLM providers.

Runs before every provider call. Enforces a hard per-message length ceiling
and strips obviously dangerous markup from user-supplied content. This is
defence in depth for content that may later be rendered as HTML; it is not
a general-purpose sanitiser.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from agenthub.domain.enums import MessageRole
from agenthub.domain.exceptions import ValidationError
from agenthub.domain.value_objects import ChatMessage

logger = structlog.get_logger(__name__)

DEFAULT_MAX_MESSAGE_CHARS = 8000

# (label, pattern, replacement)
_DANGEROUS_PATTERNS: list[tuple[str, re.Pattern[str], str]] = [
    (
        "script_block",
        re.compile(r"<\s*script\b[^>]*>.*?<\s*/\s*script\s*>", re.IGNORECASE | re.DOTALL),
        "",
    ),
    ("script_tag", re.compile(r"<\s*/?\s*script\b[^>]*>", re.IGNORECASE), ""),
    (
        "event_handler",
        re.compile(r"\bon[a-z]+\s*=\s*(?:\"[^\"]*\"|'[^']*')", re.IGNORECASE),
        "",
    ),
    ("javascript_uri", re.compile(r"\bjavascript\s*:", re.IGNORECASE), ""),
    ("vbscript_uri", re.compile(r"\bvbscript\s*:", re.IGNORECASE), ""),
    ("data_uri", re.compile(r"\bdata:[\w.+-]+/[\w.+-]+(?:;base64)?,?", re.IGNORECASE), ""),
]

# C0/C1 controls except tab, newline and carriage return
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")


@dataclass(frozen=True, slots=True)
class FilterResult:
    clean_text: str
    removed: list[str] = field(default_factory=list)

    @property
    def modified(self) -> bool:
        return bool(self.removed)


def _clean(text: str) -> tuple[str, list[str]]:
    removed: list[str] = []
    cleaned = unicodedata.normalize("NFC", text)

    stripped = _CONTROL_CHARS.sub("", cleaned)
    if stripped != cleaned:
        removed.append("control_chars")
    cleaned = stripped

    for label, pattern, replacement in _DANGEROUS_PATTERNS:
        cleaned, count = pattern.subn(replacement, cleaned)
        if count:
            removed.append(label)
    return cleaned.strip(), removed


def filter_content(text: str, *, max_chars: int = DEFAULT_MAX_MESSAGE_CHARS) -> FilterResult:
    """Strip dangerous substrings and enforce the length ceiling.

    Raises:
        ValidationError: if the text exceeds ``max_chars`` after filtering.
    """
    cleaned, removed = _clean(text)
    if len(cleaned) > max_chars:
        raise ValidationError(
            f"Message too long: {len(cleaned)} characters exceeds the limit of {max_chars}"
        )
    return FilterResult(clean_text=cleaned, removed=removed)


def prepare_history(
    history: Iterable[ChatMessage],
    *,
    max_chars: int = DEFAULT_MAX_MESSAGE_CHARS,
) -> list[ChatMessage]:
    """Clean earlier conversation turns without rejecting the request.

    Entries that are empty after filtering are dropped and entries over
    ``max_chars`` keep their first ``max_chars`` characters. System entries
    are dropped; the system prompt is always rebuilt server-side.
    """
    kept: list[ChatMessage] = []
    for msg in history:
        if msg.role == MessageRole.SYSTEM:
            continue
        cleaned, removed = _clean(msg.content)
        if removed:
            logger.warning("history_filtered", role=msg.role.value, removed=removed)
        if not cleaned:
            logger.info("history_entry_dropped", role=msg.role.value)
            continue
        if len(cleaned) > max_chars:
            logger.info("history_entry_trimmed", role=msg.role.value, length=len(cleaned))
            cleaned = cleaned[:max_chars].rstrip()
        kept.append(ChatMessage(role=msg.role, content=cleaned))
    return kept


def prepare_messages(
    messages: Iterable[ChatMessage],
    *,
    max_chars: int = DEFAULT_MAX_MESSAGE_CHARS,
) -> list[ChatMessage]:
    """Apply the filter to a normalised message list.

    System prompts are ours and only length-checked; user and assistant
    content comes from the client and is filtered.
    """
    prepared: list[ChatMessage] = []
    for msg in messages:
        if msg.role == MessageRole.SYSTEM:
            if len(msg.content) > max_chars:
                raise ValidationError(
                    f"System prompt too long: {len(msg.content)} characters exceeds {max_chars}"
                )
            prepared.append(msg)
            continue

        result = filter_content(msg.content, max_chars=max_chars)
        if result.modified:
            logger.warning("content_filtered", role=msg.role.value, removed=result.removed)
        if not result.clean_text:
            raise ValidationError(f"Empty {msg.role.value} message after filtering")
        prepared.append(ChatMessage(role=msg.role, content=result.clean_text))

    if not prepared:
        raise ValidationError("At least one message is required")
    return prepared
