"""Domain enumerations for the agent platform."""

from __future__ import annotations

import enum


class LLMProvider(str, enum.Enum):
    """Upstream LLM vendors the gateway can talk to."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


class AIModel(str, enum.Enum):
    """Models exposed to agents and to explicit model selection."""

    GPT_41_TURBO = "gpt-4.1-turbo"
    CLAUDE_SONNET_4 = "claude-sonnet-4-20250514"
    GEMINI_20_FLASH = "gemini-2.0-flash"

    @property
    def provider(self) -> LLMProvider:
        return _MODEL_PROVIDERS[self]


_MODEL_PROVIDERS: dict[AIModel, LLMProvider] = {
    AIModel.GPT_41_TURBO: LLMProvider.OPENAI,
    AIModel.CLAUDE_SONNET_4: LLMProvider.ANTHROPIC,
    AIModel.GEMINI_20_FLASH: LLMProvider.GEMINI,
}


class MessageRole(str, enum.Enum):
    """Roles accepted in a normalised message list."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class TransactionType(str, enum.Enum):
    """Ledger entry kinds. Only USAGE is a debit."""

    TRIAL = "trial"
    PURCHASE = "purchase"
    SUBSCRIPTION = "subscription"
    TOPUP = "topup"
    USAGE = "usage"
    ROLLOVER = "rollover"


class TurnOutcome(str, enum.Enum):
    """Terminal states of a single agent turn."""

    PAYWALL = "paywall"
    CREDIT_ERROR = "credit_error"
    FALLBACK = "fallback"
    ANSWERED = "answered"


class ProviderErrorKind(str, enum.Enum):
    """Classification assigned once at the HTTP boundary."""

    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    UPSTREAM = "upstream"
    VALIDATION = "validation"
    PARSE = "parse"
    UNAVAILABLE = "unavailable"


class QueryComplexity(str, enum.Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"
