"""Core types for the multi-provider resilience framework."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ProviderConfig:
    """Static configuration for a single LLM provider.

    Attributes:
        provider_id:        Unique identifier ("openai", "anthropic", "gemini").
        api_key:            Credential sent upstream (empty = not configured).
        base_url:           API root for the provider.
        default_model:      Model used when the provider is a fallback candidate.
        rpm_limit:          Max requests per minute (0 = unlimited).
        tpm_limit:          Max tokens per minute (0 = unlimited).
        max_tokens_ceiling: Largest ``max_tokens`` the provider accepts.
        timeout_s:          Per-request timeout in seconds.
        metadata:           Arbitrary extra config (API version, etc.).
    """

    provider_id: str
    api_key: str = ""
    base_url: str = ""
    default_model: str = ""
    rpm_limit: int = 60
    tpm_limit: int = 0
    max_tokens_ceiling: int = 4096
    timeout_s: float = 60.0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def has_key(self) -> bool:
        return bool(self.api_key.strip())


@dataclass
class ProviderState:
    """Read-only snapshot of one provider's availability flag."""

    provider_id: str
    available: bool = True
    last_error: str | None = None
    last_checked_at: float | None = None
    unavailable_since: float | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "available": self.available,
            "last_error": self.last_error,
            "last_checked_at": self.last_checked_at,
        }


@dataclass
class RateWindowSnapshot:
    """Usage of one provider inside the current rate window."""

    provider_id: str
    requests: int
    tokens: int
    rpm_limit: int
    tpm_limit: int
    can_make_request: bool

    def as_dict(self) -> dict[str, Any]:
        return {
            "requests": self.requests,
            "tokens": self.tokens,
            "rpm_limit": self.rpm_limit,
            "tpm_limit": self.tpm_limit,
            "can_make_request": self.can_make_request,
        }
