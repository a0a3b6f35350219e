"""Domain events: typed records of things that happened in the domain.

Events are published *after* a successful domain operation so that audit
and notification adapters can react without slowing the request path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class DomainEvent:
    """Base class for all domain events."""

    event_type: str = "DOMAIN_EVENT"
    occurred_at: datetime = field(default_factory=_utcnow)
    metadata: dict[str, Any] = field(default_factory=dict)


# ── Credit events ────────────────────────────────────────────
@dataclass(frozen=True, slots=True)
class CreditsDeductedEvent(DomainEvent):
    event_type: str = "CREDITS_DEDUCTED"
    user_id: str = ""
    agent_id: str = ""
    credits_cost: int = 0
    new_balance: int = 0
    transaction_id: str = ""
    idempotency_key: str = ""


@dataclass(frozen=True, slots=True)
class CreditsAddedEvent(DomainEvent):
    event_type: str = "CREDITS_ADDED"
    user_id: str = ""
    amount: int = 0
    transaction_type: str = ""
    new_balance: int = 0
    description: str = ""


@dataclass(frozen=True, slots=True)
class PaywallShownEvent(DomainEvent):
    event_type: str = "PAYWALL_SHOWN"
    user_id: str = ""
    agent_id: str = ""
    required: int = 0
    available: int = 0


# ── Agent events ─────────────────────────────────────────────
@dataclass(frozen=True, slots=True)
class AgentTurnCompletedEvent(DomainEvent):
    event_type: str = "AGENT_TURN_COMPLETED"
    user_id: str = ""
    agent_id: str = ""
    outcome: str = ""
    provider: str | None = None
    model: str | None = None
    tokens: int = 0
    response_time_ms: float = 0.0
    credits_cost: int = 0
    idempotency_key: str | None = None
    correlation_id: str = ""
