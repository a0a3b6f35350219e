"""Domain entities: records with identity.

Conversation messages and AI responses are produced once and never mutated;
ledger rows are only changed through ledger operations.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from agenthub.domain.enums import AIModel, MessageRole, TransactionType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


# ═══════════════════════════════════════════════════════════════
#  Conversation
# ═══════════════════════════════════════════════════════════════
@dataclass(frozen=True, slots=True)
class ConversationMessage:
    """One entry of chat history. History is append-only."""

    role: MessageRole
    content: str
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=_utcnow)
    agent_id: str | None = None
    model: str | None = None


@dataclass(frozen=True, slots=True)
class AIResponse:
    """Normalised result of one provider call."""

    provider: str
    model: str
    content: str
    confidence: float
    tokens: int
    response_time_ms: float
    error: str | None = None


# ═══════════════════════════════════════════════════════════════
#  Agents
# ═══════════════════════════════════════════════════════════════
@dataclass(frozen=True, slots=True)
class AgentProfile:
    """A named personality routed to a default model."""

    id: str
    name: str
    role: str
    description: str = ""
    default_model: AIModel = AIModel.GPT_41_TURBO
    actions: tuple[str, ...] = ()


# ═══════════════════════════════════════════════════════════════
#  Credits
# ═══════════════════════════════════════════════════════════════
@dataclass(slots=True)
class CreditBalance:
    user_id: str
    balance: int = 0
    last_updated: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True, slots=True)
class CreditTransaction:
    """Immutable ledger entry. Positive amounts credit, negative debit."""

    user_id: str
    amount: int
    type: TransactionType
    idempotency_key: str
    description: str = ""
    balance_after: int = 0
    agent_id: str | None = None
    metadata: dict[str, object] = field(default_factory=dict)
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)
    # Set when a keyed grant was already recorded; never persisted
    replayed: bool = False


# ═══════════════════════════════════════════════════════════════
#  Users
# ═══════════════════════════════════════════════════════════════
@dataclass(slots=True)
class User:
    username: str
    email: str
    password_hash: str
    role: str = "user"
    is_active: bool = True
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_utcnow)
