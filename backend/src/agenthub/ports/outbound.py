"""Outbound ports: interfaces that infrastructure adapters must implement.

These are the *driven* ports in hexagonal architecture.  The domain and
application layers depend only on these abstractions, never on concrete
implementations (database drivers, HTTP clients, etc.).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from agenthub.domain.entities import CreditBalance, CreditTransaction, User
from agenthub.domain.enums import TransactionType
from agenthub.domain.events import AgentTurnCompletedEvent, DomainEvent
from agenthub.domain.value_objects import (
    AgentEligibility,
    CallerIdentity,
    ChatMessage,
    DeductionResult,
    ProviderReply,
)
from agenthub.shared.providers.types import ProviderConfig


# ═══════════════════════════════════════════════════════════════
#  Repository ports
# ═══════════════════════════════════════════════════════════════
class UserRepository(ABC):
    @abstractmethod
    async def save(self, user: User) -> None: ...

    @abstractmethod
    async def get_by_id(self, user_id: str) -> User | None: ...

    @abstractmethod
    async def get_by_username(self, username: str) -> User | None: ...


class UsageLogRepository(ABC):
    """One row per completed agent turn."""

    @abstractmethod
    async def record_turn(self, event: AgentTurnCompletedEvent) -> None: ...

    @abstractmethod
    async def list_recent(self, user_id: str, *, limit: int = 50) -> list[dict[str, Any]]: ...


# ═══════════════════════════════════════════════════════════════
#  Credit ledger port
# ═══════════════════════════════════════════════════════════════
class CreditLedgerPort(ABC):
    """Authoritative balance store.

    ``deduct`` is the single mutating entry point for debits. It must be
    atomic per user and idempotent per key.
    """

    @abstractmethod
    async def check_eligibility(self, agent_id: str, user_id: str) -> AgentEligibility: ...

    @abstractmethod
    async def deduct(
        self, agent_id: str, user_id: str, idempotency_key: str
    ) -> DeductionResult: ...

    @abstractmethod
    async def add_credits(
        self,
        user_id: str,
        amount: int,
        type: TransactionType,
        description: str,
        *,
        idempotency_key: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CreditTransaction: ...

    @abstractmethod
    async def get_balance(self, user_id: str) -> CreditBalance: ...

    @abstractmethod
    async def get_credit_cost(self, agent_id: str) -> int: ...

    @abstractmethod
    async def list_transactions(
        self,
        user_id: str,
        *,
        type: TransactionType | None = None,
        limit: int = 50,
    ) -> list[CreditTransaction]: ...

    @abstractmethod
    async def usage_stats(self, user_id: str, *, days: int = 30) -> dict[str, int]: ...

    @abstractmethod
    async def initialize_trial(self, user_id: str) -> CreditTransaction: ...

    @abstractmethod
    async def process_rollover(
        self, user_id: str, period: str, *, unused: int | None = None
    ) -> CreditTransaction | None: ...


# ═══════════════════════════════════════════════════════════════
#  Cache port
# ═══════════════════════════════════════════════════════════════
class CachePort(ABC):
    """Key-value cache with counters (backed by Redis)."""

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def set(
        self, key: str, value: str, *, ttl_seconds: int | None = None
    ) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...

    @abstractmethod
    async def increment(self, key: str, *, ttl_seconds: int | None = None) -> int: ...


# ═══════════════════════════════════════════════════════════════
#  LLM transport port
# ═══════════════════════════════════════════════════════════════
class LLMTransportPort(ABC):
    """One HTTP round-trip to one provider, no retry logic.

    Implementations classify failures into ``ProviderError`` subclasses at
    the point where the HTTP status is known.
    """

    @abstractmethod
    async def send(
        self,
        config: ProviderConfig,
        *,
        model: str,
        messages: list[ChatMessage],
        temperature: float,
        max_tokens: int,
    ) -> ProviderReply: ...

    @abstractmethod
    async def close(self) -> None: ...


# ═══════════════════════════════════════════════════════════════
#  Identity / session port
# ═══════════════════════════════════════════════════════════════
class SessionTokenPort(ABC):
    @abstractmethod
    async def ensure_valid(self, identity: CallerIdentity) -> CallerIdentity:
        """Return an identity holding a valid access token.

        An expired token is refreshed at most once. Raises
        ``AuthenticationError`` when no valid credential can be produced.
        """
        ...


# ═══════════════════════════════════════════════════════════════
#  Notification port
# ═══════════════════════════════════════════════════════════════
class NotificationPort(ABC):
    """Fire-and-forget push channel."""

    @abstractmethod
    async def send(self, text: str) -> bool: ...


# ═══════════════════════════════════════════════════════════════
#  Event bus port
# ═══════════════════════════════════════════════════════════════
class EventBusPort(ABC):
    """Publish/subscribe for domain events."""

    @abstractmethod
    async def publish(self, event: DomainEvent) -> None: ...

    @abstractmethod
    def subscribe(
        self,
        event_type: str,
        handler: Any,
    ) -> None: ...
