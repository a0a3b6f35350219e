"""Query handlers: read-side use cases.

Query handlers are intentionally simple: they fetch data from the ledger,
the agent catalogue or the gateway trackers. No state is mutated here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

from agenthub.domain.entities import AgentProfile, CreditBalance, CreditTransaction
from agenthub.domain.enums import TransactionType
from agenthub.domain.services.agents import get_agent, list_agents
from agenthub.domain.value_objects import AgentEligibility
from agenthub.ports.outbound import CreditLedgerPort, UsageLogRepository
from agenthub.shared.providers.gateway import ProviderGateway

logger = structlog.get_logger(__name__)


# ═══════════════════════════════════════════════════════════════
#  Credits
# ═══════════════════════════════════════════════════════════════
@dataclass
class GetBalanceQuery:
    user_id: str


class GetBalanceHandler:
    def __init__(self, ledger: CreditLedgerPort) -> None:
        self._ledger = ledger

    async def handle(self, query: GetBalanceQuery) -> CreditBalance:
        logger.debug("get_balance", user_id=query.user_id)
        return await self._ledger.get_balance(query.user_id)


@dataclass
class ListTransactionsQuery:
    user_id: str
    type: TransactionType | None = None
    limit: int = 50


class ListTransactionsHandler:
    def __init__(self, ledger: CreditLedgerPort) -> None:
        self._ledger = ledger

    async def handle(self, query: ListTransactionsQuery) -> list[CreditTransaction]:
        logger.debug("list_transactions", user_id=query.user_id, type=query.type)
        return await self._ledger.list_transactions(
            query.user_id, type=query.type, limit=query.limit
        )


@dataclass
class GetUsageQuery:
    user_id: str
    days: int = 30
    recent_limit: int = 20


@dataclass(frozen=True)
class UsageReport:
    stats: dict[str, int]
    recent_turns: list[dict[str, Any]]


class GetUsageHandler:
    """Ledger totals plus the most recent agent turns from the audit log."""

    def __init__(self, ledger: CreditLedgerPort, usage_logs: UsageLogRepository) -> None:
        self._ledger = ledger
        self._usage_logs = usage_logs

    async def handle(self, query: GetUsageQuery) -> UsageReport:
        stats = await self._ledger.usage_stats(query.user_id, days=query.days)
        recent = await self._usage_logs.list_recent(query.user_id, limit=query.recent_limit)
        return UsageReport(stats=stats, recent_turns=recent)


@dataclass
class CheckEligibilityQuery:
    agent_id: str
    user_id: str


class CheckEligibilityHandler:
    def __init__(self, ledger: CreditLedgerPort) -> None:
        self._ledger = ledger

    async def handle(self, query: CheckEligibilityQuery) -> AgentEligibility:
        get_agent(query.agent_id)
        return await self._ledger.check_eligibility(query.agent_id, query.user_id)


# ═══════════════════════════════════════════════════════════════
#  Agents
# ═══════════════════════════════════════════════════════════════
class ListAgentsHandler:
    async def handle(self) -> list[AgentProfile]:
        return list_agents()


# ═══════════════════════════════════════════════════════════════
#  Providers
# ═══════════════════════════════════════════════════════════════
class ProviderStatusHandler:
    def __init__(self, gateway: ProviderGateway) -> None:
        self._gateway = gateway

    async def availability(self) -> dict[str, dict[str, object]]:
        return self._gateway.provider_status()

    async def rate_limits(self) -> dict[str, dict[str, object]]:
        return self._gateway.rate_limit_status()
