"""Shared test fixtures."""

from __future__ import annotations

import os
import sys
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest

# Add src to path so imports work
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from agenthub.adapters.outbound.session import JwtSessionProvider
from agenthub.domain.entities import AgentProfile
from agenthub.domain.enums import AIModel
from agenthub.domain.services.agents import get_agent
from agenthub.domain.value_objects import (
    AgentEligibility,
    CallerIdentity,
    ChatMessage,
    DeductionResult,
    ProviderReply,
)
from agenthub.ports.outbound import LLMTransportPort
from agenthub.shared.providers import ProviderAvailabilityTracker, ProviderConfig, RateLimitTracker
from agenthub.shared.providers.gateway import ProviderGateway
from agenthub.shared.security import create_access_token, create_refresh_token

TEST_SECRET = "test-secret-key-256-bits-long-enough"


class ScriptedTransport(LLMTransportPort):
    """Replays queued replies or errors per provider.

    A provider with an empty queue answers with ``"<provider> answer"``.
    """

    def __init__(self) -> None:
        self.script: dict[str, list[ProviderReply | Exception]] = {}
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def queue(self, provider: str, *items: ProviderReply | Exception) -> None:
        self.script.setdefault(provider, []).extend(items)

    async def send(
        self,
        config: ProviderConfig,
        *,
        model: str,
        messages: list[ChatMessage],
        temperature: float,
        max_tokens: int,
    ) -> ProviderReply:
        self.calls.append(
            {
                "provider": config.provider_id,
                "model": model,
                "messages": list(messages),
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        pending = self.script.get(config.provider_id)
        if pending:
            item = pending.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return ProviderReply(content=f"{config.provider_id} answer", tokens=42)

    def providers_called(self) -> list[str]:
        return [c["provider"] for c in self.calls]

    async def close(self) -> None:
        self.closed = True


# ═══════════════════════════════════════════════════════════════
#  Providers
# ═══════════════════════════════════════════════════════════════
@pytest.fixture
def provider_configs() -> list[ProviderConfig]:
    return [
        ProviderConfig(
            provider_id="openai",
            api_key="sk-test-openai",
            base_url="https://openai.test/v1",
            default_model=AIModel.GPT_41_TURBO.value,
            rpm_limit=10,
            max_tokens_ceiling=4096,
        ),
        ProviderConfig(
            provider_id="anthropic",
            api_key="sk-test-anthropic",
            base_url="https://anthropic.test/v1",
            default_model=AIModel.CLAUDE_SONNET_4.value,
            rpm_limit=10,
            max_tokens_ceiling=8192,
            metadata={"api_version": "2023-06-01"},
        ),
        ProviderConfig(
            provider_id="gemini",
            api_key="sk-test-gemini",
            base_url="https://gemini.test/v1beta",
            default_model=AIModel.GEMINI_20_FLASH.value,
            rpm_limit=10,
            max_tokens_ceiling=8192,
        ),
    ]


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def session_provider() -> JwtSessionProvider:
    return JwtSessionProvider(TEST_SECRET)


@pytest.fixture
def make_gateway(
    provider_configs: list[ProviderConfig],
    transport: ScriptedTransport,
    session_provider: JwtSessionProvider,
) -> Callable[..., ProviderGateway]:
    def _make(
        configs: list[ProviderConfig] | None = None,
        *,
        rate_limits: RateLimitTracker | None = None,
        availability: ProviderAvailabilityTracker | None = None,
        **kwargs: Any,
    ) -> ProviderGateway:
        cfgs = configs if configs is not None else provider_configs
        kwargs.setdefault("backoff_base", 0.001)
        kwargs.setdefault("backoff_max", 0.004)
        return ProviderGateway(
            cfgs,
            transport,
            session_provider,
            rate_limits=rate_limits or RateLimitTracker(cfgs),
            availability=availability
            or ProviderAvailabilityTracker([c.provider_id for c in cfgs]),
            **kwargs,
        )

    return _make


@pytest.fixture
def gateway(make_gateway: Callable[..., ProviderGateway]) -> ProviderGateway:
    return make_gateway()


# ═══════════════════════════════════════════════════════════════
#  Identity
# ═══════════════════════════════════════════════════════════════
@pytest.fixture
def caller() -> CallerIdentity:
    token = create_access_token({"sub": "user-1", "role": "user"}, TEST_SECRET)
    return CallerIdentity(user_id="user-1", access_token=token)


@pytest.fixture
def expired_caller() -> CallerIdentity:
    return CallerIdentity(
        user_id="user-1",
        access_token=create_access_token({"sub": "user-1"}, TEST_SECRET, expires_minutes=-1),
        refresh_token=create_refresh_token({"sub": "user-1"}, TEST_SECRET),
    )


# ═══════════════════════════════════════════════════════════════
#  Ledger / bus doubles
# ═══════════════════════════════════════════════════════════════
@pytest.fixture
def mock_event_bus() -> Mock:
    bus = Mock()
    bus.publish = AsyncMock()
    return bus


@pytest.fixture
def mock_ledger() -> Mock:
    ledger = Mock()
    ledger.check_eligibility = AsyncMock(
        return_value=AgentEligibility.compute(required=1, available=5)
    )
    ledger.deduct = AsyncMock(
        return_value=DeductionResult(
            success=True, credits_cost=1, new_balance=4, transaction_id="tx-1"
        )
    )
    ledger.add_credits = AsyncMock()
    ledger.get_balance = AsyncMock()
    ledger.initialize_trial = AsyncMock()
    ledger.process_rollover = AsyncMock(return_value=None)
    ledger.list_transactions = AsyncMock(return_value=[])
    ledger.usage_stats = AsyncMock()
    return ledger


@pytest.fixture
def sample_agent() -> AgentProfile:
    return get_agent("1")


@pytest.fixture
def jwt_secret() -> str:
    return TEST_SECRET
