"""Multi-provider query processing.

Fans one query out to up to three usable providers concurrently, keeps
whatever subset succeeds and synthesises a single reported answer. When
nothing succeeds the caller still gets a low-confidence fallback response.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from agenthub.domain.entities import AIResponse, ConversationMessage
from agenthub.domain.enums import MessageRole
from agenthub.domain.exceptions import ProviderError
from agenthub.domain.services.content_filter import (
    DEFAULT_MAX_MESSAGE_CHARS,
    prepare_history,
    prepare_messages,
)
from agenthub.domain.services.messages import fallback_message
from agenthub.domain.services.synthesis import (
    QueryAnalysis,
    Synthesis,
    analyze_query,
    select_system_prompt,
    synthesize,
)
from agenthub.domain.value_objects import CallerIdentity, ChatMessage
from agenthub.shared.observability.metrics import MULTI_PROVIDER_QUERIES
from agenthub.shared.providers.gateway import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    ProviderGateway,
)

logger = structlog.get_logger(__name__)

FALLBACK_PROVIDER = "Fallback"
FALLBACK_MODEL = "System"
FALLBACK_CONFIDENCE = 0.1


@dataclass
class MultiProviderResult:
    query: str
    analysis: QueryAnalysis
    responses: list[AIResponse]
    synthesis: Synthesis
    providers: list[str] = field(default_factory=list)
    processing_time_ms: float = 0.0


def fallback_response(query: str, reason: str = "No AI providers available") -> AIResponse:
    return AIResponse(
        provider=FALLBACK_PROVIDER,
        model=FALLBACK_MODEL,
        content=fallback_message(query),
        confidence=FALLBACK_CONFIDENCE,
        tokens=0,
        response_time_ms=0.0,
        error=reason,
    )


class MultiProviderQueryProcessor:
    def __init__(
        self,
        gateway: ProviderGateway,
        *,
        max_providers: int = 3,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        history_limit: int = 10,
        max_message_chars: int = DEFAULT_MAX_MESSAGE_CHARS,
    ) -> None:
        self._gateway = gateway
        self._max_providers = max_providers
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._history_limit = history_limit
        self._max_message_chars = max_message_chars

    async def process(
        self,
        query: str,
        history: Sequence[ConversationMessage] = (),
        identity: CallerIdentity | None = None,
    ) -> MultiProviderResult:
        start = time.monotonic()
        caller = await self._gateway.authorize(identity)
        log = logger.bind(user_id=caller.user_id)

        analysis = analyze_query(query)
        messages = prepare_messages(
            self._build_messages(query, history, select_system_prompt(analysis)),
            max_chars=self._max_message_chars,
        )
        providers = self._gateway.available_providers()[: self._max_providers]
        log.info(
            "multi_provider_query_started",
            providers=providers,
            complexity=analysis.complexity.value,
            domains=list(analysis.domains),
        )

        results = await asyncio.gather(
            *(self._call(provider, messages, caller) for provider in providers),
            return_exceptions=True,
        )

        responses: list[AIResponse] = []
        for provider, result in zip(providers, results):
            if isinstance(result, AIResponse):
                responses.append(result)
            elif isinstance(result, ProviderError):
                log.warning("multi_provider_call_failed", provider=provider, code=result.code)
            elif isinstance(result, BaseException):
                raise result

        MULTI_PROVIDER_QUERIES.labels(successes=str(len(responses))).inc()
        if not responses:
            log.warning("multi_provider_all_failed", attempted=providers)
            responses = [fallback_response(query)]

        synthesis = synthesize(responses)
        elapsed_ms = round((time.monotonic() - start) * 1000, 1)
        log.info(
            "multi_provider_query_completed",
            successes=len([r for r in responses if r.error is None]),
            providers_used=synthesis.providers_used,
            confidence=round(synthesis.confidence, 2),
            duration_ms=elapsed_ms,
        )
        return MultiProviderResult(
            query=query,
            analysis=analysis,
            responses=responses,
            synthesis=synthesis,
            providers=[r.provider for r in responses],
            processing_time_ms=elapsed_ms,
        )

    async def _call(
        self, provider: str, messages: list[ChatMessage], caller: CallerIdentity
    ) -> AIResponse:
        cfg = self._gateway.config(provider)
        return await self._gateway.call(
            provider,
            cfg.default_model,
            messages,
            temperature=self._temperature,
            max_tokens=min(self._max_tokens, cfg.max_tokens_ceiling),
            identity=caller,
        )

    def _build_messages(
        self,
        query: str,
        history: Sequence[ConversationMessage],
        system_prompt: str,
    ) -> list[ChatMessage]:
        messages = [ChatMessage(role=MessageRole.SYSTEM, content=system_prompt)]
        earlier = prepare_history(
            (ChatMessage(role=m.role, content=m.content) for m in history),
            max_chars=self._max_message_chars,
        )
        messages.extend(earlier[-self._history_limit :])
        messages.append(ChatMessage(role=MessageRole.USER, content=query))
        return messages
