"""Provider gateway: the main entry-point for provider calls.

Wraps one logical call to one upstream LLM provider: validates the request,
filters content, checks the caller's credential, consults the availability
and rate-limit trackers, then retries classified failures with exponential
backoff. Fallback across providers is an explicit ordered candidate list
folded through :func:`first_success`.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import TypeVar

import structlog

from agenthub.domain.entities import AIResponse
from agenthub.domain.enums import AIModel, LLMProvider
from agenthub.domain.exceptions import (
    AllProvidersExhaustedError,
    AuthenticationError,
    ParseError,
    ProviderAuthError,
    ProviderError,
    ProviderUnavailableError,
    RateLimitError,
    UpstreamError,
    ValidationError,
)
from agenthub.domain.services.confidence import score_confidence
from agenthub.domain.services.content_filter import DEFAULT_MAX_MESSAGE_CHARS, prepare_messages
from agenthub.domain.value_objects import CallerIdentity, ChatMessage
from agenthub.ports.outbound import LLMTransportPort, SessionTokenPort
from agenthub.shared.observability.metrics import (
    PROVIDER_AVAILABLE,
    PROVIDER_CALLS,
    PROVIDER_LATENCY,
)
from agenthub.shared.providers.availability import ProviderAvailabilityTracker
from agenthub.shared.providers.rate_limit import RateLimitTracker
from agenthub.shared.providers.types import ProviderConfig

logger = structlog.get_logger(__name__)

T = TypeVar("T")
C = TypeVar("C")

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2000


async def first_success(
    candidates: Iterable[C],
    attempt: Callable[[C], Awaitable[T]],
    *,
    label: Callable[[C], str] = str,
) -> T:
    """Try each candidate in order and return the first success.

    Only ``ProviderError`` moves on to the next candidate; anything else
    (validation, authentication) propagates unchanged.

    Raises:
        AllProvidersExhaustedError: every candidate failed.
    """
    errors: dict[str, str] = {}
    for candidate in candidates:
        name = label(candidate)
        try:
            result = await attempt(candidate)
        except ProviderError as exc:
            errors[name] = exc.code
            logger.warning("provider_candidate_failed", provider=name, code=exc.code)
            continue
        if errors:
            logger.info(
                "provider_failover_success",
                provider=name,
                failed_providers=list(errors),
            )
        return result
    raise AllProvidersExhaustedError(errors)


class ProviderGateway:
    """Single-provider calls with validation, retry and bookkeeping.

    Usage::

        gateway = ProviderGateway(configs, transport, sessions, rate_limits=..., availability=...)
        response = await gateway.call("openai", "gpt-4.1-turbo", messages, identity=caller)

    Rate-limit and availability trackers are injected so the same instances
    can be shared with status endpoints and the query processor.
    """

    def __init__(
        self,
        configs: Sequence[ProviderConfig],
        transport: LLMTransportPort,
        sessions: SessionTokenPort,
        *,
        rate_limits: RateLimitTracker,
        availability: ProviderAvailabilityTracker,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        backoff_max: float = 8.0,
        max_message_chars: int = DEFAULT_MAX_MESSAGE_CHARS,
    ) -> None:
        self._configs = {cfg.provider_id: cfg for cfg in configs}
        self._transport = transport
        self._sessions = sessions
        self._rate_limits = rate_limits
        self._availability = availability
        self._max_attempts = max(1, max_attempts)
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._max_message_chars = max_message_chars

    @property
    def providers(self) -> list[str]:
        return list(self._configs)

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def config(self, provider: str) -> ProviderConfig:
        cfg = self._configs.get(provider)
        if cfg is None:
            raise ValidationError(f"Unknown provider: {provider!r}")
        return cfg

    def backoff_delay(self, attempt: int) -> float:
        """Delay after the given 1-based attempt: ``base * 2**(attempt-1)``, capped."""
        return min(self._backoff_base * (2 ** (attempt - 1)), self._backoff_max)

    # ── Identity ─────────────────────────────────────────────
    async def authorize(self, identity: CallerIdentity | None) -> CallerIdentity:
        """Return an identity with a valid access token, refreshing once if expired."""
        if identity is None or not identity.user_id:
            raise AuthenticationError("No caller identity")
        return await self._sessions.ensure_valid(identity)

    # ── Availability ─────────────────────────────────────────
    def can_use(self, provider: str) -> bool:
        """Configured, not in cooldown and under its rate limit."""
        cfg = self._configs.get(provider)
        return (
            cfg is not None
            and cfg.has_key
            and self._availability.is_available(provider)
            and self._rate_limits.check_limit(provider)
        )

    def available_providers(self) -> list[str]:
        return [p for p in self._configs if self.can_use(p)]

    def fallback_candidates(self, model: AIModel | str) -> list[tuple[str, str]]:
        """Preferred provider with the requested model first, then the rest.

        Other providers are included only when currently usable, each with
        its own default model.
        """
        try:
            resolved = AIModel(model)
            preferred, preferred_model = resolved.provider.value, resolved.value
        except ValueError:
            preferred, preferred_model = LLMProvider.OPENAI.value, AIModel.GPT_41_TURBO.value

        candidates = [(preferred, preferred_model)]
        for provider in self.available_providers():
            if provider != preferred:
                candidates.append((provider, self._configs[provider].default_model))
        return candidates

    # ── Main entry-point ─────────────────────────────────────
    async def call(
        self,
        provider: LLMProvider | str,
        model: str,
        messages: Sequence[ChatMessage],
        *,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        identity: CallerIdentity | None = None,
    ) -> AIResponse:
        """One logical call to one provider.

        Raises:
            ValidationError: unknown provider, ``max_tokens`` outside the
                provider's ceiling, or bad message content. Nothing is sent.
            AuthenticationError: no valid credential after one refresh.
            ProviderError: classified upstream failure after retries.
        """
        pid = provider.value if isinstance(provider, LLMProvider) else str(provider)
        cfg = self.config(pid)
        if not 1 <= max_tokens <= cfg.max_tokens_ceiling:
            raise ValidationError(
                f"max_tokens={max_tokens} outside 1..{cfg.max_tokens_ceiling} for {pid}"
            )
        prepared = prepare_messages(messages, max_chars=self._max_message_chars)
        caller = await self.authorize(identity)

        if not cfg.has_key:
            raise ProviderUnavailableError(pid, "No API key configured")
        if not self._availability.is_available(pid):
            raise ProviderUnavailableError(pid, "Provider is cooling down")

        log = logger.bind(provider=pid, model=model, user_id=caller.user_id)
        attempt = 0
        while True:
            attempt += 1
            # every attempt, retries included, spends one request of the window
            if not self._rate_limits.check_limit(pid):
                raise RateLimitError(pid, "Local rate limit reached", retryable=False)

            start = time.monotonic()
            tokens = 0
            try:
                reply = await asyncio.wait_for(
                    self._transport.send(
                        cfg,
                        model=model,
                        messages=prepared,
                        temperature=temperature,
                        max_tokens=max_tokens,
                    ),
                    timeout=cfg.timeout_s,
                )
                tokens = reply.tokens
                if not reply.content.strip():
                    raise ParseError(pid, "Empty content in provider response")
            except asyncio.TimeoutError:
                error: ProviderError = UpstreamError(pid, f"Timeout after {cfg.timeout_s}s")
            except ProviderError as exc:
                error = exc
            else:
                elapsed = time.monotonic() - start
                self._availability.mark_available(pid)
                PROVIDER_CALLS.labels(provider=pid, outcome="success").inc()
                PROVIDER_LATENCY.labels(provider=pid).observe(elapsed)
                PROVIDER_AVAILABLE.labels(provider=pid).set(1)
                log.info(
                    "provider_request_success",
                    attempt=attempt,
                    tokens=reply.tokens,
                    latency_ms=round(elapsed * 1000, 1),
                )
                return AIResponse(
                    provider=pid,
                    model=model,
                    content=reply.content,
                    confidence=score_confidence(pid, reply.content),
                    tokens=reply.tokens,
                    response_time_ms=round(elapsed * 1000, 1),
                )
            finally:
                self._rate_limits.record(pid, tokens)

            PROVIDER_CALLS.labels(provider=pid, outcome=error.kind.value).inc()
            log.warning(
                "provider_request_failed",
                attempt=attempt,
                kind=error.kind.value,
                status_code=error.status_code,
                retryable=error.retryable,
                error=error.detail,
            )

            if isinstance(error, ProviderAuthError):
                self._mark_unavailable(pid, error.detail)
                raise error
            if not error.retryable:
                raise error
            if attempt >= self._max_attempts:
                if isinstance(error, RateLimitError):
                    self._mark_unavailable(pid, "Quota exhausted after retries")
                log.error("provider_retries_exhausted", attempts=attempt, kind=error.kind.value)
                raise error
            await asyncio.sleep(self.backoff_delay(attempt))

    async def call_with_fallback(
        self,
        candidates: Sequence[tuple[str, str]],
        messages: Sequence[ChatMessage],
        *,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        identity: CallerIdentity | None = None,
    ) -> AIResponse:
        """Run :meth:`call` over ``(provider, model)`` candidates in order."""

        async def _attempt(candidate: tuple[str, str]) -> AIResponse:
            provider, model = candidate
            cfg = self.config(provider)
            return await self.call(
                provider,
                model,
                messages,
                temperature=temperature,
                max_tokens=min(max_tokens, cfg.max_tokens_ceiling),
                identity=identity,
            )

        return await first_success(candidates, _attempt, label=lambda c: c[0])

    # ── Status / admin ───────────────────────────────────────
    def rate_limit_status(self) -> dict[str, dict[str, object]]:
        return {
            pid: self._rate_limits.snapshot(pid).as_dict() for pid in self._configs
        }

    def provider_status(self) -> dict[str, dict[str, object]]:
        return {
            pid: self._availability.snapshot(pid).as_dict() for pid in self._configs
        }

    def reset_provider(self, provider: str) -> None:
        """Admin reset: clears the rate window and marks the provider available."""
        self.config(provider)
        self._rate_limits.reset(provider)
        self._availability.mark_available(provider)
        PROVIDER_AVAILABLE.labels(provider=provider).set(1)
        logger.info("provider_admin_reset", provider=provider)

    async def close(self) -> None:
        await self._transport.close()

    # ── Internals ────────────────────────────────────────────
    def _mark_unavailable(self, provider: str, reason: str) -> None:
        self._availability.mark_unavailable(provider, reason)
        PROVIDER_AVAILABLE.labels(provider=provider).set(0)
