"""Agent orchestration: one user turn against one agent personality.

Turn state machine::

    authorize ─▶ check credits ─▶ deduct ─▶ invoke providers ─▶ ANSWERED
                      │              │              │
                      ▼              ▼              ▼
                   PAYWALL      CREDIT_ERROR     FALLBACK

Steps run sequentially. Authentication and message validation run before
the credit check, so a rejected turn never costs credits. Earlier turns are
cleaned rather than rejected: empty entries are dropped and oversized ones
trimmed. Credits stay debited when every provider
fails afterwards; the turn ends in FALLBACK without a refund.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from agenthub.domain.entities import AgentProfile, AIResponse, ConversationMessage
from agenthub.domain.enums import MessageRole, TurnOutcome
from agenthub.domain.events import (
    AgentTurnCompletedEvent,
    CreditsDeductedEvent,
    PaywallShownEvent,
)
from agenthub.domain.exceptions import (
    AllProvidersExhaustedError,
    ProviderError,
    ValidationError,
)
from agenthub.domain.services.agents import (
    is_starter_action,
    starter_response,
    system_prompt_for,
)
from agenthub.domain.services.content_filter import (
    DEFAULT_MAX_MESSAGE_CHARS,
    filter_content,
    prepare_history,
    prepare_messages,
)
from agenthub.domain.services.idempotency import idempotency_key, new_correlation_id
from agenthub.domain.services.messages import (
    credit_error_message,
    fallback_message,
    paywall_message,
)
from agenthub.domain.value_objects import CallerIdentity, ChatMessage
from agenthub.ports.outbound import CreditLedgerPort, EventBusPort
from agenthub.shared.observability.metrics import AGENT_LATENCY, AGENT_TURNS
from agenthub.shared.providers.gateway import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    ProviderGateway,
)

logger = structlog.get_logger(__name__)

AGENT_TURN_OPERATION = "agent_turn"


@dataclass(frozen=True)
class AgentTurnResult:
    """Terminal state of a turn plus the assistant message to show."""

    outcome: TurnOutcome
    message: ConversationMessage
    history: tuple[ConversationMessage, ...]
    correlation_id: str
    credits_cost: int = 0
    new_balance: int | None = None
    idempotency_key: str | None = None
    response: AIResponse | None = None


class AgentOrchestrator:
    def __init__(
        self,
        gateway: ProviderGateway,
        ledger: CreditLedgerPort,
        event_bus: EventBusPort,
        *,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        history_limit: int = 20,
        max_message_chars: int = DEFAULT_MAX_MESSAGE_CHARS,
    ) -> None:
        self._gateway = gateway
        self._ledger = ledger
        self._event_bus = event_bus
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._history_limit = history_limit
        self._max_message_chars = max_message_chars

    async def generate_response(
        self,
        message: str,
        agent: AgentProfile,
        history: Sequence[ConversationMessage],
        identity: CallerIdentity,
        *,
        skip_deduction: bool = False,
        model: str | None = None,
        correlation_id: str | None = None,
    ) -> AgentTurnResult:
        """Run one turn.

        ``correlation_id`` identifies the user action; a client retrying the
        same action passes the same value so the debit is not repeated.

        ``skip_deduction`` is for callers that already charged the user.
        It is trusted as-is: no eligibility check and no debit happen.

        Raises:
            AuthenticationError: the caller has no valid credential.
            ValidationError: the message is empty or too long.
        """
        start = time.monotonic()
        correlation = correlation_id or new_correlation_id(f"agent_{agent.id}")
        log = logger.bind(agent_id=agent.id, correlation_id=correlation)

        caller = await self._gateway.authorize(identity)
        log = log.bind(user_id=caller.user_id)
        text = filter_content(message, max_chars=self._max_message_chars).clean_text
        if not text:
            raise ValidationError("Message must not be empty")
        chat = prepare_messages(
            self._build_messages(agent, history, text), max_chars=self._max_message_chars
        )

        user_msg = ConversationMessage(role=MessageRole.USER, content=message, agent_id=agent.id)
        turn = _Turn(
            agent=agent,
            caller=caller,
            history=tuple(history) + (user_msg,),
            correlation_id=correlation,
            started=start,
        )
        log.info("agent_turn_started", skip_deduction=skip_deduction, model=model)

        # ── CheckCredits / Deduct ────────────────────────────
        if skip_deduction:
            log.warning("credit_deduction_skipped")
        else:
            eligibility = await self._ledger.check_eligibility(agent.id, caller.user_id)
            if not eligibility.can_use:
                log.info(
                    "agent_paywall",
                    required=eligibility.required,
                    available=eligibility.available,
                )
                await self._event_bus.publish(
                    PaywallShownEvent(
                        user_id=caller.user_id,
                        agent_id=agent.id,
                        required=eligibility.required,
                        available=eligibility.available,
                    )
                )
                return await self._finish(
                    turn,
                    TurnOutcome.PAYWALL,
                    paywall_message(agent.name, eligibility.required, eligibility.available),
                    new_balance=eligibility.available,
                )

            turn.idempotency_key = idempotency_key(
                AGENT_TURN_OPERATION, caller.user_id, correlation
            )
            log = log.bind(idempotency_key=turn.idempotency_key)
            try:
                deduction = await self._ledger.deduct(
                    agent.id, caller.user_id, turn.idempotency_key
                )
            except Exception:
                log.exception("credit_deduction_error")
                return await self._finish(
                    turn,
                    TurnOutcome.CREDIT_ERROR,
                    credit_error_message(eligibility.required, eligibility.available),
                )

            if not deduction.success:
                log.warning(
                    "credit_deduction_failed",
                    error=deduction.error,
                    required=deduction.credits_cost,
                    available=deduction.new_balance,
                )
                return await self._finish(
                    turn,
                    TurnOutcome.CREDIT_ERROR,
                    credit_error_message(deduction.credits_cost, deduction.new_balance),
                    new_balance=deduction.new_balance,
                )

            turn.credits_cost = deduction.credits_cost
            turn.new_balance = deduction.new_balance
            if not deduction.is_duplicate:
                await self._event_bus.publish(
                    CreditsDeductedEvent(
                        user_id=caller.user_id,
                        agent_id=agent.id,
                        credits_cost=deduction.credits_cost,
                        new_balance=deduction.new_balance,
                        transaction_id=deduction.transaction_id,
                        idempotency_key=turn.idempotency_key,
                    )
                )

        # ── Starter action buttons ───────────────────────────
        if is_starter_action(agent.id, message):
            log.info("agent_starter_action", action=message)
            return await self._finish(
                turn, TurnOutcome.ANSWERED, starter_response(agent.id, message)
            )

        # ── Invoke ───────────────────────────────────────────
        candidates = self._gateway.fallback_candidates(model or agent.default_model)
        try:
            response = await self._gateway.call_with_fallback(
                candidates,
                chat,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                identity=caller,
            )
        except (AllProvidersExhaustedError, ProviderError) as exc:
            log.error(
                "agent_ai_failed",
                error_code=exc.code,
                candidates=[p for p, _ in candidates],
                credits_cost=turn.credits_cost,
            )
            return await self._finish(
                turn,
                TurnOutcome.FALLBACK,
                fallback_message(message, agent_name=agent.name),
            )

        return await self._finish(turn, TurnOutcome.ANSWERED, response.content, response=response)

    # ── Internals ────────────────────────────────────────────
    def _build_messages(
        self,
        agent: AgentProfile,
        history: Sequence[ConversationMessage],
        text: str,
    ) -> list[ChatMessage]:
        messages = [ChatMessage(role=MessageRole.SYSTEM, content=system_prompt_for(agent))]
        earlier = prepare_history(
            (ChatMessage(role=m.role, content=m.content) for m in history),
            max_chars=self._max_message_chars,
        )
        messages.extend(earlier[-self._history_limit :])
        messages.append(ChatMessage(role=MessageRole.USER, content=text))
        return messages

    async def _finish(
        self,
        turn: _Turn,
        outcome: TurnOutcome,
        content: str,
        *,
        response: AIResponse | None = None,
        new_balance: int | None = None,
    ) -> AgentTurnResult:
        reply = ConversationMessage(
            role=MessageRole.ASSISTANT,
            content=content,
            agent_id=turn.agent.id,
            model=response.model if response else None,
        )
        elapsed = time.monotonic() - turn.started
        AGENT_TURNS.labels(agent_id=turn.agent.id, outcome=outcome.value).inc()
        AGENT_LATENCY.labels(agent_id=turn.agent.id).observe(elapsed)

        await self._event_bus.publish(
            AgentTurnCompletedEvent(
                user_id=turn.caller.user_id,
                agent_id=turn.agent.id,
                outcome=outcome.value,
                provider=response.provider if response else None,
                model=response.model if response else None,
                tokens=response.tokens if response else 0,
                response_time_ms=response.response_time_ms if response else 0.0,
                credits_cost=turn.credits_cost,
                idempotency_key=turn.idempotency_key,
                correlation_id=turn.correlation_id,
            )
        )
        logger.info(
            "agent_turn_completed",
            agent_id=turn.agent.id,
            user_id=turn.caller.user_id,
            correlation_id=turn.correlation_id,
            idempotency_key=turn.idempotency_key,
            outcome=outcome.value,
            provider=response.provider if response else None,
            credits_cost=turn.credits_cost,
            duration_ms=round(elapsed * 1000, 1),
        )
        return AgentTurnResult(
            outcome=outcome,
            message=reply,
            history=turn.history + (reply,),
            correlation_id=turn.correlation_id,
            credits_cost=turn.credits_cost,
            new_balance=turn.new_balance if new_balance is None else new_balance,
            idempotency_key=turn.idempotency_key,
            response=response,
        )


@dataclass
class _Turn:
    agent: AgentProfile
    caller: CallerIdentity
    history: tuple[ConversationMessage, ...]
    correlation_id: str
    started: float
    idempotency_key: str | None = None
    credits_cost: int = 0
    new_balance: int | None = None
