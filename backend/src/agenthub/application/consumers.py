"""Event consumers (handlers) for domain events.

Bridges the internal event bus to the usage audit table and the
notification channel. Failures are logged by the bus and never reach the
publisher.
"""

from __future__ import annotations

import asyncio

import structlog

from agenthub.domain.enums import TransactionType
from agenthub.domain.events import (
    AgentTurnCompletedEvent,
    CreditsAddedEvent,
    PaywallShownEvent,
)
from agenthub.ports.outbound import EventBusPort, NotificationPort, UsageLogRepository

logger = structlog.get_logger(__name__)

# Trial grants happen on every sign-up and are not worth a push message
NOTIFIED_GRANTS = frozenset(
    {
        TransactionType.PURCHASE.value,
        TransactionType.TOPUP.value,
        TransactionType.SUBSCRIPTION.value,
    }
)


class UsageAuditConsumer:
    """Persists every completed agent turn into ``usage_logs``."""

    def __init__(self, usage_logs: UsageLogRepository) -> None:
        self._usage_logs = usage_logs

    async def handle_turn_completed(self, event: AgentTurnCompletedEvent) -> None:
        await self._usage_logs.record_turn(event)
        logger.debug(
            "usage_logged",
            user_id=event.user_id,
            agent_id=event.agent_id,
            outcome=event.outcome,
        )


class NotificationConsumer:
    """Pushes credit purchases and paywall hits to the notification channel.

    Messages are sent from background tasks so a slow channel never holds
    up the publisher. ``drain`` waits for the tasks still in flight and is
    called on shutdown before the notifier is closed.
    """

    def __init__(self, notifier: NotificationPort) -> None:
        self._notifier = notifier
        self._pending: set[asyncio.Task[bool]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def handle_credits_added(self, event: CreditsAddedEvent) -> None:
        if event.transaction_type not in NOTIFIED_GRANTS:
            return
        self._dispatch(
            f"Credits added: {event.amount} ({event.transaction_type}) for user "
            f"{event.user_id}. New balance: {event.new_balance}."
        )

    async def handle_paywall(self, event: PaywallShownEvent) -> None:
        self._dispatch(
            f"Paywall shown: user {event.user_id} on agent {event.agent_id} "
            f"needs {event.required} credits, has {event.available}."
        )

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait up to ``timeout`` seconds for queued sends, then cancel the rest."""
        if not self._pending:
            return
        _, still_pending = await asyncio.wait(set(self._pending), timeout=timeout)
        for task in still_pending:
            task.cancel()
        if still_pending:
            await asyncio.gather(*still_pending, return_exceptions=True)
            logger.warning("notifications_cancelled", count=len(still_pending))

    def _dispatch(self, text: str) -> None:
        task = asyncio.create_task(self._notifier.send(text))
        self._pending.add(task)
        task.add_done_callback(self._on_sent)

    def _on_sent(self, task: asyncio.Task[bool]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("notification_failed", error=str(exc), exc_type=type(exc).__name__)


def register_consumers(
    bus: EventBusPort,
    usage_logs: UsageLogRepository,
    notifications: NotificationConsumer,
) -> None:
    audit = UsageAuditConsumer(usage_logs)
    bus.subscribe("AGENT_TURN_COMPLETED", audit.handle_turn_completed)
    bus.subscribe("CREDITS_ADDED", notifications.handle_credits_added)
    bus.subscribe("PAYWALL_SHOWN", notifications.handle_paywall)
    logger.info("event_consumers_registered")
