"""In-process event bus for domain events.

Audit and notification consumers subscribe by ``event_type``; a subscriber
registered under ``"*"`` receives every event. Publishing awaits all
matching handlers concurrently. A failing handler is logged and counted,
and the publisher never sees the error.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Callable, Coroutine

import structlog

from agenthub.domain.events import DomainEvent
from agenthub.ports.outbound import EventBusPort
from agenthub.shared.observability.metrics import EVENT_HANDLER_ERRORS, EVENTS_PUBLISHED

logger = structlog.get_logger(__name__)

EventHandler = Callable[[DomainEvent], Coroutine[Any, Any, None]]

WILDCARD = "*"


def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class InProcessEventBus(EventBusPort):
    """Async in-memory event bus with fan-out to multiple subscribers."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def _handlers_for(self, event_type: str) -> list[EventHandler]:
        return [*self._handlers.get(event_type, []), *self._handlers.get(WILDCARD, [])]

    async def publish(self, event: DomainEvent) -> None:
        EVENTS_PUBLISHED.labels(event_type=event.event_type).inc()
        handlers = self._handlers_for(event.event_type)
        if not handlers:
            logger.debug("event_no_handlers", event_type=event.event_type)
            return

        results = await asyncio.gather(
            *(h(event) for h in handlers),
            return_exceptions=True,
        )
        failures = 0
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                failures += 1
                EVENT_HANDLER_ERRORS.labels(event_type=event.event_type).inc()
                logger.error(
                    "event_handler_error",
                    event_type=event.event_type,
                    handler=_handler_name(handler),
                    error=str(result),
                )

        logger.debug(
            "event_dispatched",
            event_type=event.event_type,
            handlers=len(handlers),
            failures=failures,
        )

    def subscribe(self, event_type: str, handler: Any) -> None:
        registered = self._handlers[event_type]
        if handler in registered:
            return
        registered.append(handler)
        logger.debug(
            "event_handler_registered",
            event_type=event_type,
            handler=_handler_name(handler),
        )

    def unsubscribe(self, event_type: str, handler: Any) -> bool:
        registered = self._handlers.get(event_type, [])
        if handler not in registered:
            return False
        registered.remove(handler)
        return True

    def handler_count(self, event_type: str) -> int:
        return len(self._handlers.get(event_type, []))
