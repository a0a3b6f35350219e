"""Provider availability tracker: a time-based circuit breaker.

State machine per provider:
    AVAILABLE   → (fatal error: auth, quota) → UNAVAILABLE
    UNAVAILABLE → (cooldown expires)         → AVAILABLE
    UNAVAILABLE → (explicit success/reset)   → AVAILABLE

Recovery is not confirmed by a test call; callers must tolerate a failure after
the cooldown and mark the provider unavailable again.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable

import structlog

from agenthub.shared.providers.types import ProviderState

logger = structlog.get_logger(__name__)


class ProviderAvailabilityTracker:
    def __init__(
        self,
        providers: Iterable[str] = (),
        *,
        cooldown_seconds: float = 300.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cooldown = cooldown_seconds
        self._clock = clock
        self._states: dict[str, ProviderState] = {}
        self._lock = threading.Lock()
        now = clock()
        for provider in providers:
            self._states[provider] = ProviderState(provider_id=provider, last_checked_at=now)

    def is_available(self, provider: str) -> bool:
        with self._lock:
            state = self._state(provider)
            self._maybe_recover(state)
            return state.available

    def mark_unavailable(self, provider: str, reason: str) -> None:
        with self._lock:
            state = self._state(provider)
            now = self._clock()
            was_available = state.available
            state.available = False
            state.last_error = reason
            state.last_checked_at = now
            state.unavailable_since = now
        if was_available:
            logger.warning(
                "provider_marked_unavailable",
                provider=provider,
                reason=reason,
                cooldown_s=self._cooldown,
            )

    def mark_available(self, provider: str) -> None:
        with self._lock:
            state = self._state(provider)
            previously = state.available
            state.available = True
            state.unavailable_since = None
            state.last_checked_at = self._clock()
        if not previously:
            logger.info("provider_marked_available", provider=provider)

    def available_providers(self, candidates: Iterable[str]) -> list[str]:
        return [p for p in candidates if self.is_available(p)]

    def snapshot(self, provider: str) -> ProviderState:
        with self._lock:
            state = self._state(provider)
            self._maybe_recover(state)
            return ProviderState(
                provider_id=state.provider_id,
                available=state.available,
                last_error=state.last_error,
                last_checked_at=state.last_checked_at,
                unavailable_since=state.unavailable_since,
            )

    def status(self) -> dict[str, ProviderState]:
        return {provider: self.snapshot(provider) for provider in list(self._states)}

    # ── Internals ────────────────────────────────────────────
    def _state(self, provider: str) -> ProviderState:
        """Caller holds lock."""
        state = self._states.get(provider)
        if state is None:
            state = ProviderState(provider_id=provider, last_checked_at=self._clock())
            self._states[provider] = state
        return state

    def _maybe_recover(self, state: ProviderState) -> None:
        """Caller holds lock."""
        if state.available or state.unavailable_since is None:
            return
        elapsed = self._clock() - state.unavailable_since
        if elapsed >= self._cooldown:
            state.available = True
            state.unavailable_since = None
            state.last_checked_at = self._clock()
            logger.info(
                "provider_cooldown_expired",
                provider=state.provider_id,
                elapsed_s=round(elapsed, 1),
            )
