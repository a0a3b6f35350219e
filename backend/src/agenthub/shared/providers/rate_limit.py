"""Rate limit tracker: per-provider RPM and TPM sliding windows.

Requests older than the window are evicted on every check, so the budget
self-replenishes over time. State is process-local: several server
instances each keep an independent window.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass

import structlog

from agenthub.shared.providers.types import ProviderConfig, RateWindowSnapshot

logger = structlog.get_logger(__name__)


@dataclass
class _UsageRecord:
    timestamp: float
    tokens: int


@dataclass
class _Limits:
    rpm: int
    tpm: int


class RateLimitTracker:
    """Sliding-window request and token counters for every provider.

    Usage records are stored as ``(timestamp, tokens)`` pairs; only the
    aggregate counts inside the window are observable.
    """

    def __init__(
        self,
        configs: Iterable[ProviderConfig] = (),
        *,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        warning_threshold: float = 0.90,
    ) -> None:
        self._window = window_seconds
        self._clock = clock
        self._warning_thr = warning_threshold
        self._limits: dict[str, _Limits] = {}
        self._records: dict[str, deque[_UsageRecord]] = {}
        self._warned: set[str] = set()
        self._lock = threading.Lock()
        for cfg in configs:
            self.configure(cfg.provider_id, rpm_limit=cfg.rpm_limit, tpm_limit=cfg.tpm_limit)

    def configure(self, provider: str, *, rpm_limit: int, tpm_limit: int = 0) -> None:
        with self._lock:
            self._limits[provider] = _Limits(rpm=rpm_limit, tpm=tpm_limit)
            self._records.setdefault(provider, deque())

    @property
    def providers(self) -> list[str]:
        return list(self._limits)

    def check_limit(self, provider: str, estimated_tokens: int = 0) -> bool:
        """True when one more request fits inside both budgets."""
        with self._lock:
            records = self._evict(provider)
            limits = self._limits.get(provider)
            if limits is None:
                return True

            if limits.rpm > 0 and len(records) >= limits.rpm:
                logger.debug(
                    "rate_limit_rpm_exhausted",
                    provider=provider,
                    current=len(records),
                    limit=limits.rpm,
                )
                return False

            if limits.tpm > 0:
                used = sum(r.tokens for r in records)
                if used >= limits.tpm or used + estimated_tokens > limits.tpm:
                    logger.debug(
                        "rate_limit_tpm_exhausted",
                        provider=provider,
                        used=used,
                        estimated=estimated_tokens,
                        limit=limits.tpm,
                    )
                    return False
            return True

    def record(self, provider: str, tokens: int = 0) -> None:
        """Record one request and its token usage."""
        with self._lock:
            records = self._records.setdefault(provider, deque())
            records.append(_UsageRecord(self._clock(), max(0, tokens)))
            self._evict(provider)
            self._check_warning(provider)

    def snapshot(self, provider: str) -> RateWindowSnapshot:
        with self._lock:
            records = self._evict(provider)
            limits = self._limits.get(provider, _Limits(rpm=0, tpm=0))
            requests = len(records)
            tokens = sum(r.tokens for r in records)
        return RateWindowSnapshot(
            provider_id=provider,
            requests=requests,
            tokens=tokens,
            rpm_limit=limits.rpm,
            tpm_limit=limits.tpm,
            can_make_request=self.check_limit(provider),
        )

    def status(self) -> dict[str, RateWindowSnapshot]:
        return {provider: self.snapshot(provider) for provider in self.providers}

    def reset(self, provider: str | None = None) -> None:
        """Clear one provider's window, or every window (admin override)."""
        with self._lock:
            targets = [provider] if provider else list(self._records)
            for name in targets:
                self._records[name] = deque()
                self._warned.discard(name)
        logger.info("rate_limit_reset", provider=provider or "all")

    # ── Internals ────────────────────────────────────────────
    def _evict(self, provider: str) -> deque[_UsageRecord]:
        """Drop records outside the window. Caller holds lock."""
        records = self._records.setdefault(provider, deque())
        cutoff = self._clock() - self._window
        while records and records[0].timestamp <= cutoff:
            records.popleft()
        limits = self._limits.get(provider)
        if limits and limits.rpm > 0 and len(records) / limits.rpm < self._warning_thr:
            self._warned.discard(provider)
        return records

    def _check_warning(self, provider: str) -> None:
        """Caller holds lock."""
        limits = self._limits.get(provider)
        if limits is None or limits.rpm <= 0 or provider in self._warned:
            return
        used = len(self._records[provider])
        usage_pct = used / limits.rpm
        if usage_pct >= self._warning_thr:
            self._warned.add(provider)
            logger.warning(
                "rate_limit_warning",
                provider=provider,
                usage_pct=round(usage_pct * 100, 1),
                requests_used=used,
                rpm_limit=limits.rpm,
            )
