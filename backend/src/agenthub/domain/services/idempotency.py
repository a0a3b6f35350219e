"""Idempotency keys for side-effecting ledger operations.

Every call site builds keys through :func:`idempotency_key` so that the key
shape cannot drift between callers. A key identifies one *logical* attempt:
callers create a correlation id once per user action and reuse it for every
internal retry of that action, letting the ledger collapse duplicates.
"""

from __future__ import annotations

import hashlib
import secrets
import time

KEY_VERSION = "v1"


def new_correlation_id(scope: str, *, now_ms: int | None = None) -> str:
    """``<scope>:<epoch millis>:<random suffix>``, unique per user action."""
    ts = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{scope}:{ts}:{secrets.token_hex(5)}"


def idempotency_key(operation: str, user_id: str, correlation_id: str) -> str:
    """Deterministic key for ``(operation, user, correlation id)``."""
    if not operation or not user_id or not correlation_id:
        raise ValueError("operation, user_id and correlation_id are all required")
    raw = f"{operation}|{user_id}|{correlation_id}"
    digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]
    return f"{operation}:{KEY_VERSION}:{digest}"
