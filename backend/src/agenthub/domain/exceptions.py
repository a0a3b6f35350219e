"""Domain-specific exception hierarchy.

All exceptions inherit from ``DomainError`` so callers can catch the entire
family in one clause while still discriminating on subclass.
"""

from __future__ import annotations

from agenthub.domain.enums import ProviderErrorKind


class DomainError(Exception):
    """Base class for all domain-layer errors."""

    def __init__(self, message: str, *, code: str = "DOMAIN_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


# ── Validation ───────────────────────────────────────────────
class ValidationError(DomainError):
    """Input failed domain validation rules."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="VALIDATION_ERROR")


class AgentNotFoundError(DomainError):
    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Agent {agent_id!r} not found", code="AGENT_NOT_FOUND")


# ── Credits ──────────────────────────────────────────────────
class InsufficientBalanceError(DomainError):
    """User-facing paywall condition, not a system failure."""

    def __init__(self, required: int, available: int) -> None:
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient credits: {required} required, {available} available",
            code="INSUFFICIENT_BALANCE",
        )


class CreditProcessingError(DomainError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="CREDIT_PROCESSING_ERROR")


# ── LLM providers ────────────────────────────────────────────
class ProviderError(DomainError):
    """A classified failure from one upstream provider call."""

    kind: ProviderErrorKind = ProviderErrorKind.UPSTREAM
    default_retryable: bool = False

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool | None = None,
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        self.retryable = self.default_retryable if retryable is None else retryable
        self.detail = message
        super().__init__(f"[{provider}] {message}", code=f"PROVIDER_{self.kind.name}")


class ProviderAuthError(ProviderError):
    kind = ProviderErrorKind.AUTH


class RateLimitError(ProviderError):
    kind = ProviderErrorKind.RATE_LIMIT
    default_retryable = True


class UpstreamError(ProviderError):
    kind = ProviderErrorKind.UPSTREAM
    default_retryable = True


class ProviderValidationError(ProviderError):
    kind = ProviderErrorKind.VALIDATION


class ParseError(ProviderError):
    kind = ProviderErrorKind.PARSE
    default_retryable = True


class ProviderUnavailableError(ProviderError):
    kind = ProviderErrorKind.UNAVAILABLE


class AllProvidersExhaustedError(DomainError):
    """Raised when every candidate provider failed."""

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = errors
        providers = ", ".join(errors.keys()) or "none"
        super().__init__(f"All providers exhausted: {providers}", code="ALL_PROVIDERS_EXHAUSTED")


# ── Auth ─────────────────────────────────────────────────────
class AuthenticationError(DomainError):
    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message, code="AUTHENTICATION_ERROR")


class TokenExpiredError(AuthenticationError):
    def __init__(self, message: str = "Token expired") -> None:
        super().__init__(message)
        self.code = "TOKEN_EXPIRED"


class AuthorisationError(DomainError):
    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message, code="AUTHORISATION_ERROR")


class UserAlreadyExistsError(DomainError):
    def __init__(self, username: str) -> None:
        super().__init__(f"Username {username!r} is already taken", code="USER_EXISTS")
