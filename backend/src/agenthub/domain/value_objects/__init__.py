"""Domain value objects: immutable, self-validating types.

Value objects have *no identity*; two instances with equal fields are equal.
They enforce invariants at construction time so the rest of the domain can
trust their contents without re-checking.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from agenthub.domain.enums import MessageRole
from agenthub.domain.exceptions import ValidationError


# ═══════════════════════════════════════════════════════════════
#  Chat message (normalised provider input)
# ═══════════════════════════════════════════════════════════════
@dataclass(frozen=True, slots=True)
class ChatMessage:
    """A ``{role, content}`` pair in the provider-neutral message list."""

    role: MessageRole
    content: str

    def __post_init__(self) -> None:
        if not isinstance(self.role, MessageRole):
            try:
                object.__setattr__(self, "role", MessageRole(self.role))
            except ValueError as exc:
                raise ValidationError(f"Unsupported message role: {self.role!r}") from exc

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


# ═══════════════════════════════════════════════════════════════
#  Credits
# ═══════════════════════════════════════════════════════════════
@dataclass(frozen=True, slots=True)
class AgentEligibility:
    """Point-in-time answer to "may this user run this agent now?"."""

    can_use: bool
    required: int
    available: int
    blockers: tuple[str, ...] = ()
    alternatives: tuple[str, ...] = ()

    @classmethod
    def compute(cls, *, required: int, available: int) -> AgentEligibility:
        if available >= required:
            return cls(can_use=True, required=required, available=available)
        return cls(
            can_use=False,
            required=required,
            available=available,
            blockers=("insufficient_credits",),
            alternatives=("Purchase credits", "Choose a different agent"),
        )


@dataclass(frozen=True, slots=True)
class DeductionResult:
    """Outcome of a single ledger debit attempt (or its replay)."""

    success: bool
    credits_cost: int
    new_balance: int
    transaction_id: str = ""
    error: str | None = None
    is_duplicate: bool = False


# ═══════════════════════════════════════════════════════════════
#  Caller identity
# ═══════════════════════════════════════════════════════════════
@dataclass(slots=True)
class CallerIdentity:
    """The user on whose behalf a provider call is made.

    ``access_token`` is the bearer credential presented with the request;
    ``refresh_token`` (optional) lets the session provider mint a new one
    once when the access token has expired.
    """

    user_id: str
    access_token: str | None = None
    refresh_token: str | None = None
    session_id: str | None = None
    claims: dict[str, object] = field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════
#  Provider transport
# ═══════════════════════════════════════════════════════════════
@dataclass(frozen=True, slots=True)
class ProviderReply:
    """Text and token usage parsed from one successful upstream response."""

    content: str
    tokens: int
