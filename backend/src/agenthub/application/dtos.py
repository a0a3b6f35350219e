"""Data Transfer Objects: Pydantic models for API boundaries.

DTOs handle serialisation, validation, and documentation.  They live in the
application layer because they are *not* domain objects: they adapt between
the external world and the domain.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ═══════════════════════════════════════════════════════════════
#  Common
# ═══════════════════════════════════════════════════════════════
class ErrorResponse(BaseModel):
    code: str
    message: str


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    environment: str = "development"
    services: dict[str, str] = Field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════
#  Auth
# ═══════════════════════════════════════════════════════════════
class RegisterRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(..., min_length=3, max_length=100)
    email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=8, max_length=128)


class RegisterResponse(BaseModel):
    user_id: str
    username: str
    credits: int


class TokenRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=8, max_length=128)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


# ═══════════════════════════════════════════════════════════════
#  Conversation
# ═══════════════════════════════════════════════════════════════
class ConversationMessageDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    role: str = Field(..., pattern="^(user|assistant|system)$")
    content: str = Field(..., max_length=20_000)
    agent_id: str | None = None
    model: str | None = None
    timestamp: datetime | None = None


class AIResponseDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    provider: str
    model: str
    content: str
    confidence: float = Field(ge=0.0, le=1.0)
    tokens: int
    response_time_ms: float
    error: str | None = None


# ═══════════════════════════════════════════════════════════════
#  Agents
# ═══════════════════════════════════════════════════════════════
class AgentResponse(BaseModel):
    id: str
    name: str
    role: str
    description: str
    default_model: str
    provider: str
    actions: list[str]


class AgentTurnRequest(BaseModel):
    message: str = Field(..., min_length=1)
    history: list[ConversationMessageDTO] = Field(default_factory=list, max_length=200)
    model: str | None = None
    correlation_id: str | None = Field(None, max_length=128)


class AgentTurnResponse(BaseModel):
    outcome: str
    message: ConversationMessageDTO
    history: list[ConversationMessageDTO]
    correlation_id: str
    credits_cost: int
    new_balance: int | None = None
    response: AIResponseDTO | None = None


# ═══════════════════════════════════════════════════════════════
#  Multi-provider query
# ═══════════════════════════════════════════════════════════════
class MultiProviderQueryRequest(BaseModel):
    query: str = Field(..., min_length=1)
    history: list[ConversationMessageDTO] = Field(default_factory=list, max_length=200)


class SourceDTO(BaseModel):
    provider: str
    model: str
    content: str
    confidence: float
    tokens: int


class MultiProviderQueryResponse(BaseModel):
    query: str
    complexity: str
    domains: list[str]
    best_response: str
    confidence: float
    consensus: bool
    themes: list[str]
    sources: list[SourceDTO]
    total_tokens: int
    providers_used: str
    responses: list[AIResponseDTO]
    processing_time_ms: float


# ═══════════════════════════════════════════════════════════════
#  Credits
# ═══════════════════════════════════════════════════════════════
class BalanceResponse(BaseModel):
    user_id: str
    balance: int
    last_updated: datetime


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    amount: int
    type: str
    description: str
    balance_after: int
    agent_id: str | None = None
    created_at: datetime


class UsageResponse(BaseModel):
    days: int
    total_used: int
    total_added: int
    net_change: int
    transaction_count: int
    recent_turns: list[dict[str, Any]]


class EligibilityResponse(BaseModel):
    agent_id: str
    can_use: bool
    required: int
    available: int
    blockers: list[str]
    alternatives: list[str]


# ═══════════════════════════════════════════════════════════════
#  Billing
# ═══════════════════════════════════════════════════════════════
class BillingEventRequest(BaseModel):
    id: str = Field(..., min_length=1, max_length=255)
    type: str = Field(..., min_length=1, max_length=100)
    data: dict[str, Any] = Field(default_factory=dict)


class BillingEventResponse(BaseModel):
    received: bool = True
    event_id: str
    status: str
    transaction_id: str | None = None
    rollover_transaction_id: str | None = None
