"""Health, Auth, Agents, AI, Credits, Billing, Providers: REST routers."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import ORJSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.responses import Response

from agenthub.application.commands import (
    AuthenticateCommand,
    AuthenticateHandler,
    ProcessBillingEventCommand,
    ProcessBillingEventHandler,
    RefreshSessionCommand,
    RefreshSessionHandler,
    RegisterUserCommand,
    RegisterUserHandler,
    TokenPair,
)
from agenthub.application.dtos import (
    AgentResponse,
    AgentTurnRequest,
    AgentTurnResponse,
    AIResponseDTO,
    BalanceResponse,
    BillingEventRequest,
    BillingEventResponse,
    ConversationMessageDTO,
    EligibilityResponse,
    ErrorResponse,
    HealthResponse,
    MultiProviderQueryRequest,
    MultiProviderQueryResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    SourceDTO,
    TokenRequest,
    TokenResponse,
    TransactionResponse,
    UsageResponse,
)
from agenthub.application.queries import (
    CheckEligibilityHandler,
    CheckEligibilityQuery,
    GetBalanceHandler,
    GetBalanceQuery,
    GetUsageHandler,
    GetUsageQuery,
    ListAgentsHandler,
    ListTransactionsHandler,
    ListTransactionsQuery,
    ProviderStatusHandler,
)
from agenthub.application.services import AgentOrchestrator, MultiProviderQueryProcessor
from agenthub.dependencies import (
    get_authenticate_handler,
    get_balance_handler,
    get_billing_handler,
    get_cache,
    get_cached_settings,
    get_caller_identity,
    get_current_user,
    get_eligibility_handler,
    get_gateway,
    get_orchestrator,
    get_provider_status_handler,
    get_query_processor,
    get_refresh_handler,
    get_register_handler,
    get_session_factory,
    get_transactions_handler,
    get_usage_handler,
)
from agenthub.domain.entities import AgentProfile, ConversationMessage
from agenthub.domain.enums import MessageRole, TransactionType
from agenthub.domain.exceptions import AuthenticationError
from agenthub.domain.services.agents import get_agent
from agenthub.domain.value_objects import CallerIdentity
from agenthub.shared.providers.gateway import ProviderGateway
from agenthub.shared.security import validate_api_key
from agenthub.shared.security.rbac import require_role

REFRESHED_TOKEN_HEADER = "X-Access-Token"


def _to_history(items: list[ConversationMessageDTO]) -> list[ConversationMessage]:
    history = []
    for item in items:
        fields: dict[str, Any] = {
            "role": MessageRole(item.role),
            "content": item.content,
            "agent_id": item.agent_id,
            "model": item.model,
        }
        if item.timestamp is not None:
            fields["timestamp"] = item.timestamp
        history.append(ConversationMessage(**fields))
    return history


def _message_dto(message: ConversationMessage) -> ConversationMessageDTO:
    return ConversationMessageDTO(
        role=message.role.value,
        content=message.content,
        agent_id=message.agent_id,
        model=message.model,
        timestamp=message.timestamp,
    )


def _agent_dto(agent: AgentProfile) -> AgentResponse:
    return AgentResponse(
        id=agent.id,
        name=agent.name,
        role=agent.role,
        description=agent.description,
        default_model=agent.default_model.value,
        provider=agent.default_model.provider.value,
        actions=list(agent.actions),
    )


def _token_response(pair: TokenPair) -> TokenResponse:
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
    )


def _expose_refreshed_token(
    response: Response, identity: CallerIdentity, presented: str | None
) -> None:
    if identity.access_token and identity.access_token != presented:
        response.headers[REFRESHED_TOKEN_HEADER] = identity.access_token


# ═══════════════════════════════════════════════════════════════
#  Health
# ═══════════════════════════════════════════════════════════════
health_router = APIRouter(tags=["Health"])


@health_router.get("/health", response_model=HealthResponse)
async def health_check() -> ORJSONResponse:
    settings = get_cached_settings()

    db_status = "connected"
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        db_status = "disconnected"

    redis_status = "connected" if await get_cache().health_check() else "disconnected"

    # Database is critical for 'ok'; Redis only backs the HTTP rate limiter
    overall = "ok" if db_status == "connected" else "degraded"
    body = HealthResponse(
        status=overall,
        environment=settings.app_env.value,
        services={"database": db_status, "redis": redis_status},
    )
    return ORJSONResponse(
        content=body.model_dump(), status_code=200 if overall == "ok" else 503
    )


@health_router.get("/metrics")
async def prometheus_metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# ═══════════════════════════════════════════════════════════════
#  Auth
# ═══════════════════════════════════════════════════════════════
auth_router = APIRouter(prefix="/auth", tags=["Authentication"])


@auth_router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=201,
    responses={409: {"model": ErrorResponse}},
)
async def register_user(
    body: RegisterRequest,
    handler: RegisterUserHandler = Depends(get_register_handler),
) -> RegisterResponse:
    """Open registration. New accounts start with the trial credits."""
    result = await handler.handle(
        RegisterUserCommand(username=body.username, email=body.email, password=body.password)
    )
    return RegisterResponse(
        user_id=result.user.id,
        username=result.user.username,
        credits=result.trial.balance_after,
    )


@auth_router.post("/token", response_model=TokenResponse, responses={401: {"model": ErrorResponse}})
async def create_token(
    body: TokenRequest,
    handler: AuthenticateHandler = Depends(get_authenticate_handler),
) -> TokenResponse:
    pair = await handler.handle(AuthenticateCommand(username=body.username, password=body.password))
    return _token_response(pair)


@auth_router.post("/refresh", response_model=TokenResponse, responses={401: {"model": ErrorResponse}})
async def refresh_token(
    body: RefreshRequest,
    handler: RefreshSessionHandler = Depends(get_refresh_handler),
) -> TokenResponse:
    pair = await handler.handle(RefreshSessionCommand(refresh_token=body.refresh_token))
    return _token_response(pair)


# ═══════════════════════════════════════════════════════════════
#  Agents
# ═══════════════════════════════════════════════════════════════
agents_router = APIRouter(prefix="/agents", tags=["Agents"])


@agents_router.get("", response_model=list[AgentResponse])
async def list_agents() -> list[AgentResponse]:
    return [_agent_dto(agent) for agent in await ListAgentsHandler().handle()]


@agents_router.post(
    "/{agent_id}/respond",
    response_model=AgentTurnResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def agent_respond(
    agent_id: str,
    body: AgentTurnRequest,
    response: Response,
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
    identity: CallerIdentity = Depends(get_caller_identity),
    _user: dict[str, Any] = Depends(get_current_user),
) -> AgentTurnResponse:
    """Run one agent turn.

    Paywall and credit problems are normal outcomes of the turn and come
    back with status 200; inspect ``outcome``.
    """
    agent = get_agent(agent_id)
    presented = identity.access_token
    result = await orchestrator.generate_response(
        body.message,
        agent,
        _to_history(body.history),
        identity,
        model=body.model,
        correlation_id=body.correlation_id,
    )
    _expose_refreshed_token(response, identity, presented)
    return AgentTurnResponse(
        outcome=result.outcome.value,
        message=_message_dto(result.message),
        history=[_message_dto(m) for m in result.history],
        correlation_id=result.correlation_id,
        credits_cost=result.credits_cost,
        new_balance=result.new_balance,
        response=AIResponseDTO.model_validate(result.response) if result.response else None,
    )


# ═══════════════════════════════════════════════════════════════
#  Multi-provider AI query
# ═══════════════════════════════════════════════════════════════
ai_router = APIRouter(prefix="/ai", tags=["AI Query"])


@ai_router.post("/query", response_model=MultiProviderQueryResponse)
async def multi_provider_query(
    body: MultiProviderQueryRequest,
    response: Response,
    processor: MultiProviderQueryProcessor = Depends(get_query_processor),
    identity: CallerIdentity = Depends(get_caller_identity),
    _user: dict[str, Any] = Depends(get_current_user),
) -> MultiProviderQueryResponse:
    presented = identity.access_token
    result = await processor.process(body.query, _to_history(body.history), identity)
    _expose_refreshed_token(response, identity, presented)

    synthesis = result.synthesis
    return MultiProviderQueryResponse(
        query=result.query,
        complexity=result.analysis.complexity.value,
        domains=list(result.analysis.domains),
        best_response=synthesis.best_response,
        confidence=synthesis.confidence,
        consensus=synthesis.consensus,
        themes=synthesis.themes,
        sources=[SourceDTO.model_validate(s) for s in synthesis.sources],
        total_tokens=synthesis.total_tokens,
        providers_used=synthesis.providers_used,
        responses=[AIResponseDTO.model_validate(r) for r in result.responses],
        processing_time_ms=result.processing_time_ms,
    )


# ═══════════════════════════════════════════════════════════════
#  Credits
# ═══════════════════════════════════════════════════════════════
credits_router = APIRouter(prefix="/credits", tags=["Credits"])


@credits_router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    handler: GetBalanceHandler = Depends(get_balance_handler),
    user: dict[str, Any] = Depends(get_current_user),
) -> BalanceResponse:
    balance = await handler.handle(GetBalanceQuery(user_id=user["id"]))
    return BalanceResponse(
        user_id=balance.user_id,
        balance=balance.balance,
        last_updated=balance.last_updated,
    )


@credits_router.get("/transactions", response_model=list[TransactionResponse])
async def list_transactions(
    type: TransactionType | None = None,
    limit: int = Query(50, ge=1, le=500),
    handler: ListTransactionsHandler = Depends(get_transactions_handler),
    user: dict[str, Any] = Depends(get_current_user),
) -> list[TransactionResponse]:
    transactions = await handler.handle(
        ListTransactionsQuery(user_id=user["id"], type=type, limit=limit)
    )
    return [
        TransactionResponse(
            id=t.id,
            amount=t.amount,
            type=t.type.value,
            description=t.description,
            balance_after=t.balance_after,
            agent_id=t.agent_id,
            created_at=t.created_at,
        )
        for t in transactions
    ]


@credits_router.get("/usage", response_model=UsageResponse)
async def get_usage(
    days: int = Query(30, ge=1, le=365),
    handler: GetUsageHandler = Depends(get_usage_handler),
    user: dict[str, Any] = Depends(get_current_user),
) -> UsageResponse:
    report = await handler.handle(GetUsageQuery(user_id=user["id"], days=days))
    return UsageResponse(days=days, recent_turns=report.recent_turns, **report.stats)


@credits_router.get(
    "/eligibility/{agent_id}",
    response_model=EligibilityResponse,
    responses={404: {"model": ErrorResponse}},
)
async def check_eligibility(
    agent_id: str,
    handler: CheckEligibilityHandler = Depends(get_eligibility_handler),
    user: dict[str, Any] = Depends(get_current_user),
) -> EligibilityResponse:
    result = await handler.handle(CheckEligibilityQuery(agent_id=agent_id, user_id=user["id"]))
    return EligibilityResponse(
        agent_id=agent_id,
        can_use=result.can_use,
        required=result.required,
        available=result.available,
        blockers=list(result.blockers),
        alternatives=list(result.alternatives),
    )


# ═══════════════════════════════════════════════════════════════
#  Billing
# ═══════════════════════════════════════════════════════════════
billing_router = APIRouter(prefix="/billing", tags=["Billing"])


@billing_router.post(
    "/events",
    response_model=BillingEventResponse,
    responses={401: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def billing_event(
    body: BillingEventRequest,
    secret: str = Header("", alias="X-Billing-Secret"),
    handler: ProcessBillingEventHandler = Depends(get_billing_handler),
) -> BillingEventResponse:
    """Accepts billing events already verified by the payment edge."""
    expected = get_cached_settings().billing_webhook_secret
    if not expected or not validate_api_key(secret, expected):
        raise AuthenticationError("Invalid billing secret")

    outcome = await handler.handle(
        ProcessBillingEventCommand(event_id=body.id, event_type=body.type, data=body.data)
    )
    return BillingEventResponse(
        event_id=outcome.event_id,
        status=outcome.status,
        transaction_id=outcome.transaction.id if outcome.transaction else None,
        rollover_transaction_id=outcome.rollover.id if outcome.rollover else None,
    )


# ═══════════════════════════════════════════════════════════════
#  Providers
# ═══════════════════════════════════════════════════════════════
providers_router = APIRouter(prefix="/providers", tags=["Providers"])


@providers_router.get("/status")
async def provider_status(
    handler: ProviderStatusHandler = Depends(get_provider_status_handler),
    _user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, dict[str, object]]:
    return await handler.availability()


@providers_router.get("/rate-limits")
async def rate_limit_status(
    handler: ProviderStatusHandler = Depends(get_provider_status_handler),
    _user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, dict[str, object]]:
    return await handler.rate_limits()


@providers_router.post("/{provider_id}/reset")
async def reset_provider(
    provider_id: str,
    gateway: ProviderGateway = Depends(get_gateway),
    _user: dict[str, Any] = Depends(require_role("admin")),
) -> dict[str, str]:
    """Admin: clear the rate window and availability flag for a provider."""
    gateway.reset_provider(provider_id)
    return {"status": "reset", "provider_id": provider_id}
