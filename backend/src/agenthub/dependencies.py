"""Dependency injection container: wires adapters to ports.

FastAPI's ``Depends()`` system uses these factories to inject the
correct adapter implementations into route handlers. Long-lived objects
(engine, cache, event bus, provider gateway) are process singletons;
``init_dependencies`` rebinds them to a given ``Settings``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Any

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from agenthub.adapters.outbound.cache import RedisCacheAdapter
from agenthub.adapters.outbound.event_bus import InProcessEventBus
from agenthub.adapters.outbound.llm import HttpLLMTransport, build_provider_configs
from agenthub.adapters.outbound.notifications import TelegramNotifier
from agenthub.adapters.outbound.persistence.credit_ledger import SQLAlchemyCreditLedger
from agenthub.adapters.outbound.persistence.database import create_session_factory
from agenthub.adapters.outbound.persistence.repositories import (
    SQLAlchemyUsageLogRepository,
    SQLAlchemyUserRepository,
)
from agenthub.adapters.outbound.session import JwtSessionProvider
from agenthub.application.consumers import NotificationConsumer
from agenthub.application.commands import (
    AuthenticateHandler,
    ProcessBillingEventHandler,
    RefreshSessionHandler,
    RegisterUserHandler,
    TokenIssuer,
)
from agenthub.application.queries import (
    CheckEligibilityHandler,
    GetBalanceHandler,
    GetUsageHandler,
    ListTransactionsHandler,
    ProviderStatusHandler,
)
from agenthub.application.services import AgentOrchestrator, MultiProviderQueryProcessor
from agenthub.config import Settings, get_settings
from agenthub.domain.exceptions import AuthenticationError, TokenExpiredError
from agenthub.domain.value_objects import CallerIdentity
from agenthub.shared.providers import ProviderAvailabilityTracker, RateLimitTracker
from agenthub.shared.providers.gateway import ProviderGateway
from agenthub.shared.security import decode_token


# ── Settings ─────────────────────────────────────────────────
_settings: Settings | None = None


@lru_cache(maxsize=1)
def _env_settings() -> Settings:
    return get_settings()


def get_cached_settings() -> Settings:
    return _settings or _env_settings()


# ── Singletons ───────────────────────────────────────────────
_session_factory: async_sessionmaker[AsyncSession] | None = None
_cache: RedisCacheAdapter | None = None
_event_bus: InProcessEventBus | None = None
_gateway: ProviderGateway | None = None
_notifier: TelegramNotifier | None = None
_notifications: NotificationConsumer | None = None


def init_dependencies(settings: Settings) -> None:
    """Bind the container to ``settings`` and drop previously built singletons."""
    global _settings, _session_factory, _cache, _event_bus, _gateway, _notifier, _notifications
    _settings = settings
    _session_factory = None
    _cache = None
    _event_bus = None
    _gateway = None
    _notifier = None
    _notifications = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory(get_cached_settings())
    return _session_factory


def get_engine() -> AsyncEngine:
    return get_session_factory().kw["bind"]  # type: ignore[no-any-return]


def get_cache() -> RedisCacheAdapter:
    global _cache
    if _cache is None:
        s = get_cached_settings()
        _cache = RedisCacheAdapter(s.redis_url, s.redis_max_connections)
    return _cache


def get_event_bus() -> InProcessEventBus:
    global _event_bus
    if _event_bus is None:
        _event_bus = InProcessEventBus()
    return _event_bus


def get_notifier() -> TelegramNotifier:
    global _notifier
    if _notifier is None:
        s = get_cached_settings()
        _notifier = TelegramNotifier(
            s.telegram_bot_token,
            s.telegram_chat_id,
            api_base=s.telegram_api_base,
        )
    return _notifier


def get_notification_consumer() -> NotificationConsumer:
    global _notifications
    if _notifications is None:
        _notifications = NotificationConsumer(get_notifier())
    return _notifications


def get_gateway() -> ProviderGateway:
    """Create or return the singleton provider gateway.

    Rate windows and availability state live on the gateway, so one
    instance serves the whole process.
    """
    global _gateway
    if _gateway is None:
        s = get_cached_settings()
        configs = build_provider_configs(
            openai_api_key=s.openai_api_key,
            anthropic_api_key=s.anthropic_api_key,
            gemini_api_key=s.gemini_api_key,
            openai_base_url=s.openai_base_url,
            anthropic_base_url=s.anthropic_base_url,
            gemini_base_url=s.gemini_base_url,
            anthropic_api_version=s.anthropic_api_version,
            openai_model=s.openai_model,
            anthropic_model=s.anthropic_model,
            gemini_model=s.gemini_model,
            openai_rpm=s.openai_rpm,
            anthropic_rpm=s.anthropic_rpm,
            gemini_rpm=s.gemini_rpm,
            openai_tpm=s.openai_tpm,
            anthropic_tpm=s.anthropic_tpm,
            gemini_tpm=s.gemini_tpm,
            openai_max_tokens=s.openai_max_tokens,
            anthropic_max_tokens=s.anthropic_max_tokens,
            gemini_max_tokens=s.gemini_max_tokens,
            timeout_s=s.provider_timeout_seconds,
        )
        _gateway = ProviderGateway(
            configs,
            HttpLLMTransport(timeout=s.provider_timeout_seconds),
            JwtSessionProvider(
                s.jwt_secret_key,
                algorithm=s.jwt_algorithm,
                access_expire_minutes=s.jwt_access_token_expire_minutes,
            ),
            rate_limits=RateLimitTracker(configs, window_seconds=s.rate_limit_window_seconds),
            availability=ProviderAvailabilityTracker(
                [c.provider_id for c in configs],
                cooldown_seconds=s.provider_cooldown_seconds,
            ),
            max_attempts=s.provider_max_attempts,
            backoff_base=s.provider_backoff_base,
            backoff_max=s.provider_backoff_max,
            max_message_chars=s.max_message_chars,
        )
    return _gateway


async def close_dependencies() -> None:
    if _gateway is not None:
        await _gateway.close()
    if _notifications is not None:
        await _notifications.drain()
    if _notifier is not None:
        await _notifier.close()
    if _cache is not None:
        await _cache.close()
    if _session_factory is not None:
        await get_engine().dispose()


# ── DB session dependency ────────────────────────────────────
async def get_db_session(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AsyncGenerator[AsyncSession, None]:
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_user_repository(
    session: AsyncSession = Depends(get_db_session),
) -> SQLAlchemyUserRepository:
    return SQLAlchemyUserRepository(session)


def get_ledger(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> SQLAlchemyCreditLedger:
    s = get_cached_settings()
    return SQLAlchemyCreditLedger(
        factory,
        default_credit_weight=s.default_credit_weight,
        trial_credits=s.trial_credits,
        rollover_rate=s.rollover_rate,
        rollover_cap=s.rollover_cap,
    )


def get_usage_log_repository(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> SQLAlchemyUsageLogRepository:
    return SQLAlchemyUsageLogRepository(factory)


# ── Auth dependency ──────────────────────────────────────────
async def get_caller_identity(
    authorization: str | None = Header(None, alias="Authorization"),
    refresh_token: str | None = Header(None, alias="X-Refresh-Token"),
) -> CallerIdentity:
    """Build the caller identity from the bearer token.

    An expired access token is accepted when an ``X-Refresh-Token`` for the
    same subject is supplied; the gateway refreshes it before any provider
    call.
    """
    settings = get_cached_settings()
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Missing or invalid Authorization header")
    token = authorization.split(" ", 1)[1]
    try:
        claims = decode_token(
            token, settings.jwt_secret_key, settings.jwt_algorithm, expected_type="access"
        )
    except TokenExpiredError:
        if not refresh_token:
            raise
        claims = decode_token(
            refresh_token,
            settings.jwt_secret_key,
            settings.jwt_algorithm,
            expected_type="refresh",
        )

    subject = claims.get("sub")
    if not subject:
        raise AuthenticationError("Token has no subject")
    return CallerIdentity(
        user_id=str(subject),
        access_token=token,
        refresh_token=refresh_token,
        claims=claims,
    )


async def get_current_user(
    identity: CallerIdentity = Depends(get_caller_identity),
    user_repo: SQLAlchemyUserRepository = Depends(get_user_repository),
) -> dict[str, Any]:
    """Resolve the caller to an active user; the role comes from the DB."""
    user = await user_repo.get_by_id(identity.user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("User not found or inactive")
    return {
        "id": user.id,
        "username": user.username,
        "role": user.role,
        "email": user.email,
    }


# ── Use-case handler factories ───────────────────────────────
def get_token_issuer() -> TokenIssuer:
    s = get_cached_settings()
    return TokenIssuer(
        secret_key=s.jwt_secret_key,
        algorithm=s.jwt_algorithm,
        access_expire_minutes=s.jwt_access_token_expire_minutes,
        refresh_expire_days=s.jwt_refresh_token_expire_days,
    )


def get_register_handler(
    user_repo: SQLAlchemyUserRepository = Depends(get_user_repository),
    ledger: SQLAlchemyCreditLedger = Depends(get_ledger),
    bus: InProcessEventBus = Depends(get_event_bus),
) -> RegisterUserHandler:
    return RegisterUserHandler(user_repo, ledger, bus)


def get_authenticate_handler(
    user_repo: SQLAlchemyUserRepository = Depends(get_user_repository),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> AuthenticateHandler:
    return AuthenticateHandler(user_repo, issuer)


def get_refresh_handler(
    user_repo: SQLAlchemyUserRepository = Depends(get_user_repository),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> RefreshSessionHandler:
    return RefreshSessionHandler(user_repo, issuer)


def get_billing_handler(
    ledger: SQLAlchemyCreditLedger = Depends(get_ledger),
    bus: InProcessEventBus = Depends(get_event_bus),
) -> ProcessBillingEventHandler:
    return ProcessBillingEventHandler(
        ledger, bus, subscription_credits=get_cached_settings().subscription_credits
    )


def get_orchestrator(
    gateway: ProviderGateway = Depends(get_gateway),
    ledger: SQLAlchemyCreditLedger = Depends(get_ledger),
    bus: InProcessEventBus = Depends(get_event_bus),
) -> AgentOrchestrator:
    s = get_cached_settings()
    return AgentOrchestrator(
        gateway,
        ledger,
        bus,
        temperature=s.default_temperature,
        max_tokens=s.default_max_tokens,
        max_message_chars=s.max_message_chars,
    )


def get_query_processor(
    gateway: ProviderGateway = Depends(get_gateway),
) -> MultiProviderQueryProcessor:
    s = get_cached_settings()
    return MultiProviderQueryProcessor(
        gateway,
        temperature=s.default_temperature,
        max_tokens=s.default_max_tokens,
        max_message_chars=s.max_message_chars,
    )


def get_balance_handler(
    ledger: SQLAlchemyCreditLedger = Depends(get_ledger),
) -> GetBalanceHandler:
    return GetBalanceHandler(ledger)


def get_transactions_handler(
    ledger: SQLAlchemyCreditLedger = Depends(get_ledger),
) -> ListTransactionsHandler:
    return ListTransactionsHandler(ledger)


def get_usage_handler(
    ledger: SQLAlchemyCreditLedger = Depends(get_ledger),
    usage_logs: SQLAlchemyUsageLogRepository = Depends(get_usage_log_repository),
) -> GetUsageHandler:
    return GetUsageHandler(ledger, usage_logs)


def get_eligibility_handler(
    ledger: SQLAlchemyCreditLedger = Depends(get_ledger),
) -> CheckEligibilityHandler:
    return CheckEligibilityHandler(ledger)


def get_provider_status_handler(
    gateway: ProviderGateway = Depends(get_gateway),
) -> ProviderStatusHandler:
    return ProviderStatusHandler(gateway)
