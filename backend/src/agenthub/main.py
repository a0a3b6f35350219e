"""FastAPI application entry-point.

Assembles routers, middleware, exception handlers, and lifecycle hooks.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from agenthub.adapters.inbound.rest.routers import (
    agents_router,
    ai_router,
    auth_router,
    billing_router,
    credits_router,
    health_router,
    providers_router,
)
from agenthub.adapters.outbound.persistence.repositories import SQLAlchemyUsageLogRepository
from agenthub.application.consumers import register_consumers
from agenthub.config import Settings, get_settings
from agenthub.dependencies import (
    close_dependencies,
    get_cache,
    get_event_bus,
    get_notification_consumer,
    get_session_factory,
    init_dependencies,
)
from agenthub.shared.errors import register_exception_handlers
from agenthub.shared.middleware import (
    LoggingMiddleware,
    MetricsMiddleware,
    RateLimitMiddleware,
    RequestIdMiddleware,
)
from agenthub.shared.observability import configure_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifecycle: startup & shutdown hooks."""
    settings: Settings = app.state.settings
    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.json_logs or settings.is_production,
    )
    logger.info(
        "application_starting",
        env=settings.app_env.value,
        notifications=settings.notifications_enabled,
    )

    # ── Wire event consumers ─────────────────────────────────
    register_consumers(
        get_event_bus(),
        SQLAlchemyUsageLogRepository(get_session_factory()),
        get_notification_consumer(),
    )

    yield

    await close_dependencies()
    logger.info("application_shutdown")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Application factory: creates a fully configured FastAPI instance."""
    settings = settings or get_settings()
    init_dependencies(settings)

    app = FastAPI(
        title="AgentHub",
        description=(
            "Credit-metered AI agents. Routes each agent turn through a "
            "multi-provider gateway (OpenAI, Anthropic, Gemini) with rate "
            "limiting, failover, and an idempotent credit ledger."
        ),
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    app.state.settings = settings

    # ── Middleware (order matters: last added = outermost) ───
    cors_origins = settings.cors_origins
    # CORSMiddleware rejects ["*"] together with allow_credentials
    allow_all_origins = "*" in cors_origins

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[] if allow_all_origins else cors_origins,
        allow_origin_regex=".*" if allow_all_origins else None,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Access-Token"],
    )
    app.add_middleware(
        RateLimitMiddleware,
        cache_factory=get_cache,
        max_requests=settings.http_rate_limit_per_minute,
        window_seconds=60,
    )
    if settings.prometheus_enabled:
        app.add_middleware(MetricsMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # ── Exception handlers ───────────────────────────────────
    register_exception_handlers(app)

    # ── REST routers (versioned) ─────────────────────────────
    api_v1 = "/api/v1"
    app.include_router(health_router, prefix=api_v1)
    app.include_router(auth_router, prefix=api_v1)
    app.include_router(agents_router, prefix=api_v1)
    app.include_router(ai_router, prefix=api_v1)
    app.include_router(credits_router, prefix=api_v1)
    app.include_router(billing_router, prefix=api_v1)
    app.include_router(providers_router, prefix=api_v1)

    return app


# Uvicorn entry-point
app = create_app()
