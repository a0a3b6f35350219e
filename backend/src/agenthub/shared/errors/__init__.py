"""Global exception handlers: map domain errors to HTTP responses."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse
import structlog

from agenthub.domain.exceptions import (
    AgentNotFoundError,
    AllProvidersExhaustedError,
    AuthenticationError,
    AuthorisationError,
    DomainError,
    InsufficientBalanceError,
    ProviderError,
    UserAlreadyExistsError,
    ValidationError,
)

logger = structlog.get_logger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all domain→HTTP exception mappings."""

    @app.exception_handler(ValidationError)
    async def handle_validation(request: Request, exc: ValidationError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=422,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(AgentNotFoundError)
    async def handle_not_found(request: Request, exc: AgentNotFoundError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=404,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(InsufficientBalanceError)
    async def handle_balance(request: Request, exc: InsufficientBalanceError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=402,
            content={
                "code": exc.code,
                "message": exc.message,
                "required": exc.required,
                "available": exc.available,
            },
        )

    @app.exception_handler(AuthenticationError)
    async def handle_authn(request: Request, exc: AuthenticationError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=401,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(AuthorisationError)
    async def handle_authz(request: Request, exc: AuthorisationError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=403,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(UserAlreadyExistsError)
    async def handle_conflict(request: Request, exc: UserAlreadyExistsError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=409,
            content={"code": exc.code, "message": exc.message},
        )

    # Upstream detail stays in the logs
    @app.exception_handler(ProviderError)
    async def handle_provider(request: Request, exc: ProviderError) -> ORJSONResponse:
        logger.error(
            "provider_error_http",
            provider=exc.provider,
            kind=exc.kind.value,
            status_code=exc.status_code,
            detail=exc.detail,
        )
        return ORJSONResponse(
            status_code=502,
            content={"code": exc.code, "message": "The AI provider could not complete the request"},
        )

    @app.exception_handler(AllProvidersExhaustedError)
    async def handle_exhausted(
        request: Request, exc: AllProvidersExhaustedError
    ) -> ORJSONResponse:
        logger.error("providers_exhausted_http", errors=exc.errors)
        return ORJSONResponse(
            status_code=502,
            content={"code": exc.code, "message": "No AI provider could complete the request"},
        )

    @app.exception_handler(DomainError)
    async def handle_domain(request: Request, exc: DomainError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=400,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> ORJSONResponse:
        logger.exception("unhandled_exception", error=str(exc))
        return ORJSONResponse(
            status_code=500,
            content={
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            },
        )
