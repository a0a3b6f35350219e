"""FastAPI middleware stack: request ID, logging, metrics, rate limiting."""

from __future__ import annotations

import re
import time
import uuid
from collections.abc import Awaitable, Callable

import structlog
from fastapi.responses import ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from agenthub.ports.outbound import CachePort
from agenthub.shared.observability.metrics import HTTP_REQUEST_DURATION, HTTP_REQUESTS_TOTAL

logger = structlog.get_logger(__name__)

_ID_SEGMENT = re.compile(r"^(\d+|[0-9a-f]{32}|[0-9a-f-]{36})$")

UNMETERED_PATHS = frozenset({"/health", "/metrics", "/api/v1/health", "/api/v1/metrics"})


def normalize_path(path: str) -> str:
    """Collapse id-like segments so metric labels stay low-cardinality."""
    return "/".join("{id}" if _ID_SEGMENT.match(part) else part for part in path.split("/"))


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Injects a unique X-Request-ID header into every request/response."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")
        response.headers["X-Request-ID"] = request_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with method, path, status, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        duration = time.monotonic() - start

        if request.url.path not in UNMETERED_PATHS:
            logger.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round(duration * 1000, 2),
                client=request.client.host if request.client else "unknown",
            )
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Collects Prometheus HTTP metrics."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        duration = time.monotonic() - start

        endpoint = normalize_path(request.url.path)
        HTTP_REQUESTS_TOTAL.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()
        HTTP_REQUEST_DURATION.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed-window per-IP limiter over ``CachePort.increment``.

    Counting is shared across workers when the cache is Redis. A cache
    outage lets requests through.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        cache_factory: Callable[[], CachePort],
        max_requests: int = 100,
        window_seconds: int = 60,
    ) -> None:
        super().__init__(app)
        self._cache_factory = cache_factory
        self._max = max_requests
        self._window = window_seconds

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.url.path in UNMETERED_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        # The Redis adapter reports 0 when the server is unreachable.
        count = await self._cache_factory().increment(
            f"rate_limit:{client_ip}", ttl_seconds=self._window
        )

        if count > self._max:
            logger.warning("http_rate_limited", client_ip=client_ip, count=count)
            return ORJSONResponse(
                status_code=429,
                content={"code": "RATE_LIMITED", "message": "Too many requests"},
                headers={"Retry-After": str(self._window)},
            )
        return await call_next(request)
