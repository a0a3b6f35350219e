"""Tests for password hashing, JWT helpers and the HTTP middleware stack."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from agenthub.adapters.outbound.cache import MemoryCacheAdapter
from agenthub.domain.exceptions import AuthenticationError, TokenExpiredError
from agenthub.shared.middleware import RateLimitMiddleware, RequestIdMiddleware, normalize_path
from agenthub.shared.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    validate_api_key,
    verify_password,
)


# ═══════════════════════════════════════════════════════════════
#  Security helpers
# ═══════════════════════════════════════════════════════════════
class TestPasswords:
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("correct horse")
        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed) is True
        assert verify_password("wrong horse", hashed) is False

    def test_malformed_hash_is_a_mismatch(self) -> None:
        assert verify_password("anything", "not-a-bcrypt-hash") is False


class TestTokens:
    def test_round_trip_sets_type(self) -> None:
        token = create_access_token({"sub": "u1"}, "s")
        claims = decode_token(token, "s", expected_type="access")
        assert claims["sub"] == "u1"
        assert claims["type"] == "access"

    def test_expired_token(self) -> None:
        token = create_access_token({"sub": "u1"}, "s", expires_minutes=-1)
        with pytest.raises(TokenExpiredError):
            decode_token(token, "s")

    def test_wrong_secret(self) -> None:
        token = create_access_token({"sub": "u1"}, "s")
        with pytest.raises(AuthenticationError):
            decode_token(token, "other")

    def test_wrong_type(self) -> None:
        token = create_refresh_token({"sub": "u1"}, "s")
        with pytest.raises(AuthenticationError, match="access"):
            decode_token(token, "s", expected_type="access")

    def test_api_key_comparison(self) -> None:
        assert validate_api_key("whsec_1", "whsec_1") is True
        assert validate_api_key("whsec_2", "whsec_1") is False


# ═══════════════════════════════════════════════════════════════
#  Middleware
# ═══════════════════════════════════════════════════════════════
@pytest.fixture
def limited_client() -> TestClient:
    cache = MemoryCacheAdapter()
    app = FastAPI()

    @app.get("/ping")
    async def ping() -> dict[str, str]:
        return {"pong": "ok"}

    @app.get("/api/v1/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.add_middleware(
        RateLimitMiddleware, cache_factory=lambda: cache, max_requests=2, window_seconds=60
    )
    app.add_middleware(RequestIdMiddleware)
    return TestClient(app)


class TestMiddleware:
    def test_rate_limit_rejects_after_budget(self, limited_client: TestClient) -> None:
        assert limited_client.get("/ping").status_code == 200
        assert limited_client.get("/ping").status_code == 200

        resp = limited_client.get("/ping")
        assert resp.status_code == 429
        assert resp.json()["code"] == "RATE_LIMITED"
        assert resp.headers["Retry-After"] == "60"

    def test_health_is_never_limited(self, limited_client: TestClient) -> None:
        for _ in range(5):
            assert limited_client.get("/api/v1/health").status_code == 200

    def test_request_id_echoed(self, limited_client: TestClient) -> None:
        resp = limited_client.get("/ping", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"

    def test_request_id_generated(self, limited_client: TestClient) -> None:
        resp = limited_client.get("/ping")
        assert len(resp.headers["X-Request-ID"]) == 32

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("/api/v1/agents/3/respond", "/api/v1/agents/{id}/respond"),
            ("/api/v1/credits/balance", "/api/v1/credits/balance"),
            (
                "/api/v1/users/0b7c4d1e-9a55-4c1f-8e0e-3d5f6a7b8c9d",
                "/api/v1/users/{id}",
            ),
            ("/api/v1/providers/openai/reset", "/api/v1/providers/openai/reset"),
        ],
    )
    def test_normalize_path(self, path: str, expected: str) -> None:
        assert normalize_path(path) == expected
