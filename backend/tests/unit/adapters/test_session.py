"""Tests for the JWT session provider used by the gateway."""

from __future__ import annotations

import pytest

from agenthub.adapters.outbound.session import JwtSessionProvider
from agenthub.domain.exceptions import AuthenticationError
from agenthub.domain.value_objects import CallerIdentity
from agenthub.shared.security import create_access_token, create_refresh_token, decode_token

SECRET = "session-secret"


@pytest.fixture
def sessions() -> JwtSessionProvider:
    return JwtSessionProvider(SECRET, access_expire_minutes=15)


class TestJwtSessionProvider:
    @pytest.mark.asyncio
    async def test_valid_token_passes_through(self, sessions) -> None:
        token = create_access_token({"sub": "u1", "role": "user"}, SECRET)
        identity = CallerIdentity(user_id="u1", access_token=token)

        result = await sessions.ensure_valid(identity)

        assert result.access_token == token
        assert result.claims["sub"] == "u1"

    @pytest.mark.asyncio
    async def test_missing_token_rejected(self, sessions) -> None:
        with pytest.raises(AuthenticationError):
            await sessions.ensure_valid(CallerIdentity(user_id="u1"))

    @pytest.mark.asyncio
    async def test_subject_mismatch_rejected(self, sessions) -> None:
        token = create_access_token({"sub": "someone-else"}, SECRET)
        with pytest.raises(AuthenticationError, match="subject"):
            await sessions.ensure_valid(CallerIdentity(user_id="u1", access_token=token))

    @pytest.mark.asyncio
    async def test_refresh_token_not_accepted_as_access(self, sessions) -> None:
        token = create_refresh_token({"sub": "u1"}, SECRET)
        with pytest.raises(AuthenticationError):
            await sessions.ensure_valid(CallerIdentity(user_id="u1", access_token=token))

    @pytest.mark.asyncio
    async def test_expired_access_refreshed(self, sessions) -> None:
        identity = CallerIdentity(
            user_id="u1",
            access_token=create_access_token({"sub": "u1"}, SECRET, expires_minutes=-5),
            refresh_token=create_refresh_token({"sub": "u1", "role": "admin"}, SECRET),
        )

        result = await sessions.ensure_valid(identity)

        claims = decode_token(result.access_token, SECRET, expected_type="access")
        assert claims["sub"] == "u1"
        assert claims["role"] == "admin"

    @pytest.mark.asyncio
    async def test_expired_refresh_requires_sign_in(self, sessions) -> None:
        identity = CallerIdentity(
            user_id="u1",
            access_token=create_access_token({"sub": "u1"}, SECRET, expires_minutes=-5),
            refresh_token=create_refresh_token({"sub": "u1"}, SECRET, expires_days=-1),
        )
        with pytest.raises(AuthenticationError, match="sign in again"):
            await sessions.ensure_valid(identity)

    @pytest.mark.asyncio
    async def test_refresh_for_other_subject_rejected(self, sessions) -> None:
        identity = CallerIdentity(
            user_id="u1",
            access_token=create_access_token({"sub": "u1"}, SECRET, expires_minutes=-5),
            refresh_token=create_refresh_token({"sub": "u2"}, SECRET),
        )
        with pytest.raises(AuthenticationError):
            await sessions.ensure_valid(identity)
