"""JWT-backed session provider for the provider gateway."""

from __future__ import annotations

import structlog

from agenthub.domain.exceptions import AuthenticationError, TokenExpiredError
from agenthub.domain.value_objects import CallerIdentity
from agenthub.ports.outbound import SessionTokenPort
from agenthub.shared.security import create_access_token, decode_token

logger = structlog.get_logger(__name__)


class JwtSessionProvider(SessionTokenPort):
    def __init__(
        self,
        secret_key: str,
        *,
        algorithm: str = "HS256",
        access_expire_minutes: int = 30,
    ) -> None:
        self._secret = secret_key
        self._algorithm = algorithm
        self._access_expire = access_expire_minutes

    async def ensure_valid(self, identity: CallerIdentity) -> CallerIdentity:
        if not identity.access_token:
            raise AuthenticationError("Missing access token")
        try:
            claims = decode_token(
                identity.access_token, self._secret, self._algorithm, expected_type="access"
            )
        except TokenExpiredError:
            return self._refresh(identity)

        if claims.get("sub") != identity.user_id:
            raise AuthenticationError("Token subject does not match caller")
        identity.claims = claims
        return identity

    def _refresh(self, identity: CallerIdentity) -> CallerIdentity:
        """Mint a new access token from the refresh token, once."""
        if not identity.refresh_token:
            raise AuthenticationError("Access token expired and no refresh token supplied")
        try:
            claims = decode_token(
                identity.refresh_token, self._secret, self._algorithm, expected_type="refresh"
            )
        except TokenExpiredError as exc:
            raise AuthenticationError("Session expired, please sign in again") from exc
        if claims.get("sub") != identity.user_id:
            raise AuthenticationError("Refresh token subject does not match caller")

        access_claims = {"sub": claims["sub"], "role": claims.get("role", "user")}
        identity.access_token = create_access_token(
            access_claims, self._secret, self._algorithm, self._access_expire
        )
        identity.claims = access_claims
        logger.info("session_refreshed", user_id=identity.user_id)
        return identity
