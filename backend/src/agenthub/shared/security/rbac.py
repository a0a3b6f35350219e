"""Role-Based Access Control (RBAC): FastAPI dependency factories."""

from __future__ import annotations

from typing import Any

from fastapi import Depends

from agenthub.dependencies import get_current_user
from agenthub.domain.exceptions import AuthorisationError


def require_role(*allowed_roles: str):  # type: ignore[no-untyped-def]
    """Create a FastAPI dependency that enforces role-based access.

    Usage:
        @router.post("/providers/{p}/reset", dependencies=[Depends(require_role("admin"))])
    """

    async def _check_role(user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
        if user.get("role", "") not in allowed_roles:
            raise AuthorisationError(
                f"Insufficient permissions. Required role: {', '.join(allowed_roles)}"
            )
        return user

    return _check_role
