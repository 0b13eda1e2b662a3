"""Authentication and authorization dependencies for SSGMS.

Provides:
- ``AuthContext``: the acting identity, built once per request at session start
- JWT validation of identity-provider session tokens
- ``resolve_auth_context()`` and the ``get_current_user()`` dependency
- ``require_permission()`` dependency factory
"""
from __future__ import annotations

import dataclasses
import logging
import uuid
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from ssgms.config import settings
from ssgms.database import get_db
from ssgms.exceptions import AuthenticationError
from ssgms.rbac import get_role_permissions
from ssgms.services.team import start_session

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Authentication context
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class AuthContext:
    """Who is acting, and with which role.

    Passed explicitly into every service call that makes a role decision.
    """
    user_id: uuid.UUID
    email: str
    role: str
    full_name: str | None = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or "Unknown"

    @property
    def permissions(self) -> set[str]:
        return get_role_permissions(self.role)

    def can(self, permission: str) -> bool:
        return permission in self.permissions

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": str(self.user_id),
            "email": self.email,
            "role": self.role,
            "full_name": self.full_name,
            "display_name": self.display_name,
            "permissions": sorted(self.permissions),
        }


# ---------------------------------------------------------------------------
# JWT helpers
# ---------------------------------------------------------------------------


def decode_session_token(token: str) -> dict[str, Any]:
    """Verify an identity-provider session token and return its claims."""
    return jwt.decode(
        token,
        settings.JWT_SECRET,
        algorithms=[settings.JWT_ALGORITHM],
        audience=settings.JWT_AUDIENCE,
    )


bearer_scheme = HTTPBearer(auto_error=False)

# ---------------------------------------------------------------------------
# Current-user dependency
# ---------------------------------------------------------------------------


async def resolve_auth_context(db: AsyncSession, token: str | None) -> AuthContext:
    """Verify *token* and build the caller's ``AuthContext``.

    The profile row is always re-read (and reconciled on first sign-in), so a
    role change takes effect on the caller's next request.
    """
    if not token or not token.strip():
        raise AuthenticationError("Missing Authorization bearer token")

    try:
        payload = decode_session_token(token)
        subject: str | None = payload.get("sub")
        if subject is None:
            raise AuthenticationError("Invalid session")
        user_id = uuid.UUID(subject)
    except (JWTError, ValueError) as exc:
        logger.info(f"Rejected session token: {exc}")
        raise AuthenticationError("Invalid session")

    profile = await start_session(db, user_id, payload.get("email") or "")
    return AuthContext(
        user_id=profile.id,
        email=profile.email,
        role=profile.role,
        full_name=profile.full_name,
    )


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> AuthContext:
    """FastAPI dependency around ``resolve_auth_context``.

    Raises ``HTTPException(401)`` when the token is missing or invalid, and
    stores the context on ``request.state.auth`` for logging.
    """
    try:
        ctx = await resolve_auth_context(db, credentials.credentials if credentials else None)
    except AuthenticationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    request.state.auth = ctx
    return ctx


# ---------------------------------------------------------------------------
# Permission-checking dependency factory
# ---------------------------------------------------------------------------


def require_permission(*permissions: str):
    """Return a FastAPI dependency that ensures the authenticated user's role
    grants ALL of the specified permissions.

    Usage::

        @router.post("", status_code=201)
        async def create_grant(
            body: GrantCreate,
            db: AsyncSession = Depends(get_db),
            user: AuthContext = Depends(require_permission("grants.create")),
        ):
            ...
    """
    required = set(permissions)

    async def _check_permission(
        current_user: AuthContext = Depends(get_current_user),
    ) -> AuthContext:
        missing = required - current_user.permissions
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permissions: {', '.join(sorted(missing))}.",
            )
        return current_user

    return _check_permission

