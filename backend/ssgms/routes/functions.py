"""Privileged server-side functions.

Called with the member's bearer token; answer ``{actionLink}`` / ``{ok}`` or
``{error}``.  Each call re-reads the caller's profile before acting, so a
role revoked a moment ago is already refused.
"""
from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ssgms.database import get_db
from ssgms.exceptions import GrantsAppError, PermissionDeniedError, ValidationError
from ssgms.middleware.auth import AuthContext, resolve_auth_context
from ssgms.rbac import ADMIN_TIER_ROLES, SUPER_ADMIN
from ssgms.services import team
from ssgms.services.identity_admin import IdentityAdminClient, get_identity_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/functions", tags=["functions"])


class InviteUserBody(BaseModel):
    email: str | None = None
    role: str | None = None
    fullName: str | None = None
    redirectTo: str | None = None


class ResetLinkBody(BaseModel):
    email: str | None = None
    redirectTo: str | None = None


class DeleteUserBody(BaseModel):
    userId: uuid.UUID | None = None


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization") or ""
    if header.lower().startswith("bearer "):
        header = header[7:]
    return header.strip()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _caller(db: AsyncSession, request: Request, allowed_roles) -> AuthContext:
    ctx = await resolve_auth_context(db, _bearer_token(request))
    if ctx.role not in allowed_roles:
        if allowed_roles == {SUPER_ADMIN}:
            raise PermissionDeniedError("Forbidden: super_admin only")
        raise PermissionDeniedError("Forbidden: admin only")
    return ctx


async def _run(action: str, call):
    try:
        return await call()
    except GrantsAppError as exc:
        # Validation failures answer 400 here, everything else keeps its status
        logger.info(f"{action} failed: {exc.message}")
        return _error(exc.status_code if exc.status_code != 422 else 400, exc.message)
    except Exception as exc:
        logger.exception(f"{action} crashed")
        return _error(500, str(exc) or "Unknown error")


@router.post("/admin-invite-user")
async def admin_invite_user(
    body: InviteUserBody,
    request: Request,
    db: AsyncSession = Depends(get_db),
    identity: IdentityAdminClient = Depends(get_identity_admin),
):
    async def call():
        actor = await _caller(db, request, ADMIN_TIER_ROLES)
        if not body.email:
            raise ValidationError("Missing email")
        return await team.invite_member(
            db,
            identity,
            actor,
            email=body.email,
            role=body.role or "user",
            full_name=body.fullName,
            redirect_to=body.redirectTo,
        )

    return await _run("admin-invite-user", call)


@router.post("/admin-generate-reset-link")
async def admin_generate_reset_link(
    body: ResetLinkBody,
    request: Request,
    db: AsyncSession = Depends(get_db),
    identity: IdentityAdminClient = Depends(get_identity_admin),
):
    async def call():
        actor = await _caller(db, request, {SUPER_ADMIN})
        if not body.email:
            raise ValidationError("Missing email")
        return await team.generate_reset_link(
            db, identity, actor, email=body.email, redirect_to=body.redirectTo
        )

    return await _run("admin-generate-reset-link", call)


@router.post("/admin-delete-user")
async def admin_delete_user(
    body: DeleteUserBody,
    request: Request,
    db: AsyncSession = Depends(get_db),
    identity: IdentityAdminClient = Depends(get_identity_admin),
):
    async def call():
        actor = await _caller(db, request, {SUPER_ADMIN})
        if body.userId is None:
            raise ValidationError("Missing userId")
        await team.delete_member(db, identity, actor, body.userId)
        return {"ok": True}

    return await _run("admin-delete-user", call)
