"""Team routes -- members, invitations, role changes, reset links, removal."""
from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ssgms.database import get_db
from ssgms.middleware.auth import AuthContext, get_current_user, require_permission
from ssgms.schemas import ProfileRow
from ssgms.services import team
from ssgms.services.identity_admin import IdentityAdminClient, get_identity_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/team", tags=["team"])


class InviteRequest(BaseModel):
    email: str
    role: str = "user"
    full_name: str | None = None
    redirect_to: str | None = None


class RoleChange(BaseModel):
    role: str


class ResetLinkRequest(BaseModel):
    redirect_to: str | None = None


def _member_item(profile) -> dict:
    row = ProfileRow.model_validate(profile)
    item = row.model_dump(mode="json")
    item["status"] = row.effective_status
    return item


@router.get("")
async def list_team(
    db: AsyncSession = Depends(get_db),
    _user: AuthContext = Depends(require_permission("team.view")),
):
    """One row per email; an active row hides its invited placeholder."""
    items = [_member_item(p) for p in await team.list_members(db)]
    return {"items": items, "total": len(items)}


@router.post("/invite", status_code=201)
async def invite(
    body: InviteRequest,
    db: AsyncSession = Depends(get_db),
    identity: IdentityAdminClient = Depends(get_identity_admin),
    user: AuthContext = Depends(get_current_user),
):
    result = await team.invite_member(
        db,
        identity,
        user,
        email=body.email,
        role=body.role,
        full_name=body.full_name,
        redirect_to=body.redirect_to,
    )
    return {**result, "message": f"User {body.email.strip()} created successfully"}


@router.patch("/{profile_id}/role")
async def change_role(
    profile_id: uuid.UUID,
    body: RoleChange,
    db: AsyncSession = Depends(get_db),
    user: AuthContext = Depends(get_current_user),
):
    profile = await team.change_role(db, user, profile_id, body.role)
    return _member_item(profile)


@router.post("/{profile_id}/reset-link")
async def reset_link(
    profile_id: uuid.UUID,
    body: ResetLinkRequest | None = None,
    db: AsyncSession = Depends(get_db),
    identity: IdentityAdminClient = Depends(get_identity_admin),
    user: AuthContext = Depends(get_current_user),
):
    profile = await team.get_member(db, profile_id)
    team.ensure_reset_link_allowed(user, profile)
    return await team.generate_reset_link(
        db,
        identity,
        user,
        email=profile.email,
        redirect_to=body.redirect_to if body else None,
    )


@router.delete("/{profile_id}")
async def delete_member(
    profile_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    identity: IdentityAdminClient = Depends(get_identity_admin),
    user: AuthContext = Depends(get_current_user),
):
    plan = await team.delete_member(db, identity, user, profile_id)
    message = "Invitation cancelled" if plan == team.DELETE_ROW_ONLY else "User deleted successfully"
    return {"status": "deleted", "id": str(profile_id), "message": message}
