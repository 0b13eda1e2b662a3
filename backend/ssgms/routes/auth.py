"""Auth routes -- the caller's session context."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ssgms.middleware.auth import AuthContext, get_current_user
from ssgms.rbac import permission_description

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.get("/me")
async def get_me(current_user: AuthContext = Depends(get_current_user)):
    """Who the bearer token belongs to, as of this request.

    Calling this is also how a first sign-in gets its profile: an invited
    placeholder is converted, anyone else starts as ``user``.
    """
    data = current_user.to_dict()
    data["permission_descriptions"] = {
        p: permission_description(p) for p in data["permissions"]
    }
    return data
