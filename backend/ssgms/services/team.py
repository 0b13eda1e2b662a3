"""Team membership: invitations, roles, reset links and removals.

A profile is ``invited`` until its owner signs in for the first time, then
``active`` for good.  Invited placeholders and the registered row may share
an email for a while; listings collapse them (see ``collapse_profiles``).

The pure ``validate_*`` / ``plan_*`` helpers run before any write or
identity-provider call.  The async flows below them are not transactional
across the identity provider and the database: a failure between the two
steps is logged and left for an operator.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ssgms.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ssgms.models import Profile
from ssgms.rbac import INVITABLE_ROLES, USER, VALID_ROLES
from ssgms.services.display_names import updated_by_names

logger = logging.getLogger(__name__)

ACTIVE = "active"
INVITED = "invited"

INVITED_PLACEHOLDER_NAME = "Invited Member"
NEW_MEMBER_NAME = "New Staff"

# plan_profile_deletion() outcomes
DELETE_ROW_ONLY = "row"
DELETE_IDENTITY_ACCOUNT = "identity_account"


def _status_of(profile) -> str:
    return getattr(profile, "status", None) or ACTIVE


# ---------------------------------------------------------------------------
# Read-side reconciliation
# ---------------------------------------------------------------------------


def collapse_profiles(rows: Iterable) -> list:
    """One row per case-insensitive email, ordered by email.

    An ``active`` row wins over ``invited`` ones; otherwise the first row seen
    is kept, so feed rows sorted by email.  Collapsing a collapsed list
    returns it unchanged.
    """
    by_email: dict[str, Any] = {}
    for profile in rows:
        key = profile.email.lower()
        existing = by_email.get(key)
        if existing is None:
            by_email[key] = profile
        elif _status_of(existing) != ACTIVE and _status_of(profile) == ACTIVE:
            by_email[key] = profile
    return sorted(by_email.values(), key=lambda p: p.email.lower())


# ---------------------------------------------------------------------------
# Pre-flight rules
# ---------------------------------------------------------------------------


def validate_role_change(actor, target_id: uuid.UUID, new_role: str) -> str:
    if not actor.can("team.update_role"):
        raise PermissionDeniedError("Only super admins can change roles.")
    if target_id == actor.user_id:
        raise ValidationError("You cannot change your own role.")
    role = (new_role or "").strip().lower()
    if role not in VALID_ROLES:
        raise ValidationError(f"Invalid role '{new_role}'. Valid roles: {', '.join(VALID_ROLES)}")
    return role


def validate_invite(actor, email: str, role: str, existing_emails: Iterable[str] = ()) -> tuple[str, str]:
    """Return the cleaned ``(email, role)`` of an invitation.

    *existing_emails* is a best-effort duplicate check; the identity provider
    has the final word.
    """
    if not actor.can("team.invite"):
        raise PermissionDeniedError("Only admins can invite team members.")
    cleaned = (email or "").strip()
    if not cleaned or "@" not in cleaned:
        raise ValidationError("A valid email address is required")
    role = (role or USER).strip().lower()
    if role not in INVITABLE_ROLES:
        raise ValidationError(
            f"Invited members can only be given one of: {', '.join(INVITABLE_ROLES)}"
        )
    if cleaned.lower() in {e.lower() for e in existing_emails}:
        raise ConflictError(f"A team member with email {cleaned} already exists")
    return cleaned, role


def ensure_reset_link_allowed(actor, target) -> None:
    if not actor.can("team.reset_link"):
        raise PermissionDeniedError("Forbidden: super_admin only")
    if _status_of(target) != ACTIVE:
        raise ValidationError("Reset links can only be generated for active members")


def plan_profile_deletion(actor, target) -> str:
    """Decide how *target* is removed.

    Invited placeholders have no identity-provider account yet, so deleting
    the row is enough.  Active members lose their account too.
    """
    if not actor.can("team.delete"):
        raise PermissionDeniedError("Forbidden: super_admin only")
    if _status_of(target) == INVITED:
        return DELETE_ROW_ONLY
    return DELETE_IDENTITY_ACCOUNT


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def profiles_by_email(db: AsyncSession, email: str) -> list[Profile]:
    result = await db.execute(
        select(Profile)
        .where(func.lower(Profile.email) == email.strip().lower())
        .order_by(Profile.created_at)
    )
    return list(result.scalars().all())


async def list_members(db: AsyncSession) -> list[Profile]:
    result = await db.execute(select(Profile).order_by(Profile.email))
    return collapse_profiles(result.scalars().all())


async def get_member(db: AsyncSession, profile_id: uuid.UUID) -> Profile:
    profile = await db.get(Profile, profile_id)
    if profile is None:
        raise NotFoundError("Team member not found")
    return profile


# ---------------------------------------------------------------------------
# Session start
# ---------------------------------------------------------------------------


async def start_session(db: AsyncSession, user_id: uuid.UUID, email: str) -> Profile:
    """Return the caller's profile, creating or activating it if needed.

    First sign-in of an invited person: the placeholder rows for that email
    hand their role and name over to a new row keyed by the real account id,
    then are removed.  Anyone else without a row starts as an active ``user``.
    """
    profile = await db.get(Profile, user_id)
    if profile is not None:
        if profile.status == INVITED:
            profile.status = ACTIVE
            await db.commit()
            logger.info(f"Activated invited profile {user_id}")
        return profile

    placeholders = []
    if email:
        placeholders = [p for p in await profiles_by_email(db, email) if p.status == INVITED]

    if placeholders:
        invite = placeholders[0]
        role, full_name = invite.role, invite.full_name or NEW_MEMBER_NAME
        await db.execute(delete(Profile).where(Profile.id.in_([p.id for p in placeholders])))
    else:
        role, full_name = USER, None

    profile = Profile(id=user_id, email=email, role=role, full_name=full_name, status=ACTIVE)
    db.add(profile)
    await db.commit()
    logger.info(
        f"Created profile {user_id} ({email}) role={role}"
        + (f", replacing {len(placeholders)} invite placeholder(s)" if placeholders else "")
    )
    return profile


# ---------------------------------------------------------------------------
# Privileged flows
# ---------------------------------------------------------------------------


async def invite_member(
    db: AsyncSession,
    identity,
    actor,
    *,
    email: str,
    role: str,
    full_name: str | None = None,
    redirect_to: str | None = None,
) -> dict[str, Any]:
    """Create the account, record the invited profile and return the action link.

    The link is handed back for manual distribution; nothing here assumes an
    email was delivered.
    """
    existing = await profiles_by_email(db, email or "")
    email, role = validate_invite(actor, email, role, [p.email for p in existing])
    full_name = (full_name or "").strip() or INVITED_PLACEHOLDER_NAME

    link = await identity.generate_link(
        "invite",
        email,
        redirect_to=redirect_to,
        data={"full_name": full_name, "role": role},
    )

    profile = await db.get(Profile, link.user_id)
    if profile is None:
        profile = Profile(id=link.user_id, email=email)
        db.add(profile)
    profile.role = role
    profile.full_name = full_name
    profile.status = INVITED
    await db.commit()

    logger.info(f"{actor.email} invited {email} as {role}")
    return {"actionLink": link.action_link, "userId": str(link.user_id)}


async def generate_reset_link(
    db: AsyncSession,
    identity,
    actor,
    *,
    email: str,
    redirect_to: str | None = None,
) -> dict[str, Any]:
    cleaned = (email or "").strip()
    if not cleaned:
        raise ValidationError("Missing email")
    matches = collapse_profiles(await profiles_by_email(db, cleaned))
    if not matches:
        raise NotFoundError(f"No team member with email {cleaned}")
    ensure_reset_link_allowed(actor, matches[0])

    link = await identity.generate_link("recovery", cleaned, redirect_to=redirect_to)
    logger.info(f"{actor.email} generated a reset link for {cleaned}")
    return {"actionLink": link.action_link}


async def delete_member(db: AsyncSession, identity, actor, profile_id: uuid.UUID) -> str:
    """Remove a member; returns the ``plan_profile_deletion`` outcome.

    For active members the identity-provider account goes first.  If the
    row delete then fails, the account is already gone and the row stays.
    """
    profile = await get_member(db, profile_id)
    plan = plan_profile_deletion(actor, profile)

    if plan == DELETE_IDENTITY_ACCOUNT:
        await identity.delete_user(profile.id)
        try:
            await db.delete(profile)
            await db.commit()
        except Exception:
            logger.warning(
                f"Identity account {profile.id} deleted but its profile row could not be removed",
                exc_info=True,
            )
            raise
    else:
        await db.delete(profile)
        await db.commit()

    updated_by_names.forget(profile.id)
    logger.info(f"{actor.email} deleted team member {profile.email} ({plan})")
    return plan


async def change_role(db: AsyncSession, actor, profile_id: uuid.UUID, new_role: str) -> Profile:
    role = validate_role_change(actor, profile_id, new_role)
    profile = await get_member(db, profile_id)
    old_role = profile.role
    profile.role = role
    await db.commit()
    logger.info(f"{actor.email} changed role of {profile.email}: {old_role} -> {role}")
    return profile
