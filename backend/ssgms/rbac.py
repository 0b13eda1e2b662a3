"""
RBAC Permission Registry for SSGMS

Defines the canonical role-to-permission mapping for the three team roles.
Route dependencies and the business rules in ``ssgms.services`` both ask this
module, so a role's reach is decided in one place.

Permission string format: {resource}.{action}
"""
from __future__ import annotations

# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

USER = "user"
ADMIN = "admin"
SUPER_ADMIN = "super_admin"

# Roles an invitation may hand out; super_admin is only reachable by promotion
INVITABLE_ROLES: tuple[str, ...] = (USER, ADMIN)

ADMIN_TIER_ROLES: frozenset[str] = frozenset({ADMIN, SUPER_ADMIN})

# ---------------------------------------------------------------------------
# All permission strings used across the system
# ---------------------------------------------------------------------------

ALL_PERMISSIONS: list[str] = sorted([
    # Grants
    "grants.view",
    "grants.create",
    "grants.update",
    "grants.advance_status",
    "grants.delete",
    "grants.documents.manage",
    "grants.deletion_logs.view",
    # Disbursements
    "disbursements.view",
    "disbursements.create",
    "disbursements.delete",
    # Reference data
    "fund_sources.view",
    "fund_sources.create",
    "fund_sources.update",
    "grant_years.view",
    "grant_years.create",
    "grant_years.delete",
    # Dashboard
    "dashboard.view",
    # Team
    "team.view",
    "team.invite",
    "team.update_role",
    "team.reset_link",
    "team.delete",
])

_BASE_PERMISSIONS: set[str] = {
    "grants.view",
    "grants.advance_status",
    "disbursements.view",
    "fund_sources.view",
    "grant_years.view",
    "dashboard.view",
    "team.view",
}

# ---------------------------------------------------------------------------
# Role → Permissions mapping (source of truth)
# ---------------------------------------------------------------------------

ROLE_PERMISSIONS: dict[str, set[str]] = {
    # ── Staff ────────────────────────────────────────────────────────────
    # Reads everything, may only move a grant's status.
    USER: set(_BASE_PERMISSIONS),

    # ── Admin ────────────────────────────────────────────────────────────
    # Maintains grants, disbursements and reference data.  Invites staff.
    # Cannot delete grants or disbursements, cannot touch roles.
    ADMIN: _BASE_PERMISSIONS | {
        "grants.create", "grants.update",
        "grants.documents.manage", "grants.deletion_logs.view",
        "disbursements.create",
        "fund_sources.create", "fund_sources.update",
        "grant_years.create", "grant_years.delete",
        "team.invite",
    },

    # ── Super Admin ──────────────────────────────────────────────────────
    # Everything, including deletes and identity-provider admin actions.
    SUPER_ADMIN: set(ALL_PERMISSIONS),
}


# ---------------------------------------------------------------------------
# Valid role names (for validation)
# ---------------------------------------------------------------------------

VALID_ROLES: list[str] = sorted(ROLE_PERMISSIONS.keys())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def get_role_permissions(role: str) -> set[str]:
    """Return the base permission set for a role, or empty set if unknown."""
    return ROLE_PERMISSIONS.get(role, set())


def has_permission(role: str, permission: str) -> bool:
    return permission in get_role_permissions(role)


def permission_description(permission: str) -> str:
    """Return a human-readable description for a permission string."""
    _DESCRIPTIONS: dict[str, str] = {
        "grants.view": "View grants",
        "grants.create": "Create grants",
        "grants.update": "Edit any grant field",
        "grants.advance_status": "Change a grant's status",
        "grants.delete": "Delete grants (reason required)",
        "grants.documents.manage": "Upload or remove grant documents",
        "grants.deletion_logs.view": "View the grant deletion log",
        "disbursements.view": "View disbursements",
        "disbursements.create": "Record disbursements",
        "disbursements.delete": "Delete disbursements",
        "fund_sources.view": "View fund sources",
        "fund_sources.create": "Create fund sources",
        "fund_sources.update": "Rename fund sources",
        "grant_years.view": "View grant years",
        "grant_years.create": "Create grant years",
        "grant_years.delete": "Delete unused grant years",
        "dashboard.view": "View dashboard KPIs",
        "team.view": "View team members",
        "team.invite": "Invite team members",
        "team.update_role": "Change team member roles",
        "team.reset_link": "Generate password reset links",
        "team.delete": "Delete team members",
    }
    return _DESCRIPTIONS.get(permission, permission)
