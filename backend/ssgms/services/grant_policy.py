"""Grant lifecycle and access rules.

Two authorities can change a grant's status:

* a privileged edit (admin, super_admin) may rewrite any field, status
  included, to any value;
* the self-service control (any role holding ``grants.advance_status``)
  may only change the status.  It enforces no forward-only ordering, just
  "must differ from the current value", and stamps the actor on
  ``user_id``.

Deleting a grant is reserved to super_admin and needs a non-empty reason,
which is recorded together with a snapshot of the row.
"""
from __future__ import annotations

import dataclasses
import enum
from collections.abc import Iterable
from decimal import Decimal, InvalidOperation
from typing import Any

from ssgms.exceptions import PermissionDeniedError, ValidationError


class GrantStatus(str, enum.Enum):
    APPROVED = "approved"
    ONGOING = "ongoing"
    COMPLETED = "completed"


STATUS_ORDER: tuple[str, ...] = tuple(s.value for s in GrantStatus)
ACTIVE_STATUSES: frozenset[str] = frozenset({GrantStatus.APPROVED.value, GrantStatus.ONGOING.value})


def normalize_status(value: str) -> str:
    status = (value or "").strip().lower()
    if status not in STATUS_ORDER:
        raise ValidationError(
            f"Invalid status '{value}'. Valid statuses: {', '.join(STATUS_ORDER)}"
        )
    return status


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


def _require(actor, permission: str, action: str) -> None:
    if not actor.can(permission):
        raise PermissionDeniedError(f"Role '{actor.role}' may not {action}.")


def ensure_can_create(actor) -> None:
    _require(actor, "grants.create", "create grants")


def ensure_can_edit(actor) -> None:
    _require(actor, "grants.update", "edit grants")


def ensure_can_advance_status(actor) -> None:
    _require(actor, "grants.advance_status", "change grant status")


def ensure_can_delete(actor) -> None:
    _require(actor, "grants.delete", "delete grants")


# ---------------------------------------------------------------------------
# Field validation
# ---------------------------------------------------------------------------


def validate_grant_fields(
    *,
    project_name: str | None = None,
    amount_approved: Any = None,
    status: str | None = None,
) -> dict[str, Any]:
    """Validate the editable fields that were supplied and return them cleaned."""
    cleaned: dict[str, Any] = {}

    if project_name is not None:
        name = project_name.strip()
        if not name:
            raise ValidationError("Project name is required")
        cleaned["project_name"] = name

    if amount_approved is not None:
        try:
            amount = Decimal(str(amount_approved))
        except InvalidOperation:
            raise ValidationError(f"Invalid amount '{amount_approved}'")
        if not amount.is_finite() or amount < 0:
            raise ValidationError("Approved amount must be zero or greater")
        cleaned["amount_approved"] = amount

    if status is not None:
        cleaned["status"] = normalize_status(status)

    return cleaned


# ---------------------------------------------------------------------------
# Self-service status change
# ---------------------------------------------------------------------------


def plan_status_advance(current_status: str, next_status: str, actor) -> dict[str, Any] | None:
    """Return the update patch for a status change, or ``None`` if nothing changes.

    Any of the three statuses may follow any other.
    """
    ensure_can_advance_status(actor)
    target = normalize_status(next_status)
    if (current_status or "").strip().lower() == target:
        return None
    return {"status": target, "user_id": actor.user_id}


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------


def require_deletion_reason(reason: str | None) -> str:
    trimmed = (reason or "").strip()
    if not trimmed:
        raise ValidationError("A reason is required to delete this grant")
    return trimmed


def deletion_snapshot(grant) -> dict[str, Any]:
    """Freeze what the grant looked like, for the audit trail."""
    return {
        "projectName": grant.project_name,
        "amountApproved": float(grant.amount_approved),
        "fundSource": grant.fund_source_name,
        "year": grant.year_value,
        "status": grant.status,
    }


# ---------------------------------------------------------------------------
# Listing filters
# ---------------------------------------------------------------------------


def parse_status_filter(raw: str | None) -> tuple[str, ...]:
    """Turn a ``status=a,b`` query value into a filter set.

    Tokens are trimmed and lower-cased, duplicates collapse and unknown
    tokens are dropped.  The result is in canonical status order, so
    ``"ongoing,approved,ongoing"`` and ``"approved,ongoing"`` are equal.
    """
    tokens = {t.strip() for t in (raw or "").lower().split(",")}
    return tuple(s for s in STATUS_ORDER if s in tokens)


@dataclasses.dataclass(frozen=True)
class GrantFilter:
    """All criteria must hold; an unset criterion matches everything."""
    search: str = ""
    year_id: int | None = None
    fund_source_id: int | None = None
    statuses: tuple[str, ...] = ()

    def matches(self, grant) -> bool:
        if self.search and self.search.lower() not in grant.project_name.lower():
            return False
        if self.year_id is not None and grant.year_id != self.year_id:
            return False
        if self.fund_source_id is not None and grant.fund_source_id != self.fund_source_id:
            return False
        if self.statuses and grant.status.lower() not in self.statuses:
            return False
        return True

    def apply(self, grants: Iterable) -> list:
        return [g for g in grants if self.matches(g)]
