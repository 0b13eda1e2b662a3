"""Dashboard aggregation.

Pure functions over normalized grant and disbursement rows.  Most KPIs look
only at the *active scope* (grants that are approved or ongoing); the status
distribution is the exception and counts every grant.

Every function accepts empty input and returns the zero value or an empty
series for it, so one failed fetch degrades one dashboard section only.
"""
from __future__ import annotations

import calendar
import dataclasses
import datetime
from collections.abc import Iterable, Sequence
from decimal import Decimal

from ssgms.schemas import DisbursementWithGrant, FundSourceRow, GrantWithRelations
from ssgms.services.grant_policy import ACTIVE_STATUSES, STATUS_ORDER

ZERO = Decimal("0")
UNKNOWN_SOURCE = "Unknown"
DEFAULT_TOP_N = 5

STATUS_LABELS: dict[str, str] = {
    "approved": "Approved",
    "ongoing": "Ongoing",
    "completed": "Completed",
}

STATUS_COLORS: dict[str, str] = {
    "approved": "#059669",
    "ongoing": "#f59e0b",
    "completed": "#1e3a8a",
}

FUND_SOURCE_PALETTE: tuple[str, ...] = (
    "#1e3a8a",
    "#0ea5e9",
    "#059669",
    "#f59e0b",
    "#7c3aed",
    "#ef4444",
    "#14b8a6",
    "#e11d48",
    "#84cc16",
    "#f97316",
)

TOP_REMAINING_PALETTE: tuple[str, ...] = ("#1e3a8a", "#0ea5e9", "#7c3aed", "#059669", "#f59e0b")


# ---------------------------------------------------------------------------
# Result shapes
# ---------------------------------------------------------------------------


@dataclasses.dataclass
class MonthBucket:
    month: int
    label: str
    budget_added: Decimal = ZERO
    disbursed: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            "month": self.label,
            "budget_added": float(self.budget_added),
            "disbursed": float(self.disbursed),
        }


@dataclasses.dataclass(frozen=True)
class StatusCount:
    status: str
    label: str
    count: int
    color: str


@dataclasses.dataclass(frozen=True)
class RemainingRank:
    grant_id: int
    project: str
    remaining: Decimal


# ---------------------------------------------------------------------------
# Scope
# ---------------------------------------------------------------------------


def active_scope(grants: Iterable[GrantWithRelations]) -> list[GrantWithRelations]:
    """Approved and ongoing grants, in their original order."""
    return [g for g in grants if g.status in ACTIVE_STATUSES]


# ---------------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------------


def total_approved(grants: Iterable[GrantWithRelations]) -> Decimal:
    return sum((g.amount_approved for g in active_scope(grants)), ZERO)


def disbursed_by_grant(
    grants: Iterable[GrantWithRelations],
    disbursements: Iterable[DisbursementWithGrant],
) -> dict[int, Decimal]:
    """grant id -> disbursed sum, for disbursements of active-scope grants only."""
    scope_ids = {g.id for g in active_scope(grants)}
    totals: dict[int, Decimal] = {}
    for d in disbursements:
        if d.grant_id not in scope_ids:
            continue
        totals[d.grant_id] = totals.get(d.grant_id, ZERO) + d.amount
    return totals


def total_disbursed(
    grants: Iterable[GrantWithRelations],
    disbursements: Iterable[DisbursementWithGrant],
) -> Decimal:
    return sum(disbursed_by_grant(grants, disbursements).values(), ZERO)


def remaining_balance(
    grants: Iterable[GrantWithRelations],
    disbursements: Iterable[DisbursementWithGrant],
) -> Decimal:
    """Sum of per-grant remaining balances over the active scope.

    Not clamped at zero: a negative figure signals an overspent grant.
    """
    grants = list(grants)
    by_grant = disbursed_by_grant(grants, disbursements)
    return sum(
        (g.amount_approved - by_grant.get(g.id, ZERO) for g in active_scope(grants)),
        ZERO,
    )


# ---------------------------------------------------------------------------
# Monthly series
# ---------------------------------------------------------------------------


def monthly_budget_vs_disbursed(
    year: int,
    grants: Iterable[GrantWithRelations],
    disbursements: Iterable[DisbursementWithGrant],
) -> list[MonthBucket]:
    """Twelve Jan..Dec buckets for *year*.

    Budget is attributed to the month a grant was created, disbursements to
    their payment month.  Months without activity stay at zero.
    """
    grants = list(grants)
    buckets = [MonthBucket(month=m, label=calendar.month_abbr[m]) for m in range(1, 13)]
    scope = active_scope(grants)
    scope_ids = {g.id for g in scope}

    for g in scope:
        if g.created_at.year == year:
            buckets[g.created_at.month - 1].budget_added += g.amount_approved

    for d in disbursements:
        if d.grant_id in scope_ids and d.payment_date.year == year:
            buckets[d.payment_date.month - 1].disbursed += d.amount

    return buckets


def available_years(
    grants: Iterable[GrantWithRelations],
    disbursements: Iterable[DisbursementWithGrant],
    today: datetime.date | None = None,
) -> list[int]:
    """Years with activity in either dataset plus the current year, newest first."""
    today = today or datetime.date.today()
    grants = list(grants)
    scope = active_scope(grants)
    scope_ids = {g.id for g in scope}
    years = {g.created_at.year for g in scope}
    years.update(d.payment_date.year for d in disbursements if d.grant_id in scope_ids)
    years.add(today.year)
    return sorted(years, reverse=True)


def resolve_selected_year(
    requested: int | None,
    years: Sequence[int],
    today: datetime.date | None = None,
) -> int:
    if requested is not None and requested in years:
        return requested
    if years:
        return years[0]
    return (today or datetime.date.today()).year


# ---------------------------------------------------------------------------
# Breakdowns
# ---------------------------------------------------------------------------


def counts_by_status(grants: Iterable[GrantWithRelations]) -> list[StatusCount]:
    """Counts over ALL grants, always in approved, ongoing, completed order."""
    counts = dict.fromkeys(STATUS_ORDER, 0)
    for g in grants:
        if g.status in counts:
            counts[g.status] += 1
    return [
        StatusCount(status=s, label=STATUS_LABELS[s], count=counts[s], color=STATUS_COLORS[s])
        for s in STATUS_ORDER
    ]


def budget_by_fund_source(grants: Iterable[GrantWithRelations]) -> list[tuple[str, Decimal]]:
    """(source name, approved total) over the active scope, largest first."""
    totals: dict[str, Decimal] = {}
    for g in active_scope(grants):
        name = g.fund_source_name or UNKNOWN_SOURCE
        totals[name] = totals.get(name, ZERO) + g.amount_approved
    return sorted(totals.items(), key=lambda item: item[1], reverse=True)


def totals_by_fund_source(
    sources: Iterable[FundSourceRow],
    grants: Iterable[GrantWithRelations],
) -> list[tuple[FundSourceRow, Decimal]]:
    """Every fund source with its approved total over ALL grants, largest first.

    Sources without grants are listed with a zero total.
    """
    by_source: dict[int, Decimal] = {}
    for g in grants:
        if g.fund_source_id is None:
            continue
        by_source[g.fund_source_id] = by_source.get(g.fund_source_id, ZERO) + g.amount_approved
    rows = [(s, by_source.get(s.id, ZERO)) for s in sources]
    return sorted(rows, key=lambda item: item[1], reverse=True)


def top_n_by_remaining(
    grants: Iterable[GrantWithRelations],
    disbursements: Iterable[DisbursementWithGrant],
    n: int = DEFAULT_TOP_N,
) -> list[RemainingRank]:
    """Active-scope grants with the most money left.  Ties keep fetch order."""
    grants = list(grants)
    by_grant = disbursed_by_grant(grants, disbursements)
    ranked = [
        RemainingRank(
            grant_id=g.id,
            project=g.project_name,
            remaining=g.amount_approved - by_grant.get(g.id, ZERO),
        )
        for g in active_scope(grants)
    ]
    # sorted() is stable, reverse=True included
    ranked = sorted(ranked, key=lambda r: r.remaining, reverse=True)
    return ranked[: max(n, 0)]


# ---------------------------------------------------------------------------
# Colors
# ---------------------------------------------------------------------------


def _name_hash(name: str) -> int:
    h = 0
    for ch in name:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return h


def color_for(name: str, palette: Sequence[str] = FUND_SOURCE_PALETTE) -> str:
    """Same category name, same color, for as long as the palette is unchanged."""
    if not palette:
        return FUND_SOURCE_PALETTE[0]
    return palette[_name_hash(name.strip()) % len(palette)]
