"""Dashboard route -- KPIs, monthly series and breakdowns."""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ssgms.database import get_db
from ssgms.middleware.auth import AuthContext, require_permission
from ssgms.schemas import DisbursementWithGrant, GrantWithRelations
from ssgms.services import aggregation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])

RECENT_LIMIT = 5

T = TypeVar("T")


async def _load_grants(db: AsyncSession) -> list[GrantWithRelations]:
    from ssgms.models import Grant

    result = await db.execute(select(Grant).order_by(Grant.created_at.desc(), Grant.id.desc()))
    return [GrantWithRelations.model_validate(g) for g in result.scalars().all()]


async def _load_disbursements(db: AsyncSession) -> list[DisbursementWithGrant]:
    from ssgms.models import Disbursement

    result = await db.execute(
        select(Disbursement).order_by(Disbursement.payment_date.desc(), Disbursement.id.desc())
    )
    return [DisbursementWithGrant.model_validate(d) for d in result.scalars().all()]


async def _section(
    db: AsyncSession,
    name: str,
    loader: Callable[[AsyncSession], Awaitable[T]],
    default: T,
    degraded: list[str],
) -> T:
    """Run one read; on failure log it and hand back *default* instead."""
    try:
        return await loader(db)
    except Exception as exc:
        await db.rollback()
        logger.warning(f"Dashboard section {name!r} degraded: {exc}")
        degraded.append(name)
        return default


@router.get("")
async def get_dashboard(
    year: int | None = Query(None, description="Year for the monthly chart"),
    db: AsyncSession = Depends(get_db),
    _user: AuthContext = Depends(require_permission("dashboard.view")),
):
    degraded: list[str] = []
    grants = await _section(db, "grants", _load_grants, [], degraded)
    disbursements = await _section(db, "disbursements", _load_disbursements, [], degraded)

    years = aggregation.available_years(grants, disbursements)
    selected_year = aggregation.resolve_selected_year(year, years)

    kpis = {
        "total_approved": float(aggregation.total_approved(grants)),
        "total_disbursed": float(aggregation.total_disbursed(grants, disbursements)),
        "remaining_balance": float(aggregation.remaining_balance(grants, disbursements)),
        "active_grants": len(aggregation.active_scope(grants)),
    }

    status_distribution = [
        {"status": s.status, "name": s.label, "value": s.count, "color": s.color}
        for s in aggregation.counts_by_status(grants)
    ]

    fund_sources = [
        {"name": name, "value": float(amount), "color": aggregation.color_for(name)}
        for name, amount in aggregation.budget_by_fund_source(grants)
    ]

    palette = aggregation.TOP_REMAINING_PALETTE
    top_remaining = [
        {
            "grant_id": r.grant_id,
            "project": r.project,
            "remaining": float(r.remaining),
            "color": palette[i % len(palette)],
        }
        for i, r in enumerate(aggregation.top_n_by_remaining(grants, disbursements))
    ]

    recent_grants: list[dict[str, Any]] = []
    for g in grants[:RECENT_LIMIT]:
        item = g.model_dump(mode="json", exclude={"fund_source", "grant_year"})
        item["fund_source_name"] = g.fund_source_name
        item["year_value"] = g.year_value
        recent_grants.append(item)

    recent_disbursements = []
    for d in disbursements[:RECENT_LIMIT]:
        item = d.model_dump(mode="json", exclude={"grant"})
        item["project_name"] = d.project_name
        recent_disbursements.append(item)

    return {
        "selected_year": selected_year,
        "available_years": years,
        "kpis": kpis,
        "monthly": [
            b.to_dict()
            for b in aggregation.monthly_budget_vs_disbursed(selected_year, grants, disbursements)
        ],
        "status_distribution": status_distribution,
        "budget_by_fund_source": fund_sources,
        "top_remaining": top_remaining,
        "recent_grants": recent_grants,
        "recent_disbursements": recent_disbursements,
        "degraded": degraded,
    }
