"""Fund source routes."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ssgms.database import get_db
from ssgms.exceptions import ConflictError, NotFoundError, ValidationError
from ssgms.middleware.auth import AuthContext, require_permission
from ssgms.schemas import FundSourceRow, GrantWithRelations
from ssgms.services.aggregation import FUND_SOURCE_PALETTE, color_for, totals_by_fund_source

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/fund-sources", tags=["fund sources"])


class FundSourceCreate(BaseModel):
    source_name: str
    description: str | None = None


class FundSourceUpdate(BaseModel):
    source_name: str | None = None
    description: str | None = None


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Source name is required")
    return cleaned


async def _ensure_unique(db: AsyncSession, name: str, exclude_id: int | None = None) -> None:
    from ssgms.models import FundSource

    stmt = select(FundSource.id).where(func.lower(FundSource.source_name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(FundSource.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise ConflictError(f"A fund source named '{name}' already exists")


@router.get("")
async def list_fund_sources(
    db: AsyncSession = Depends(get_db),
    _user: AuthContext = Depends(require_permission("fund_sources.view")),
):
    """Every source with its approved total over all grants, largest first."""
    from ssgms.models import FundSource, Grant

    sources = [
        FundSourceRow.model_validate(s)
        for s in (await db.execute(select(FundSource).order_by(FundSource.source_name))).scalars().all()
    ]
    grants = [
        GrantWithRelations.model_validate(g)
        for g in (await db.execute(select(Grant))).scalars().all()
    ]

    items = []
    for source, total in totals_by_fund_source(sources, grants):
        item = source.model_dump(mode="json")
        item["total_amount"] = float(total)
        item["color"] = color_for(source.source_name, FUND_SOURCE_PALETTE)
        items.append(item)
    return {"items": items, "total": len(items)}


@router.post("", status_code=201)
async def create_fund_source(
    body: FundSourceCreate,
    db: AsyncSession = Depends(get_db),
    _user: AuthContext = Depends(require_permission("fund_sources.create")),
):
    from ssgms.models import FundSource

    name = _clean_name(body.source_name)
    await _ensure_unique(db, name)

    source = FundSource(source_name=name, description=(body.description or "").strip() or None)
    db.add(source)
    await db.commit()
    logger.info(f"{_user.email} created fund source {name!r}")
    return FundSourceRow.model_validate(source).model_dump(mode="json")


@router.put("/{source_id}")
async def update_fund_source(
    source_id: int,
    body: FundSourceUpdate,
    db: AsyncSession = Depends(get_db),
    _user: AuthContext = Depends(require_permission("fund_sources.update")),
):
    """Rename a source.  Its description is frozen once a grant uses it."""
    from ssgms.models import FundSource, Grant

    source = await db.get(FundSource, source_id)
    if source is None:
        raise NotFoundError("Fund source not found")

    description = None
    if body.description is not None:
        description = body.description.strip() or None
        if description != source.description:
            in_use = await db.execute(select(Grant.id).where(Grant.fund_source_id == source_id).limit(1))
            if in_use.first() is not None:
                raise ConflictError("Fund source is in use by a grant; only its name can be changed")

    if body.source_name is not None:
        name = _clean_name(body.source_name)
        await _ensure_unique(db, name, exclude_id=source_id)
        source.source_name = name
    if body.description is not None:
        source.description = description

    await db.commit()
    logger.info(f"{_user.email} updated fund source {source_id}")
    return FundSourceRow.model_validate(source).model_dump(mode="json")
