"""Grant year routes."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ssgms.database import get_db
from ssgms.exceptions import ConflictError, NotFoundError, ReferenceInUseError, ValidationError
from ssgms.middleware.auth import AuthContext, require_permission
from ssgms.schemas import GrantYearRow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/grant-years", tags=["grant years"])

MIN_YEAR = 1900
MAX_YEAR = 2100


class GrantYearCreate(BaseModel):
    year_value: int


def validate_year(value: int) -> int:
    if not MIN_YEAR <= value <= MAX_YEAR:
        raise ValidationError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")
    return value


@router.get("")
async def list_grant_years(
    db: AsyncSession = Depends(get_db),
    _user: AuthContext = Depends(require_permission("grant_years.view")),
):
    from ssgms.models import GrantYear

    result = await db.execute(select(GrantYear).order_by(GrantYear.year_value.desc()))
    items = [GrantYearRow.model_validate(y).model_dump(mode="json") for y in result.scalars().all()]
    return {"items": items, "total": len(items)}


@router.post("", status_code=201)
async def create_grant_year(
    body: GrantYearCreate,
    db: AsyncSession = Depends(get_db),
    _user: AuthContext = Depends(require_permission("grant_years.create")),
):
    from ssgms.models import GrantYear

    year = validate_year(body.year_value)
    existing = await db.execute(select(GrantYear.id).where(GrantYear.year_value == year))
    if existing.first() is not None:
        raise ConflictError("This year already exists")

    row = GrantYear(year_value=year)
    db.add(row)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("This year already exists")

    logger.info(f"{_user.email} created grant year {year}")
    return GrantYearRow.model_validate(row).model_dump(mode="json")


@router.delete("/{year_id}")
async def delete_grant_year(
    year_id: int,
    db: AsyncSession = Depends(get_db),
    _user: AuthContext = Depends(require_permission("grant_years.delete")),
):
    """Delete an unused year.  Years referenced by a grant are refused by the database."""
    from ssgms.models import GrantYear

    row = await db.get(GrantYear, year_id)
    if row is None:
        raise NotFoundError("Grant year not found")

    try:
        await db.delete(row)
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        logger.warning(f"Refused to delete grant year {year_id}: {exc.orig}")
        raise ReferenceInUseError(
            "grant year", year_id, "Failed to delete grant year. It might be in use."
        )

    logger.info(f"{_user.email} deleted grant year {year_id}")
    return {"status": "deleted", "id": year_id}
