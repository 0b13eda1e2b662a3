"""Disbursement routes -- per-grant ledger, validated creation, deletion."""
from __future__ import annotations

import datetime
import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ssgms.database import get_db
from ssgms.exceptions import NotFoundError
from ssgms.middleware.auth import AuthContext, require_permission
from ssgms.schemas import DisbursementWithGrant
from ssgms.services.ledger import compute_balance, validate_disbursement_amount

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["disbursements"])


class DisbursementCreate(BaseModel):
    grant_id: int
    amount: Decimal
    payment_date: datetime.date


def _disbursement_item(d: DisbursementWithGrant) -> dict:
    item = d.model_dump(mode="json", exclude={"grant"})
    item["project_name"] = d.project_name
    return item


async def _ledger(db: AsyncSession, grant_id: int | None = None) -> list[DisbursementWithGrant]:
    from ssgms.models import Disbursement

    stmt = select(Disbursement)
    if grant_id is not None:
        stmt = stmt.where(Disbursement.grant_id == grant_id)
    stmt = stmt.order_by(Disbursement.payment_date.desc(), Disbursement.id.desc())
    result = await db.execute(stmt)
    return [DisbursementWithGrant.model_validate(d) for d in result.scalars().all()]


@router.get("/disbursements")
async def list_disbursements(
    grant_id: int | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _user: AuthContext = Depends(require_permission("disbursements.view")),
):
    rows = await _ledger(db, grant_id)
    return {"items": [_disbursement_item(d) for d in rows], "total": len(rows)}


@router.get("/grants/{grant_id}/disbursements")
async def grant_ledger(
    grant_id: int,
    db: AsyncSession = Depends(get_db),
    _user: AuthContext = Depends(require_permission("disbursements.view")),
):
    """A grant's payments, newest first, with its derived balance."""
    from ssgms.models import Grant

    grant = await db.get(Grant, grant_id)
    if grant is None:
        raise NotFoundError("Grant not found")

    rows = await _ledger(db, grant_id)
    balance = compute_balance(grant.amount_approved, (d.amount for d in rows))
    return {
        "grant_id": grant_id,
        "project_name": grant.project_name,
        "items": [_disbursement_item(d) for d in rows],
        **balance.to_dict(),
    }


@router.post("/disbursements", status_code=201)
async def create_disbursement(
    body: DisbursementCreate,
    db: AsyncSession = Depends(get_db),
    _user: AuthContext = Depends(require_permission("disbursements.create")),
):
    """Record a payment if it fits in the grant's remaining balance.

    The balance is read, checked, then written in separate steps; two
    simultaneous requests can together overspend.
    """
    from ssgms.models import Disbursement, Grant

    grant = await db.get(Grant, body.grant_id)
    if grant is None:
        raise NotFoundError("Grant not found")

    result = await db.execute(select(Disbursement.amount).where(Disbursement.grant_id == body.grant_id))
    balance = compute_balance(grant.amount_approved, result.scalars().all())
    amount = validate_disbursement_amount(body.amount, balance.remaining_balance)

    disbursement = Disbursement(grant_id=body.grant_id, amount=amount, payment_date=body.payment_date)
    db.add(disbursement)
    await db.commit()
    logger.info(f"{_user.email} disbursed {amount} to grant {body.grant_id}")

    return {
        "id": disbursement.id,
        "grant_id": body.grant_id,
        "amount": float(amount),
        "payment_date": body.payment_date.isoformat(),
        "remaining_balance": float(balance.remaining_balance - amount),
    }


@router.delete("/disbursements/{disbursement_id}")
async def delete_disbursement(
    disbursement_id: int,
    db: AsyncSession = Depends(get_db),
    _user: AuthContext = Depends(require_permission("disbursements.delete")),
):
    from ssgms.models import Disbursement

    disbursement = await db.get(Disbursement, disbursement_id)
    if disbursement is None:
        raise NotFoundError("Disbursement not found")

    await db.delete(disbursement)
    await db.commit()
    logger.info(f"{_user.email} deleted disbursement {disbursement_id} of grant {disbursement.grant_id}")
    return {"status": "deleted", "id": disbursement_id}
