"""Grant routes -- listing, CRUD, status changes, deletion audit, documents."""
from __future__ import annotations

import csv
import datetime
import io
import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ssgms.database import get_db
from ssgms.exceptions import NotFoundError, ReferenceInUseError, StorageError, ValidationError
from ssgms.middleware.auth import AuthContext, get_current_user, require_permission
from ssgms.schemas import GrantWithRelations
from ssgms.services import grant_policy
from ssgms.services.deletion_audit import log_deletion, recent_deletions
from ssgms.services.display_names import display_name, updated_by_names
from ssgms.services.ledger import compute_balance
from ssgms.services.storage import DocumentStorage, document_object_name, get_document_storage, object_name_from_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/grants", tags=["grants"])

AUDIT_WARNING = "Deletion reason could not be recorded. Check audit log setup."
CSV_HEADERS = ["Project Name", "Amount Approved (RM)", "Year", "Fund Source", "Status"]


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class GrantCreate(BaseModel):
    project_name: str
    amount_approved: Decimal
    year_id: int
    fund_source_id: int
    status: str = "approved"


class GrantUpdate(BaseModel):
    project_name: str | None = None
    amount_approved: Decimal | None = None
    year_id: int | None = None
    fund_source_id: int | None = None
    status: str | None = None


class StatusChange(BaseModel):
    status: str


class GrantDelete(BaseModel):
    reason: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _load_grants(db: AsyncSession) -> list[GrantWithRelations]:
    from ssgms.models import Grant

    result = await db.execute(select(Grant).order_by(Grant.created_at.desc(), Grant.id.desc()))
    return [GrantWithRelations.model_validate(g) for g in result.scalars().all()]


async def _get_grant(db: AsyncSession, grant_id: int):
    from ssgms.models import Grant

    grant = await db.get(Grant, grant_id)
    if grant is None:
        raise NotFoundError("Grant not found")
    return grant


async def _reload_grant(db: AsyncSession, grant_id: int) -> GrantWithRelations:
    from ssgms.models import Grant

    result = await db.execute(
        select(Grant).where(Grant.id == grant_id).execution_options(populate_existing=True)
    )
    return GrantWithRelations.model_validate(result.scalar_one())


async def _check_references(db: AsyncSession, year_id: int | None, fund_source_id: int | None) -> None:
    from ssgms.models import FundSource, GrantYear

    if year_id is not None and await db.get(GrantYear, year_id) is None:
        raise ValidationError("Grant year not found")
    if fund_source_id is not None and await db.get(FundSource, fund_source_id) is None:
        raise ValidationError("Fund source not found")


def _grant_item(g: GrantWithRelations, names: dict) -> dict:
    item = g.model_dump(mode="json", exclude={"fund_source", "grant_year"})
    item["fund_source_name"] = g.fund_source_name
    item["year_value"] = g.year_value
    item["updated_by_name"] = names.get(g.user_id) if g.user_id else None
    return item


async def _filtered(
    db: AsyncSession,
    search: str | None,
    year_id: int | None,
    fund_source_id: int | None,
    status: str | None,
) -> tuple[list[GrantWithRelations], grant_policy.GrantFilter]:
    criteria = grant_policy.GrantFilter(
        search=(search or "").strip(),
        year_id=year_id,
        fund_source_id=fund_source_id,
        statuses=grant_policy.parse_status_filter(status),
    )
    return criteria.apply(await _load_grants(db)), criteria


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

@router.get("")
async def list_grants(
    search: str | None = Query(None),
    year_id: int | None = Query(None),
    fund_source_id: int | None = Query(None),
    status: str | None = Query(None, description="Comma-separated, e.g. approved,ongoing"),
    db: AsyncSession = Depends(get_db),
    _user: AuthContext = Depends(require_permission("grants.view")),
):
    grants, criteria = await _filtered(db, search, year_id, fund_source_id, status)
    names = await updated_by_names.resolve(db, (g.user_id for g in grants))
    items = [_grant_item(g, names) for g in grants]
    return {"items": items, "total": len(items), "statuses": list(criteria.statuses)}


@router.get("/export.csv")
async def export_grants_csv(
    search: str | None = Query(None),
    year_id: int | None = Query(None),
    fund_source_id: int | None = Query(None),
    status: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _user: AuthContext = Depends(require_permission("grants.view")),
):
    grants, _ = await _filtered(db, search, year_id, fund_source_id, status)

    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for g in grants:
        writer.writerow([
            g.project_name,
            f"{g.amount_approved:.2f}",
            g.year_value if g.year_value is not None else "N/A",
            g.fund_source_name or "N/A",
            g.status,
        ])

    filename = f"grants_export_{datetime.date.today().isoformat()}.csv"
    return Response(
        content=buf.getvalue(),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/deletion-logs")
async def list_grant_deletion_logs(
    db: AsyncSession = Depends(get_db),
    _user: AuthContext = Depends(require_permission("grants.deletion_logs.view")),
):
    items = await recent_deletions(db, "grant")
    return {"items": items, "total": len(items)}


@router.get("/{grant_id}")
async def get_grant(
    grant_id: int,
    db: AsyncSession = Depends(get_db),
    _user: AuthContext = Depends(require_permission("grants.view")),
):
    from ssgms.models import Disbursement

    grant = GrantWithRelations.model_validate(await _get_grant(db, grant_id))
    result = await db.execute(select(Disbursement.amount).where(Disbursement.grant_id == grant_id))
    balance = compute_balance(grant.amount_approved, result.scalars().all())
    names = await updated_by_names.resolve(db, [grant.user_id])

    item = _grant_item(grant, names)
    item["fund_source"] = grant.fund_source.model_dump(mode="json") if grant.fund_source else None
    item["grant_year"] = grant.grant_year.model_dump(mode="json") if grant.grant_year else None
    item["balance"] = balance.to_dict()
    return item


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

@router.post("", status_code=201)
async def create_grant(
    body: GrantCreate,
    db: AsyncSession = Depends(get_db),
    user: AuthContext = Depends(get_current_user),
):
    from ssgms.models import Grant

    grant_policy.ensure_can_create(user)
    fields = grant_policy.validate_grant_fields(
        project_name=body.project_name,
        amount_approved=body.amount_approved,
        status=body.status,
    )
    await _check_references(db, body.year_id, body.fund_source_id)

    grant = Grant(year_id=body.year_id, fund_source_id=body.fund_source_id, **fields)
    db.add(grant)
    await db.commit()
    logger.info(f"{user.email} created grant {grant.id} ({grant.project_name})")
    return _grant_item(await _reload_grant(db, grant.id), {})


@router.put("/{grant_id}")
async def update_grant(
    grant_id: int,
    body: GrantUpdate,
    db: AsyncSession = Depends(get_db),
    user: AuthContext = Depends(get_current_user),
):
    """Privileged edit: any field, status included, to any value."""
    grant_policy.ensure_can_edit(user)
    grant = await _get_grant(db, grant_id)

    fields = grant_policy.validate_grant_fields(
        project_name=body.project_name,
        amount_approved=body.amount_approved,
        status=body.status,
    )
    await _check_references(db, body.year_id, body.fund_source_id)
    if body.year_id is not None:
        fields["year_id"] = body.year_id
    if body.fund_source_id is not None:
        fields["fund_source_id"] = body.fund_source_id

    for field, value in fields.items():
        setattr(grant, field, value)
    await db.commit()
    logger.info(f"{user.email} updated grant {grant_id}: {sorted(fields)}")

    updated = await _reload_grant(db, grant_id)
    names = await updated_by_names.resolve(db, [updated.user_id])
    return _grant_item(updated, names)


@router.patch("/{grant_id}/status")
async def change_grant_status(
    grant_id: int,
    body: StatusChange,
    db: AsyncSession = Depends(get_db),
    user: AuthContext = Depends(get_current_user),
):
    """Self-service status change; records the caller as last updater."""
    grant = await _get_grant(db, grant_id)
    patch = grant_policy.plan_status_advance(grant.status, body.status, user)
    if patch is None:
        return {"status": "unchanged", "grant_status": grant.status}

    grant.status = patch["status"]
    grant.user_id = patch["user_id"]
    await db.commit()
    updated_by_names.remember(user.user_id, display_name(user, email_first=True))
    logger.info(f"{user.email} moved grant {grant_id} to {grant.status}")
    return {
        "status": "updated",
        "grant_status": grant.status,
        "user_id": str(grant.user_id),
        "updated_by_name": updated_by_names.get(grant.user_id),
    }


@router.delete("/{grant_id}")
async def delete_grant(
    grant_id: int,
    body: GrantDelete | None = None,
    db: AsyncSession = Depends(get_db),
    user: AuthContext = Depends(get_current_user),
):
    """Delete a grant (its disbursements go with it), then record why.

    The two writes are separate.  The reason is recorded whether or not the
    delete went through; a failed audit write only adds a warning.
    """
    grant_policy.ensure_can_delete(user)
    reason = grant_policy.require_deletion_reason(body.reason if body else None)
    grant = await _get_grant(db, grant_id)
    snapshot = grant_policy.deletion_snapshot(GrantWithRelations.model_validate(grant))
    label = grant.project_name

    delete_error: SQLAlchemyError | None = None
    try:
        await db.delete(grant)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.warning(f"Delete of grant {grant_id} failed: {exc}")
        delete_error = exc
    else:
        logger.info(f"{user.email} deleted grant {grant_id} ({label})")

    logged = await log_deletion(
        db,
        entity_type="grant",
        entity_id=grant_id,
        entity_label=label,
        reason=reason,
        deleted_by=user.user_id,
        metadata=snapshot,
    )
    if delete_error is not None:
        raise ReferenceInUseError("grant", grant_id, "Failed to delete grant. It might be in use.") from delete_error

    response = {"status": "deleted", "id": grant_id, "audit_logged": logged}
    if not logged:
        response["warning"] = AUDIT_WARNING
    return response


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

@router.post("/{grant_id}/document", status_code=201)
async def upload_grant_document(
    grant_id: int,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    storage: DocumentStorage = Depends(get_document_storage),
    user: AuthContext = Depends(require_permission("grants.documents.manage")),
):
    grant = await _get_grant(db, grant_id)
    data = await file.read()
    name = document_object_name(grant_id, file.filename or "document")
    url = await storage.upload(name, data, file.content_type)

    previous = grant.document_url
    grant.document_url = url
    await db.commit()
    logger.info(f"{user.email} attached {name} to grant {grant_id}")

    if previous and (old_name := object_name_from_url(previous)):
        try:
            await storage.remove(old_name)
        except StorageError as exc:
            logger.warning(f"Could not remove replaced document {old_name}: {exc}")
    return {"id": grant_id, "document_url": url}


@router.delete("/{grant_id}/document")
async def remove_grant_document(
    grant_id: int,
    db: AsyncSession = Depends(get_db),
    storage: DocumentStorage = Depends(get_document_storage),
    user: AuthContext = Depends(require_permission("grants.documents.manage")),
):
    grant = await _get_grant(db, grant_id)
    if not grant.document_url:
        raise NotFoundError("Grant has no document")

    name = object_name_from_url(grant.document_url)
    if name:
        await storage.remove(name)
    grant.document_url = None
    await db.commit()
    logger.info(f"{user.email} removed the document of grant {grant_id}")
    return {"id": grant_id, "document_url": None}
