"""Deletion audit trail.

Writing the log is the second, separate step of a delete.  If it fails the
delete still stands; the caller gets ``False`` and reports a warning.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ssgms.models import DeletionLog
from ssgms.schemas import DeletionLogRow
from ssgms.services.display_names import UNKNOWN, fetch_display_names

logger = logging.getLogger(__name__)

RECENT_LOG_LIMIT = 100


async def log_deletion(
    db: AsyncSession,
    *,
    entity_type: str,
    entity_id: Any,
    reason: str,
    entity_label: str | None = None,
    deleted_by: uuid.UUID | None = None,
    metadata: dict | None = None,
) -> bool:
    """Append one deletion record.  Returns whether it was written."""
    try:
        db.add(DeletionLog(
            entity_type=entity_type,
            entity_id=str(entity_id),
            entity_label=entity_label,
            reason=reason,
            deleted_by=deleted_by,
            snapshot=metadata,
        ))
        await db.commit()
        return True
    except Exception as exc:
        await db.rollback()
        logger.warning(f"Failed to record deletion reason for {entity_type} {entity_id}: {exc}")
        return False


async def recent_deletions(
    db: AsyncSession,
    entity_type: str,
    limit: int = RECENT_LOG_LIMIT,
) -> list[dict[str, Any]]:
    """Newest first, each with ``deleted_by_name`` (full name before email)."""
    result = await db.execute(
        select(DeletionLog)
        .where(DeletionLog.entity_type == entity_type)
        .order_by(DeletionLog.created_at.desc(), DeletionLog.id.desc())
        .limit(limit)
    )
    rows = [DeletionLogRow.model_validate(log) for log in result.scalars().all()]
    names = await fetch_display_names(db, (r.deleted_by for r in rows), email_first=False)

    items = []
    for r in rows:
        item = r.model_dump(mode="json")
        item["deleted_by_name"] = names.get(r.deleted_by, UNKNOWN) if r.deleted_by else UNKNOWN
        items.append(item)
    return items
