"""Append-only audit trail of deletions."""
from __future__ import annotations

import uuid

from sqlalchemy import JSON, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ssgms.database import Base
from ssgms.models.base import CreatedAtMixin, IntegerPrimaryKeyMixin


class DeletionLog(IntegerPrimaryKeyMixin, CreatedAtMixin, Base):
    """Why something was deleted, by whom, and what it looked like at the time.

    ``metadata`` is a reserved attribute on declarative classes, so the
    column is mapped as ``snapshot``.
    """
    __tablename__ = "deletion_logs"

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_label: Mapped[str | None] = mapped_column(String(300))
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    deleted_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    snapshot: Mapped[dict | None] = mapped_column("metadata", JSON)

    def __repr__(self) -> str:
        return f"<DeletionLog {self.entity_type}:{self.entity_id} by {self.deleted_by}>"
