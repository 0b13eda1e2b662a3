"""Base model utilities for the grant management schema.

Row ids of the grant tables are integers (serial on PostgreSQL);
profile ids come from the identity provider and are declared on the model.
"""
from __future__ import annotations

import datetime

from sqlalchemy import DateTime, Integer, func
from sqlalchemy.orm import Mapped, mapped_column


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class IntegerPrimaryKeyMixin:
    """Mixin that adds an auto-incrementing integer primary key named ``id``."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)


class CreatedAtMixin:
    """Mixin that stamps ``created_at`` on insert (client and server side)."""

    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
