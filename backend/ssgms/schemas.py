"""Normalized read shapes.

Rows reach the business rules in exactly one shape per query.  Joined
relations may arrive as an ORM object, a dict, a one-element list (how
PostgREST-style embeds render to-one joins) or nothing at all; the
``before`` validators collapse all of those to a single object or ``None``
before any aggregation sees the row.
"""
from __future__ import annotations

import datetime
import uuid
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer, field_validator


def collapse_relation(value: Any) -> Any:
    """Return the single related row held by *value*, or ``None``."""
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


class _ReadModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


class FundSourceRow(_ReadModel):
    id: int
    source_name: str
    description: str | None = None
    created_at: datetime.datetime | None = None


class GrantYearRow(_ReadModel):
    id: int
    year_value: int
    created_at: datetime.datetime | None = None


# ---------------------------------------------------------------------------
# Grants
# ---------------------------------------------------------------------------


class GrantSummary(_ReadModel):
    id: int | None = None
    project_name: str


class GrantWithRelations(_ReadModel):
    id: int
    project_name: str
    amount_approved: Decimal
    status: str
    year_id: int | None = None
    fund_source_id: int | None = None
    created_at: datetime.datetime
    user_id: uuid.UUID | None = None
    document_url: str | None = None
    fund_source: FundSourceRow | None = Field(
        default=None, validation_alias=AliasChoices("fund_source", "fund_sources")
    )
    grant_year: GrantYearRow | None = Field(
        default=None, validation_alias=AliasChoices("grant_year", "grant_years")
    )

    @field_validator("fund_source", "grant_year", mode="before")
    @classmethod
    def single_relation(cls, value: Any) -> Any:
        return collapse_relation(value)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_serializer("amount_approved")
    def serialize_money(self, value: Decimal) -> float:
        return float(value)

    @property
    def fund_source_name(self) -> str | None:
        return self.fund_source.source_name if self.fund_source else None

    @property
    def year_value(self) -> int | None:
        return self.grant_year.year_value if self.grant_year else None


class DisbursementWithGrant(_ReadModel):
    id: int | None = None
    grant_id: int
    amount: Decimal
    payment_date: datetime.date
    created_at: datetime.datetime | None = None
    grant: GrantSummary | None = Field(
        default=None, validation_alias=AliasChoices("grant", "grants")
    )

    @field_validator("grant", mode="before")
    @classmethod
    def single_relation(cls, value: Any) -> Any:
        return collapse_relation(value)

    @field_serializer("amount")
    def serialize_money(self, value: Decimal) -> float:
        return float(value)

    @property
    def project_name(self) -> str | None:
        return self.grant.project_name if self.grant else None


# ---------------------------------------------------------------------------
# Team & audit
# ---------------------------------------------------------------------------


class ProfileRow(_ReadModel):
    id: uuid.UUID
    email: str
    role: str
    full_name: str | None = None
    status: str | None = None
    created_at: datetime.datetime | None = None

    @property
    def effective_status(self) -> str:
        return self.status or "active"


class DeletionLogRow(_ReadModel):
    id: int
    entity_type: str
    entity_id: str
    entity_label: str | None = None
    reason: str
    deleted_by: uuid.UUID | None = None
    metadata: dict | None = Field(
        default=None, validation_alias=AliasChoices("snapshot", "metadata")
    )
    created_at: datetime.datetime
