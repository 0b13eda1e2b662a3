"""Grant ledger models: fund sources, grant years, grants and disbursements."""
from __future__ import annotations

import datetime
import uuid
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ssgms.database import Base
from ssgms.models.base import CreatedAtMixin, IntegerPrimaryKeyMixin

MONEY = Numeric(14, 2)


class FundSource(IntegerPrimaryKeyMixin, CreatedAtMixin, Base):
    """Where a grant's money comes from.  Renamable, never deleted once used."""
    __tablename__ = "fund_sources"

    source_name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    def __repr__(self) -> str:
        return f"<FundSource {self.source_name!r}>"


class GrantYear(IntegerPrimaryKeyMixin, CreatedAtMixin, Base):
    """A calendar year grants are filed under."""
    __tablename__ = "grant_years"
    __table_args__ = (
        CheckConstraint("year_value BETWEEN 1900 AND 2100", name="ck_grant_years_range"),
    )

    year_value: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)

    def __repr__(self) -> str:
        return f"<GrantYear {self.year_value}>"


class Grant(IntegerPrimaryKeyMixin, CreatedAtMixin, Base):
    """An approved project budget.

    ``user_id`` records whoever last changed the status through the
    self-service control.
    """
    __tablename__ = "grants"
    __table_args__ = (
        CheckConstraint("amount_approved >= 0", name="ck_grants_amount_non_negative"),
    )

    project_name: Mapped[str] = mapped_column(String(300), nullable=False)
    amount_approved: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="approved")
    year_id: Mapped[int] = mapped_column(
        ForeignKey("grant_years.id", ondelete="RESTRICT"), nullable=False
    )
    fund_source_id: Mapped[int] = mapped_column(
        ForeignKey("fund_sources.id", ondelete="RESTRICT"), nullable=False
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    document_url: Mapped[str | None] = mapped_column(Text)

    # ------ relationships ------
    fund_source: Mapped[FundSource | None] = relationship("FundSource", lazy="selectin")
    grant_year: Mapped[GrantYear | None] = relationship("GrantYear", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Grant {self.project_name!r} {self.amount_approved} status={self.status!r}>"


class Disbursement(IntegerPrimaryKeyMixin, CreatedAtMixin, Base):
    """A payment made against a grant."""
    __tablename__ = "disbursements"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_disbursements_amount_positive"),
    )

    grant_id: Mapped[int] = mapped_column(
        ForeignKey("grants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    payment_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)

    # ------ relationships ------
    grant: Mapped[Grant | None] = relationship("Grant", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Disbursement grant={self.grant_id} {self.amount} on {self.payment_date}>"
