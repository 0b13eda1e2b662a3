"""Team member profile, keyed by the identity provider's user id."""
from __future__ import annotations

import uuid

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ssgms.database import Base
from ssgms.models.base import CreatedAtMixin


class Profile(CreatedAtMixin, Base):
    """A team member.

    ``invited`` rows are placeholders created by the invite flow; they become
    ``active`` once the person signs in.  ``email`` is deliberately not unique:
    a placeholder and the registered account may coexist for a while and are
    collapsed when listed.
    """
    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")
    full_name: Mapped[str | None] = mapped_column(String(200))
    status: Mapped[str | None] = mapped_column(String(20), default="active")

    @property
    def effective_status(self) -> str:
        return self.status or "active"

    def __repr__(self) -> str:
        return f"<Profile {self.email!r} role={self.role!r} status={self.status!r}>"
