"""user id -> display name lookups for "last updated by" / "deleted by" columns."""
from __future__ import annotations

import uuid
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ssgms.models import Profile

UNKNOWN = "Unknown"


def display_name(profile, *, email_first: bool) -> str:
    if email_first:
        return profile.email or profile.full_name or UNKNOWN
    return profile.full_name or profile.email or UNKNOWN


async def fetch_display_names(
    db: AsyncSession,
    user_ids: Iterable[uuid.UUID | None],
    *,
    email_first: bool,
) -> dict[uuid.UUID, str]:
    """Names for the given ids.  Ids without a profile are left out."""
    ids = {uid for uid in user_ids if uid}
    if not ids:
        return {}
    result = await db.execute(
        select(Profile.id, Profile.email, Profile.full_name).where(Profile.id.in_(ids))
    )
    return {row.id: display_name(row, email_first=email_first) for row in result.all()}


class DisplayNameCache:
    """Lazily filled; only ids not seen before hit the database."""

    def __init__(self, *, email_first: bool):
        self.email_first = email_first
        self._names: dict[uuid.UUID, str] = {}

    def remember(self, user_id: uuid.UUID, name: str) -> None:
        self._names[user_id] = name

    def get(self, user_id: uuid.UUID | None) -> str | None:
        if user_id is None:
            return None
        return self._names.get(user_id, UNKNOWN)

    async def resolve(self, db: AsyncSession, user_ids: Iterable[uuid.UUID | None]) -> dict[uuid.UUID, str]:
        wanted = {uid for uid in user_ids if uid}
        missing = wanted - self._names.keys()
        if missing:
            self._names.update(await fetch_display_names(db, missing, email_first=self.email_first))
        return {uid: self._names.get(uid, UNKNOWN) for uid in wanted}

    def forget(self, user_id: uuid.UUID) -> None:
        self._names.pop(user_id, None)

    def clear(self) -> None:
        self._names.clear()


# Grant list "last updated by": email first
updated_by_names = DisplayNameCache(email_first=True)
