from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from wfm_rolesync.auth.models import normalize_email
from wfm_rolesync.db.models import Presence, PresenceStatus, utcnow


class PresenceRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, email: str) -> Presence | None:
        return await self._session.get(Presence, normalize_email(email))

    async def mark_offline(self, email: str) -> Presence:
        email = normalize_email(email)
        row = await self._session.get(Presence, email, with_for_update=True)
        if row is None:
            row = Presence(email=email, status=PresenceStatus.offline)
            self._session.add(row)
        else:
            row.status = PresenceStatus.offline
            row.updated_at = utcnow()
        await self._session.flush()
        return row
