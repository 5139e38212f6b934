"""
wfm_rolesync.services.presence

Fire-and-forget presence invalidation after a role mutation.
"""

from __future__ import annotations

import asyncio

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wfm_rolesync.db.repositories.presence import PresenceRepo
from wfm_rolesync.observability.logging import get_logger

log = get_logger(__name__)


class PresenceInvalidator:
    """
    Marks the principal offline so connected clients re-authenticate with the new role.
    `invalidate` returns immediately; the write runs as a background task.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        timeout_seconds: float = 5.0,
    ) -> None:
        self._session_factory = session_factory
        self._timeout = timeout_seconds
        self._tasks: set[asyncio.Task[None]] = set()

    def invalidate(self, email: str) -> None:
        task = asyncio.create_task(self._run(email))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def _run(self, email: str) -> None:
        try:
            await asyncio.wait_for(self._mark_offline(email), timeout=self._timeout)
        except (SQLAlchemyError, TimeoutError) as e:
            log.warning("presence.invalidate_failed", email=email, error=repr(e))
            return
        log.debug("presence.invalidated", email=email)

    async def _mark_offline(self, email: str) -> None:
        async with self._session_factory() as session, session.begin():
            await PresenceRepo(session).mark_offline(email)
