"""
wfm_rolesync.services.audit_log

Audit sink backed by the `audit_logs` table.

Responsibilities:
- Persist one entry per committed role transition, in its own transaction.
- Never fail the caller: a lost audit row is logged, not raised.
"""

from __future__ import annotations

import asyncio

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wfm_rolesync.db.repositories.audit import AuditRepo
from wfm_rolesync.errors import AuditWriteError
from wfm_rolesync.observability.logging import get_logger
from wfm_rolesync.sync.ports import AuditEntry

log = get_logger(__name__)


class SqlAuditLog:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        timeout_seconds: float = 5.0,
    ) -> None:
        self._session_factory = session_factory
        self._timeout = timeout_seconds

    async def record(self, entry: AuditEntry) -> None:
        try:
            await asyncio.wait_for(self._write(entry), timeout=self._timeout)
        except (SQLAlchemyError, TimeoutError) as e:
            err = AuditWriteError(f"audit write failed for {entry.entity_id}: {e!r}")
            log.error(
                "audit.write_failed",
                entity=entry.entity.value,
                entity_id=entry.entity_id,
                action=entry.action.value,
                changed_by_id=entry.changed_by_id,
                error=str(err),
            )

    async def _write(self, entry: AuditEntry) -> None:
        async with self._session_factory() as session, session.begin():
            await AuditRepo(session).add(
                entity=entry.entity,
                entity_id=entry.entity_id,
                action=entry.action,
                changed_by_id=entry.changed_by_id,
                data_before=entry.data_before,
                data_after=entry.data_after,
            )


# --- Module Notes -----------------------------------------------------------
# The role change has already committed in both stores by the time this runs, so
# there is nothing to undo when the write fails.
