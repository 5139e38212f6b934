"""
wfm_rolesync.db.repositories.audit

Repository for `AuditLog` entities.

Responsibilities:
- Append audit entries (before/after snapshots of role transitions).
- Query the audit trail by entity id for transparency and compliance.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from wfm_rolesync.db.models import AuditAction, AuditEntity, AuditLog


class AuditRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(
        self,
        *,
        entity: AuditEntity,
        entity_id: str,
        action: AuditAction,
        changed_by_id: str,
        data_before: dict[str, Any] | None,
        data_after: dict[str, Any] | None,
    ) -> AuditLog:
        # Append-only: nothing in the codebase updates or deletes audit rows.
        row = AuditLog(
            entity=entity,
            entity_id=entity_id,
            action=action,
            changed_by_id=changed_by_id,
            data_before=data_before,
            data_after=data_after,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def list_for_entity(self, entity_id: str, *, limit: int = 200) -> list[AuditLog]:
        # Newest first for UI consumption.
        stmt = (
            select(AuditLog)
            .where(AuditLog.entity_id == entity_id)
            .order_by(desc(AuditLog.created_at))
            .limit(limit)
        )
        return list((await self._session.execute(stmt)).scalars().all())
