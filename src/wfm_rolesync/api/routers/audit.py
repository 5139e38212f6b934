"""
wfm_rolesync.api.routers.audit

Read access to the audit trail of a single entity.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from wfm_rolesync.api.deps import db_session
from wfm_rolesync.auth.deps import require_roles
from wfm_rolesync.auth.models import UserRole
from wfm_rolesync.db.repositories.audit import AuditRepo

router = APIRouter(prefix="/v1/audit", tags=["audit"])


class AuditEntryOut(BaseModel):
    id: str
    entity: str
    entity_id: str
    action: str
    changed_by_id: str
    data_before: dict[str, Any] | None
    data_after: dict[str, Any] | None
    created_at: datetime


@router.get(
    "/{entity_id}",
    response_model=list[AuditEntryOut],
    dependencies=[Depends(require_roles(UserRole.super_admin, UserRole.admin))],
)
async def list_audit_entries(
    entity_id: str,
    limit: int = Query(default=200, ge=1, le=1000),
    session: AsyncSession = Depends(db_session),
) -> list[AuditEntryOut]:
    rows = await AuditRepo(session).list_for_entity(entity_id, limit=limit)
    return [
        AuditEntryOut(
            id=str(row.id),
            entity=row.entity.value,
            entity_id=row.entity_id,
            action=row.action.value,
            changed_by_id=row.changed_by_id,
            data_before=row.data_before,
            data_after=row.data_after,
            created_at=row.created_at,
        )
        for row in rows
    ]
