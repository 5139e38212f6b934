"""
wfm_rolesync.api.routers.health

Health and readiness endpoints.

`/readyz` also reports what the sync engine depends on: the directory config loaded at
startup, background presence writes still pending, and principals with a change in flight.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from wfm_rolesync.api.deps import db_session

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(
    request: Request, session: AsyncSession = Depends(db_session)
) -> dict[str, Any]:
    # The role store is the authorization source; without it nothing can be decided.
    await session.execute(text("SELECT 1"))
    state = request.app.state
    directory_config = getattr(state, "directory_config", None)
    presence = getattr(state, "presence", None)
    locks = getattr(state, "locks", None)
    return {
        "status": "ready",
        "directory_configured": directory_config is not None,
        "service_principal_id": directory_config.service_principal_id if directory_config else None,
        "pending_presence_writes": presence.pending if presence is not None else 0,
        "principals_in_flight": len(locks) if locks is not None else 0,
    }
