"""
wfm_rolesync.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Provide dependency functions for settings and DB sessions.
- Encapsulate app.state access patterns (sessionmaker, directory client, locks).
- Build the request's `RoleSyncService` from app-scoped parts.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wfm_rolesync.services.role_sync_service import RoleSyncService, build_role_sync_service
from wfm_rolesync.settings import Settings, get_settings


def settings_dep(request: Request) -> Settings:
    # Set by `create_app`; falls back to the env-driven settings outside the app.
    return getattr(request.app.state, "settings", None) or get_settings()


def sessionmaker_from_app(request: Request) -> async_sessionmaker[AsyncSession]:
    # Created in the lifespan of `wfm_rolesync.api.app.create_app`.
    return request.app.state.sessionmaker  # type: ignore[attr-defined]


async def db_session(
    session_factory: async_sessionmaker[AsyncSession] = Depends(sessionmaker_from_app),
) -> AsyncIterator[AsyncSession]:
    # Read-only request session; role-store writes open their own transactions.
    async with session_factory() as session:
        yield session


def role_sync_service(
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(sessionmaker_from_app),
) -> RoleSyncService:
    state = request.app.state
    return build_role_sync_service(
        settings=state.settings,
        session_factory=session_factory,
        directory=state.directory,
        role_scopes=state.directory_config.role_scopes,
        presence=state.presence,
        locks=state.locks,
    )
