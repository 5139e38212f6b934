"""
wfm_rolesync.api.routers.roles

Role administration endpoints.

Responsibilities:
- Run a role change through the synchronization engine and map its outcome to HTTP.
- Expose the local/directory consistency report for a principal.
- List the roles the caller may assign.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.status import (
    HTTP_200_OK,
    HTTP_400_BAD_REQUEST,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from wfm_rolesync.api.deps import role_sync_service
from wfm_rolesync.auth.deps import get_principal, require_roles
from wfm_rolesync.auth.models import Principal, UserRole
from wfm_rolesync.services.role_sync_service import RoleSyncService
from wfm_rolesync.sync.backoff import CancellationToken
from wfm_rolesync.sync.outcomes import DenialReason, SyncResult, SyncStatus
from wfm_rolesync.sync.policy import assignable_roles, may_remove

router = APIRouter(prefix="/v1/roles", tags=["roles"])

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

_STATUS_CODES: dict[SyncStatus, int] = {
    SyncStatus.principal_not_found: HTTP_404_NOT_FOUND,
    SyncStatus.aborted: HTTP_503_SERVICE_UNAVAILABLE,
    SyncStatus.committed: HTTP_200_OK,
    SyncStatus.rollback_required: HTTP_502_BAD_GATEWAY,
    SyncStatus.rollback_failed: HTTP_500_INTERNAL_SERVER_ERROR,
}

# Request problems rather than permission problems.
_BAD_REQUEST_REASONS = frozenset(
    {DenialReason.self_change_forbidden, DenialReason.no_op_role_change}
)


class ChangeRoleRequest(BaseModel):
    user_email: str = Field(min_length=3, max_length=320, pattern=_EMAIL_PATTERN)
    # null removes the principal from role-based access.
    new_role: UserRole | None


class ChangeRoleResponse(BaseModel):
    status: SyncStatus
    state: str
    message: str
    user_email: str
    previous_role: UserRole | None
    new_role: UserRole | None
    azure_ad_updated: bool
    rollback_required: bool
    attempts: int
    detail: str | None = None

    @classmethod
    def from_result(cls, result: SyncResult) -> ChangeRoleResponse:
        return cls(
            status=result.status,
            state=result.state.value,
            message=result.message,
            user_email=result.user_email,
            previous_role=result.previous_role,
            new_role=result.new_role,
            azure_ad_updated=result.azure_ad_updated,
            rollback_required=result.rollback_required,
            attempts=result.attempts,
            detail=result.detail,
        )


class RoleStatusResponse(BaseModel):
    email: str
    directory_id: str
    local_role: UserRole | None
    directory_roles: list[UserRole]
    unmapped_scope_ids: list[str]
    consistent: bool


class AssignableRolesResponse(BaseModel):
    roles: list[UserRole]
    can_remove: bool


@asynccontextmanager
async def _cancel_on_disconnect(request: Request) -> AsyncIterator[CancellationToken]:
    token = CancellationToken()

    async def watch() -> None:
        while not await request.is_disconnected():
            await asyncio.sleep(0.25)
        token.cancel()

    watcher = asyncio.create_task(watch())
    try:
        yield token
    finally:
        watcher.cancel()


@router.post("/change", response_model=ChangeRoleResponse)
async def change_role(
    request: Request,
    body: ChangeRoleRequest,
    actor: Principal = Depends(
        require_roles(UserRole.super_admin, UserRole.admin, UserRole.supervisor)
    ),
    svc: RoleSyncService = Depends(role_sync_service),
) -> JSONResponse:
    async with _cancel_on_disconnect(request) as cancel:
        result = await svc.change_role(
            actor=actor,
            user_email=body.user_email,
            new_role=body.new_role,
            cancel=cancel,
        )

    if result.status == SyncStatus.denied:
        code = (
            HTTP_400_BAD_REQUEST if result.reason in _BAD_REQUEST_REASONS else HTTP_403_FORBIDDEN
        )
        raise HTTPException(status_code=code, detail=result.message)

    return JSONResponse(
        status_code=_STATUS_CODES[result.status],
        content=ChangeRoleResponse.from_result(result).model_dump(mode="json"),
    )


@router.get(
    "/status",
    response_model=RoleStatusResponse,
    dependencies=[Depends(require_roles(UserRole.super_admin, UserRole.admin))],
)
async def role_status(
    email: str = Query(min_length=3, max_length=320, pattern=_EMAIL_PATTERN),
    svc: RoleSyncService = Depends(role_sync_service),
) -> RoleStatusResponse:
    report = await svc.inspect(email)
    return RoleStatusResponse(
        email=report.email,
        directory_id=report.directory_id,
        local_role=report.local_role,
        directory_roles=report.directory_roles,
        unmapped_scope_ids=report.unmapped_scope_ids,
        consistent=report.consistent,
    )


@router.get("/assignable", response_model=AssignableRolesResponse)
async def list_assignable_roles(
    principal: Principal = Depends(get_principal),
) -> AssignableRolesResponse:
    allowed = assignable_roles(principal.role)
    # Stable order for clients: enumeration order.
    return AssignableRolesResponse(
        roles=[role for role in UserRole if role in allowed],
        can_remove=may_remove(principal.role),
    )
