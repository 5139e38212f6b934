"""
wfm_rolesync.services.role_sync_service

Role synchronization service (composition + read-side views).

Responsibilities:
- Wire the engine to the SQL store, SQL audit log, presence invalidator and directory client.
- Run role changes on behalf of an authenticated actor.
- Report whether the local role and the directory grants currently agree.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wfm_rolesync.auth.models import Principal, UserRole, normalize_email
from wfm_rolesync.directory.client import DirectoryClient
from wfm_rolesync.directory.config import RoleScopeMap
from wfm_rolesync.services.audit_log import SqlAuditLog
from wfm_rolesync.services.presence import PresenceInvalidator
from wfm_rolesync.services.role_store import SqlRoleStore
from wfm_rolesync.settings import Settings
from wfm_rolesync.sync.backoff import CancellationToken
from wfm_rolesync.sync.engine import RoleSyncEngine
from wfm_rolesync.sync.locks import KeyedLock
from wfm_rolesync.sync.outcomes import SyncResult


@dataclass(frozen=True, slots=True)
class RoleConsistencyReport:
    email: str
    directory_id: str
    local_role: UserRole | None
    directory_roles: list[UserRole] = field(default_factory=list)
    # Grants on our service principal that map to no configured role.
    unmapped_scope_ids: list[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        if self.unmapped_scope_ids:
            return False
        if self.local_role is None:
            return not self.directory_roles
        return self.directory_roles == [self.local_role]


class RoleSyncService:
    def __init__(
        self,
        *,
        engine: RoleSyncEngine,
        store: SqlRoleStore,
        directory: DirectoryClient,
        role_scopes: RoleScopeMap,
    ) -> None:
        self._engine = engine
        self._store = store
        self._directory = directory
        self._scopes = role_scopes

    async def change_role(
        self,
        *,
        actor: Principal,
        user_email: str,
        new_role: UserRole | None,
        cancel: CancellationToken | None = None,
    ) -> SyncResult:
        return await self._engine.synchronize_role(
            actor=actor,
            target_email=user_email,
            requested_role=new_role,
            cancel=cancel,
        )

    async def inspect(self, email: str) -> RoleConsistencyReport:
        # Raises PrincipalNotFound / DirectoryUnavailable; mapped by the API layer.
        email = normalize_email(email)
        identity = await self._directory.resolve_identity(email)
        local = await self._store.find_by_email(email)
        grants = await self._directory.list_role_grants(identity.directory_id)

        roles: list[UserRole] = []
        unmapped: list[str] = []
        for grant in grants:
            role = self._scopes.role_for(grant.role_scope_id)
            if role is None:
                unmapped.append(grant.role_scope_id)
            elif role not in roles:
                roles.append(role)

        return RoleConsistencyReport(
            email=email,
            directory_id=identity.directory_id,
            local_role=local.role if local else None,
            directory_roles=roles,
            unmapped_scope_ids=unmapped,
        )


def build_role_sync_service(
    *,
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    directory: DirectoryClient,
    role_scopes: RoleScopeMap,
    presence: PresenceInvalidator,
    locks: KeyedLock,
) -> RoleSyncService:
    store = SqlRoleStore(session_factory)
    engine = RoleSyncEngine(
        store=store,
        directory=directory,
        audit=SqlAuditLog(session_factory, timeout_seconds=settings.audit_write_timeout_seconds),
        presence=presence,
        role_scopes=role_scopes,
        max_assign_attempts=settings.role_assign_max_attempts,
        backoff_unit_seconds=settings.role_assign_backoff_seconds,
        locks=locks,
    )
    return RoleSyncService(
        engine=engine, store=store, directory=directory, role_scopes=role_scopes
    )


# --- Module Notes -----------------------------------------------------------
# The service is built per request from app-scoped parts (directory client, locks,
# presence tasks), so the keyed lock is shared across requests in the process.
