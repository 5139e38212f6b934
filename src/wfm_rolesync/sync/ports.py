"""
wfm_rolesync.sync.ports

Interfaces the engine depends on, plus the audit entry value type.

Responsibilities:
- Let the engine run against SQL/HTTP adapters in production and in-memory fakes in tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from wfm_rolesync.auth.models import Principal, UserRole
from wfm_rolesync.db.models import AuditAction, AuditEntity
from wfm_rolesync.directory.models import DirectoryIdentity


class RoleStore(Protocol):
    async def find_by_email(self, email: str) -> Principal | None: ...

    async def find_by_directory_id(self, directory_id: str) -> Principal | None: ...

    async def upsert_role(
        self, *, email: str, directory_id: str, display_name: str, role: UserRole
    ) -> Principal: ...

    async def remove_principal(self, email: str) -> None: ...


class RoleDirectory(Protocol):
    async def resolve_identity(self, email: str) -> DirectoryIdentity: ...

    async def clear_role_grants(self, directory_id: str) -> int: ...

    async def assign_role_grant(self, directory_id: str, role_scope_id: str) -> None: ...


@dataclass(frozen=True, slots=True)
class AuditEntry:
    entity: AuditEntity
    entity_id: str
    action: AuditAction
    changed_by_id: str
    data_before: dict[str, Any] | None
    data_after: dict[str, Any] | None


class AuditSink(Protocol):
    async def record(self, entry: AuditEntry) -> None:
        """Must not raise."""
        ...


class PresenceNotifier(Protocol):
    def invalidate(self, email: str) -> None:
        """Schedule invalidation and return immediately."""
        ...
