"""
tests.conftest

Shared fixtures: in-memory engine collaborators, principals and test settings.
"""

from __future__ import annotations

import asyncio
import dataclasses
import uuid
from collections.abc import Callable
from pathlib import Path

import pytest

from wfm_rolesync.auth.models import Principal, UserRole
from wfm_rolesync.db.models import utcnow
from wfm_rolesync.directory.config import RoleScopeMap
from wfm_rolesync.directory.models import DirectoryIdentity
from wfm_rolesync.errors import DirectoryUnavailable, LocalStoreError, PrincipalNotFound
from wfm_rolesync.settings import Settings
from wfm_rolesync.sync.ports import AuditEntry

SCOPES = RoleScopeMap(
    super_admin="scope-sa",
    admin="scope-admin",
    supervisor="scope-supervisor",
    contact_manager="scope-cm",
    employee="scope-employee",
)


def make_principal(
    email: str, role: UserRole | None, *, directory_id: str | None = None
) -> Principal:
    return Principal(
        id=uuid.uuid4(),
        email=email,
        directory_id=directory_id or f"dir-{email}",
        full_name=email.split("@")[0].title(),
        role=role,
        role_changed_at=utcnow(),
    )


class FakeStore:
    def __init__(self, *principals: Principal) -> None:
        self.rows: dict[str, Principal] = {p.email: p for p in principals}
        self.calls: list[tuple[str, ...]] = []
        # 1-based upsert call numbers that raise.
        self.fail_upsert_calls: set[int] = set()
        self.fail_remove = False
        self._upserts = 0

    async def find_by_email(self, email: str) -> Principal | None:
        self.calls.append(("find_by_email", email))
        await asyncio.sleep(0)
        return self.rows.get(email)

    async def find_by_directory_id(self, directory_id: str) -> Principal | None:
        self.calls.append(("find_by_directory_id", directory_id))
        await asyncio.sleep(0)
        return next((p for p in self.rows.values() if p.directory_id == directory_id), None)

    async def upsert_role(
        self, *, email: str, directory_id: str, display_name: str, role: UserRole
    ) -> Principal:
        self._upserts += 1
        self.calls.append(("upsert_role", email, role.value))
        await asyncio.sleep(0)
        if self._upserts in self.fail_upsert_calls:
            raise LocalStoreError("database is locked")
        current = self.rows.get(email)
        if current is None:
            updated = Principal(
                id=uuid.uuid4(),
                email=email,
                directory_id=directory_id,
                full_name=display_name,
                role=role,
                role_changed_at=utcnow(),
            )
        elif current.role == role:
            updated = current
        else:
            updated = dataclasses.replace(current, role=role, role_changed_at=utcnow())
        self.rows[email] = updated
        return updated

    async def remove_principal(self, email: str) -> None:
        self.calls.append(("remove_principal", email))
        await asyncio.sleep(0)
        if self.fail_remove:
            raise LocalStoreError("database is locked")
        self.rows.pop(email, None)

    def role_of(self, email: str) -> UserRole | None:
        p = self.rows.get(email)
        return p.role if p else None


class FakeDirectory:
    def __init__(self, *identities: DirectoryIdentity) -> None:
        self.identities = {i.email: i for i in identities}
        self.grants: dict[str, list[str]] = {}
        self.calls: list[tuple[str, ...]] = []
        self.assign_failures = 0
        self.clear_error: Exception | None = None
        self.resolve_error: Exception | None = None
        self.on_assign: Callable[[], None] | None = None

    async def resolve_identity(self, email: str) -> DirectoryIdentity:
        self.calls.append(("resolve_identity", email))
        await asyncio.sleep(0)
        if self.resolve_error is not None:
            raise self.resolve_error
        try:
            return self.identities[email]
        except KeyError:
            raise PrincipalNotFound(email) from None

    async def clear_role_grants(self, directory_id: str) -> int:
        self.calls.append(("clear_role_grants", directory_id))
        await asyncio.sleep(0)
        if self.clear_error is not None:
            raise self.clear_error
        return len(self.grants.pop(directory_id, []))

    async def assign_role_grant(self, directory_id: str, role_scope_id: str) -> None:
        self.calls.append(("assign_role_grant", directory_id, role_scope_id))
        if self.on_assign is not None:
            self.on_assign()
        await asyncio.sleep(0)
        if self.assign_failures > 0:
            self.assign_failures -= 1
            raise DirectoryUnavailable("POST appRoleAssignedTo returned HTTP 503", status_code=503)
        held = self.grants.setdefault(directory_id, [])
        if role_scope_id not in held:
            held.append(role_scope_id)

    def scopes_of(self, directory_id: str) -> list[str]:
        return list(self.grants.get(directory_id, []))


class FakeAudit:
    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []

    async def record(self, entry: AuditEntry) -> None:
        self.entries.append(entry)


class FakePresence:
    def __init__(self) -> None:
        self.invalidated: list[str] = []

    def invalidate(self, email: str) -> None:
        self.invalidated.append(email)


def identity_for(principal: Principal) -> DirectoryIdentity:
    return DirectoryIdentity(
        directory_id=principal.directory_id,
        email=principal.email,
        display_name=principal.full_name,
    )


@pytest.fixture
def audit() -> FakeAudit:
    return FakeAudit()


@pytest.fixture
def presence() -> FakePresence:
    return FakePresence()


def directory_env() -> dict[str, str]:
    return {
        "directory_tenant_id": "tenant-1",
        "directory_client_id": "client-1",
        "directory_client_secret": "s3cret",
        "directory_service_principal_id": "sp-1",
        "directory_authority_url": "https://login.test",
        "directory_graph_url": "https://graph.test/v1.0",
        "role_scope_super_admin": SCOPES.super_admin,
        "role_scope_admin": SCOPES.admin,
        "role_scope_supervisor": SCOPES.supervisor,
        "role_scope_contact_manager": SCOPES.contact_manager,
        "role_scope_employee": SCOPES.employee,
    }


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        env="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'wfm.db'}",
        role_assign_backoff_seconds=0,
        **directory_env(),
    )
