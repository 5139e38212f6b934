"""
wfm_rolesync.directory.config

Typed directory configuration.

Responsibilities:
- Enumerate the fixed role set and its directory scope identifier.
- Hold the client-credentials needed to call the directory.
"""

from __future__ import annotations

from dataclasses import dataclass

from wfm_rolesync.auth.models import UserRole


@dataclass(frozen=True, slots=True)
class RoleScopeMap:
    super_admin: str
    admin: str
    supervisor: str
    contact_manager: str
    employee: str

    def scope_for(self, role: UserRole) -> str:
        return {
            UserRole.super_admin: self.super_admin,
            UserRole.admin: self.admin,
            UserRole.supervisor: self.supervisor,
            UserRole.contact_manager: self.contact_manager,
            UserRole.employee: self.employee,
        }[role]

    def role_for(self, scope_id: str) -> UserRole | None:
        for role in UserRole:
            if self.scope_for(role) == scope_id:
                return role
        return None


@dataclass(frozen=True, slots=True)
class DirectoryConfig:
    tenant_id: str
    client_id: str
    client_secret: str
    service_principal_id: str
    role_scopes: RoleScopeMap
    authority_url: str = "https://login.microsoftonline.com"
    graph_url: str = "https://graph.microsoft.com/v1.0"
    timeout_seconds: float = 30.0

    def __repr__(self) -> str:
        # Never render the client secret.
        return (
            f"DirectoryConfig(tenant_id={self.tenant_id!r}, client_id={self.client_id!r}, "
            f"service_principal_id={self.service_principal_id!r})"
        )

    @property
    def token_url(self) -> str:
        return f"{self.authority_url.rstrip('/')}/{self.tenant_id}/oauth2/v2.0/token"

    @property
    def token_scope(self) -> str:
        # ".default" scope of the Graph resource root (strip the API version path).
        root = self.graph_url.rstrip("/").rsplit("/", 1)[0]
        return f"{root}/.default"


# --- Module Notes -----------------------------------------------------------
# Built once at startup by `Settings.directory_config()`; missing values fail fast there.
