"""
wfm_rolesync.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for all layers.
- Hide secrets from repr/logging (JWT secret, directory client secret).
- Assemble and validate the directory configuration once, at startup.
- Offer a cached settings instance for dependency injection.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from wfm_rolesync.auth.models import UserRole
from wfm_rolesync.directory.config import DirectoryConfig, RoleScopeMap
from wfm_rolesync.errors import ConfigurationError

_ENV_PREFIX = "WFM_"


class Settings(BaseSettings):
    """
    Enterprise pattern:
    - Strict env-driven configuration
    - Defaults safe for local dev
    - Single settings object injected across layers
    """

    model_config = SettingsConfigDict(env_prefix=_ENV_PREFIX, case_sensitive=False)

    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "wfm-rolesync"
    log_level: str = "INFO"

    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Auth
    jwt_alg: str = "HS256"
    jwt_issuer: str = "wfm-rolesync"
    jwt_audience: str = "wfm-api"
    jwt_secret: str = Field(default="dev-secret-change-me", repr=False)

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./wfm.db"

    # Identity directory
    directory_tenant_id: str | None = None
    directory_client_id: str | None = None
    directory_client_secret: str | None = Field(default=None, repr=False)
    directory_service_principal_id: str | None = None
    directory_authority_url: str = "https://login.microsoftonline.com"
    directory_graph_url: str = "https://graph.microsoft.com/v1.0"
    directory_timeout_seconds: float = 30.0

    # Directory app-role id per local role
    role_scope_super_admin: str | None = None
    role_scope_admin: str | None = None
    role_scope_supervisor: str | None = None
    role_scope_contact_manager: str | None = None
    role_scope_employee: str | None = None

    # Role synchronization engine
    role_assign_max_attempts: int = Field(default=2, ge=1)
    role_assign_backoff_seconds: float = Field(default=1.0, ge=0)
    audit_write_timeout_seconds: float = Field(default=5.0, gt=0)
    presence_timeout_seconds: float = Field(default=5.0, gt=0)

    def directory_config(self) -> DirectoryConfig:
        required = {
            "directory_tenant_id": self.directory_tenant_id,
            "directory_client_id": self.directory_client_id,
            "directory_client_secret": self.directory_client_secret,
            "directory_service_principal_id": self.directory_service_principal_id,
            "role_scope_super_admin": self.role_scope_super_admin,
            "role_scope_admin": self.role_scope_admin,
            "role_scope_supervisor": self.role_scope_supervisor,
            "role_scope_contact_manager": self.role_scope_contact_manager,
            "role_scope_employee": self.role_scope_employee,
        }
        missing = [name for name, value in required.items() if not (value or "").strip()]
        if missing:
            names = ", ".join(f"{_ENV_PREFIX}{name.upper()}" for name in missing)
            raise ConfigurationError(f"Missing required directory configuration: {names}")

        scopes = RoleScopeMap(
            super_admin=self.role_scope_super_admin.strip(),  # type: ignore[union-attr]
            admin=self.role_scope_admin.strip(),  # type: ignore[union-attr]
            supervisor=self.role_scope_supervisor.strip(),  # type: ignore[union-attr]
            contact_manager=self.role_scope_contact_manager.strip(),  # type: ignore[union-attr]
            employee=self.role_scope_employee.strip(),  # type: ignore[union-attr]
        )
        if len({scopes.scope_for(role) for role in UserRole}) != len(UserRole):
            raise ConfigurationError("Role scope identifiers must be distinct per role")

        return DirectoryConfig(
            tenant_id=self.directory_tenant_id.strip(),  # type: ignore[union-attr]
            client_id=self.directory_client_id.strip(),  # type: ignore[union-attr]
            client_secret=self.directory_client_secret.strip(),  # type: ignore[union-attr]
            service_principal_id=self.directory_service_principal_id.strip(),  # type: ignore[union-attr]
            role_scopes=scopes,
            authority_url=self.directory_authority_url,
            graph_url=self.directory_graph_url,
            timeout_seconds=self.directory_timeout_seconds,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each request dependency.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# `directory_config()` is called from the app lifespan so a broken setup stops the
# process before it serves traffic.
