"""
wfm_rolesync.errors

Error taxonomy shared by the directory client, the local store and the engine.

Responsibilities:
- Separate broken setup (ConfigurationError) from flaky transport (DirectoryUnavailable).
- Give the engine typed failures to convert into terminal sync outcomes.
"""

from __future__ import annotations


class RoleSyncError(Exception):
    pass


class ConfigurationError(RoleSyncError):
    """
    Required configuration is absent or malformed. Fatal; never retried.
    """


class AuthConfigError(ConfigurationError):
    pass


class DirectoryError(RoleSyncError):
    pass


class DirectoryUnavailable(DirectoryError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PrincipalNotFound(DirectoryError):
    def __init__(self, email: str) -> None:
        super().__init__(f"User {email} not found in directory")
        self.email = email


class LocalStoreError(RoleSyncError):
    pass


class AuditWriteError(RoleSyncError):
    pass


# --- Module Notes -----------------------------------------------------------
# Policy denials are not exceptions; they are `sync.outcomes.DenialReason` values.
