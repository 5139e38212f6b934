"""
wfm_rolesync.directory.models

Value types returned by the directory client.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta


@dataclass(frozen=True, slots=True)
class Token:
    access_token: str
    expires_at: datetime

    def is_fresh(self, *, leeway: timedelta = timedelta(minutes=2)) -> bool:
        return datetime.now(tz=UTC) + leeway < self.expires_at


@dataclass(frozen=True, slots=True)
class DirectoryIdentity:
    directory_id: str
    email: str
    display_name: str = ""


@dataclass(frozen=True, slots=True)
class RoleGrant:
    # One app-role assignment on our service principal.
    id: str
    principal_id: str
    role_scope_id: str
