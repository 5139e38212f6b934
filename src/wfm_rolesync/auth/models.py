"""
wfm_rolesync.auth.models

Auth domain models.

Responsibilities:
- Define the closed role enumeration (`UserRole`).
- Define the identity snapshot (`Principal`) shared by API, services and the engine.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any


class UserRole(enum.StrEnum):
    # Values match the directory app-role names and are stored in the DB.
    super_admin = "SuperAdmin"
    admin = "Admin"
    supervisor = "Supervisor"
    contact_manager = "ContactManager"
    employee = "Employee"


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass(frozen=True, slots=True)
class Principal:
    """
    Immutable snapshot of a user as held by the local role store.
    """

    id: uuid.UUID
    email: str
    directory_id: str
    full_name: str
    role: UserRole | None
    role_changed_at: datetime | None = None
    deleted_at: datetime | None = None

    def snapshot(self) -> dict[str, Any]:
        # JSON-shaped view used for audit dataBefore/dataAfter.
        return {
            "id": str(self.id),
            "email": self.email,
            "directoryId": self.directory_id,
            "fullName": self.full_name,
            "role": self.role.value if self.role is not None else None,
            "roleChangedAt": self.role_changed_at.isoformat() if self.role_changed_at else None,
            "deletedAt": self.deleted_at.isoformat() if self.deleted_at else None,
        }


# --- Module Notes -----------------------------------------------------------
# Keep this model free of ORM imports; the role policy depends on it and must stay pure.
