"""
wfm_rolesync.db.models

Persistence schema for the local role store.

Responsibilities:
- Define ORM models:
  - User: authoritative `role` per principal (soft-deletable)
  - AuditLog: append-only record of state transitions
  - Presence: session/presence status, invalidated after role mutations
"""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Enum, Index, String, Uuid as SAUuid
from sqlalchemy.orm import Mapped, mapped_column

from wfm_rolesync.auth.models import Principal, UserRole
from wfm_rolesync.db.base import Base


def utcnow() -> datetime:
    # Naive UTC timestamps; every writer goes through this helper.
    return datetime.now(tz=UTC).replace(tzinfo=None)


class AuditEntity(enum.StrEnum):
    user = "USER"
    command = "COMMAND"
    recording = "RECORDING"
    snapshot = "SNAPSHOT"
    contact_manager = "CONTACT_MANAGER"


class AuditAction(enum.StrEnum):
    create = "CREATE"
    update = "UPDATE"
    delete = "DELETE"
    role_change = "ROLE_CHANGE"


class PresenceStatus(enum.StrEnum):
    online = "online"
    offline = "offline"


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    directory_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    # Stored lower-case; lookups normalize before querying.
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(String(256), nullable=False, default="")

    role: Mapped[UserRole | None] = mapped_column(Enum(UserRole), nullable=True, index=True)
    role_changed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)

    def as_principal(self) -> Principal:
        return Principal(
            id=self.id,
            email=self.email,
            directory_id=self.directory_id,
            full_name=self.full_name,
            role=self.role,
            role_changed_at=self.role_changed_at,
            deleted_at=self.deleted_at,
        )


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    entity: Mapped[AuditEntity] = mapped_column(Enum(AuditEntity), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[AuditAction] = mapped_column(Enum(AuditAction), nullable=False, index=True)
    changed_by_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    data_before: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    data_after: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, index=True)

    __table_args__ = (Index("ix_audit_logs_entity_created", "entity", "entity_id", "created_at"),)


class Presence(Base):
    __tablename__ = "presence"

    email: Mapped[str] = mapped_column(String(320), primary_key=True)
    status: Mapped[PresenceStatus] = mapped_column(Enum(PresenceStatus), nullable=False)
    last_activity_at: Mapped[datetime | None] = mapped_column(nullable=True)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)


# --- Module Notes -----------------------------------------------------------
# Audit rows carry string entity/actor ids (no foreign keys) so a soft-deleted or
# never-local principal can still be referenced.
