"""
wfm_rolesync.sync.outcomes

Tagged results produced by the synchronization engine.

Responsibilities:
- Enumerate engine states, terminal statuses and policy denial reasons.
- Carry everything the calling layer needs to map an outcome onto a response.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from wfm_rolesync.auth.models import UserRole


class DenialReason(enum.StrEnum):
    self_change_forbidden = "SelfChangeForbidden"
    super_admin_protected = "SuperAdminProtected"
    supervisor_scope_exceeded = "SupervisorScopeExceeded"
    insufficient_privilege = "InsufficientPrivilege"
    no_op_role_change = "NoOpRoleChange"


DENIAL_MESSAGES: dict[DenialReason, str] = {
    DenialReason.self_change_forbidden: "Cannot change own role",
    DenialReason.super_admin_protected: "Cannot change SuperAdmin role",
    DenialReason.supervisor_scope_exceeded: "Supervisors may only assign Employee role",
    DenialReason.insufficient_privilege: "Insufficient privileges to assign this role",
    DenialReason.no_op_role_change: "User already has this role",
}


class SyncState(enum.StrEnum):
    validating = "Validating"
    directory_cleared = "DirectoryCleared"
    local_updated = "LocalUpdated"
    directory_assigning = "DirectoryAssigning"
    committed = "Committed"
    rolled_back = "RolledBack"
    rollback_failed = "RollbackFailed"
    denied = "Denied"
    aborted = "Aborted"


class SyncStatus(enum.StrEnum):
    denied = "denied"
    principal_not_found = "principal_not_found"
    # Directory failed before any local mutation; pre-operation state intact.
    aborted = "aborted"
    committed = "committed"
    rollback_required = "rollback_required"
    # Compensation itself failed; needs an operator.
    rollback_failed = "rollback_failed"


@dataclass(frozen=True, slots=True)
class SyncResult:
    status: SyncStatus
    state: SyncState
    user_email: str
    message: str
    previous_role: UserRole | None = None
    new_role: UserRole | None = None
    azure_ad_updated: bool = False
    rollback_required: bool = False
    reason: DenialReason | None = None
    attempts: int = 0
    detail: str | None = None

    @classmethod
    def denied(
        cls, email: str, reason: DenialReason, *, previous_role: UserRole | None = None
    ) -> SyncResult:
        return cls(
            status=SyncStatus.denied,
            state=SyncState.denied,
            user_email=email,
            message=DENIAL_MESSAGES[reason],
            previous_role=previous_role,
            reason=reason,
        )

    @classmethod
    def not_found(cls, email: str, *, previous_role: UserRole | None = None) -> SyncResult:
        return cls(
            status=SyncStatus.principal_not_found,
            state=SyncState.aborted,
            user_email=email,
            message="User not found in directory",
            previous_role=previous_role,
        )

    @classmethod
    def aborted(
        cls, email: str, detail: str, *, previous_role: UserRole | None = None
    ) -> SyncResult:
        return cls(
            status=SyncStatus.aborted,
            state=SyncState.aborted,
            user_email=email,
            message="Directory unavailable; no changes were made",
            previous_role=previous_role,
            detail=detail,
        )


# --- Module Notes -----------------------------------------------------------
# Post-mutation results are built inside the engine, where attempts/detail are known.
