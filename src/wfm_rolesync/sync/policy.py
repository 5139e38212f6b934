"""
wfm_rolesync.sync.policy

Role change policy. Pure: no I/O, no clock, no store access.

Rules, in order:
1. Deny self-change.
2. Deny any change to a current SuperAdmin, whoever the actor is.
3. SuperAdmin actors may assign anything.
4. Admin actors may assign anything except SuperAdmin.
5. Supervisor actors may only assign Employee (including to brand-new principals).
6. Anyone else is denied.
7. Deny a change to the role the target already holds.

Rule 5 inspects only the requested role, so a Supervisor can move an existing Admin
down to Employee.
"""

from __future__ import annotations

from dataclasses import dataclass

from wfm_rolesync.auth.models import UserRole
from wfm_rolesync.sync.outcomes import DenialReason


@dataclass(frozen=True, slots=True)
class Decision:
    reason: DenialReason | None = None

    @property
    def permitted(self) -> bool:
        return self.reason is None


PERMIT = Decision()


def assignable_roles(acting_role: UserRole | None) -> frozenset[UserRole]:
    if acting_role == UserRole.super_admin:
        return frozenset(UserRole)
    if acting_role == UserRole.admin:
        return frozenset(UserRole) - {UserRole.super_admin}
    if acting_role == UserRole.supervisor:
        return frozenset({UserRole.employee})
    return frozenset()


def may_remove(acting_role: UserRole | None) -> bool:
    return acting_role in (UserRole.super_admin, UserRole.admin)


def decide(
    acting_role: UserRole | None,
    current_role: UserRole | None,
    requested_role: UserRole | None,
    *,
    self_change: bool = False,
) -> Decision:
    """
    `current_role=None` means the target has no local principal yet;
    `requested_role=None` means removal from role-based access.
    """

    if self_change:
        return Decision(DenialReason.self_change_forbidden)
    if current_role == UserRole.super_admin:
        return Decision(DenialReason.super_admin_protected)

    if acting_role == UserRole.super_admin:
        pass
    elif acting_role == UserRole.admin:
        if requested_role == UserRole.super_admin:
            return Decision(DenialReason.insufficient_privilege)
    elif acting_role == UserRole.supervisor:
        if requested_role != UserRole.employee:
            return Decision(DenialReason.supervisor_scope_exceeded)
    else:
        return Decision(DenialReason.insufficient_privilege)

    if current_role is not None and requested_role == current_role:
        return Decision(DenialReason.no_op_role_change)
    return PERMIT
