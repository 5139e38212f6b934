"""
wfm_rolesync.sync.engine

Role synchronization engine: keeps the local role store and the identity directory
converged on the same role for a principal.

States:
    Validating -> DirectoryCleared -> LocalUpdated -> DirectoryAssigning{1..N}
        -> Committed | RolledBack | RollbackFailed
    Validating -> Denied

Ordering:
- Directory grants are cleared before any local write, so a failure there leaves
  both stores exactly as they were.
- The local store (authorization source of truth) is written before the new grant,
  so a crash between the two leaves local decisions already correct.
- If the grant never lands, the local write is compensated with the same
  idempotent store operations and the caller gets `rollback_required`.
- Work on one principal is serialized per directory account. Writes land on the row
  that account already owns, so an alias address meets the same policy as the primary.

Every exit after validation is a `SyncResult`; the only exceptions that escape are
`ConfigurationError` and task cancellation (re-raised after compensation).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from structlog.stdlib import BoundLogger

from wfm_rolesync.auth.models import Principal, UserRole, normalize_email
from wfm_rolesync.db.models import AuditAction, AuditEntity
from wfm_rolesync.directory.config import RoleScopeMap
from wfm_rolesync.directory.models import DirectoryIdentity
from wfm_rolesync.errors import (
    AuthConfigError,
    DirectoryError,
    DirectoryUnavailable,
    LocalStoreError,
    PrincipalNotFound,
)
from wfm_rolesync.observability.logging import get_logger
from wfm_rolesync.sync.backoff import CancellationToken, linear_delay
from wfm_rolesync.sync.locks import KeyedLock
from wfm_rolesync.sync.outcomes import DenialReason, SyncResult, SyncState, SyncStatus
from wfm_rolesync.sync.policy import decide
from wfm_rolesync.sync.ports import (
    AuditEntry,
    AuditSink,
    PresenceNotifier,
    RoleDirectory,
    RoleStore,
)

log = get_logger(__name__)

ROLE_CHANGED = "User role changed successfully"
USER_REMOVED = "User removed successfully"
DIRECTORY_UPDATE_FAILED = "Failed to update directory roles; local role restored"
ROLLBACK_FAILED = "Failed to update directory roles and to restore the previous state"


@dataclass(frozen=True, slots=True)
class _AssignAttempts:
    assigned: bool
    attempts: int
    cancelled: bool = False
    error: str | None = None


class RoleSyncEngine:
    def __init__(
        self,
        *,
        store: RoleStore,
        directory: RoleDirectory,
        audit: AuditSink,
        presence: PresenceNotifier,
        role_scopes: RoleScopeMap,
        max_assign_attempts: int = 2,
        backoff_unit_seconds: float = 1.0,
        locks: KeyedLock | None = None,
    ) -> None:
        if max_assign_attempts < 1:
            raise ValueError("max_assign_attempts must be >= 1")
        self._store = store
        self._directory = directory
        self._audit = audit
        self._presence = presence
        self._scopes = role_scopes
        self._max_attempts = max_assign_attempts
        self._backoff_unit = backoff_unit_seconds
        self._locks = locks or KeyedLock()

    async def synchronize_role(
        self,
        *,
        actor: Principal,
        target_email: str,
        requested_role: UserRole | None,
        cancel: CancellationToken | None = None,
    ) -> SyncResult:
        email = normalize_email(target_email)
        bound = log.bind(
            actor_id=str(actor.id),
            target_email=email,
            requested_role=requested_role.value if requested_role else None,
        )

        # Decided before touching any store.
        if normalize_email(actor.email) == email:
            bound.info("role_sync.denied", reason=DenialReason.self_change_forbidden.value)
            return SyncResult.denied(email, DenialReason.self_change_forbidden)

        async with self._locks.hold(email):
            return await self._synchronize(
                actor=actor,
                email=email,
                requested_role=requested_role,
                cancel=cancel or CancellationToken(),
                bound=bound,
            )

    async def _synchronize(
        self,
        *,
        actor: Principal,
        email: str,
        requested_role: UserRole | None,
        cancel: CancellationToken,
        bound: BoundLogger,
    ) -> SyncResult:
        # Validating
        current = await self._store.find_by_email(email)
        previous_role = current.role if current else None
        denied = self._deny(actor, email, current, requested_role, bound)
        if denied is not None:
            return denied

        try:
            identity = await self._directory.resolve_identity(email)
        except PrincipalNotFound:
            bound.info("role_sync.principal_not_found")
            return SyncResult.not_found(email, previous_role=previous_role)
        except DirectoryUnavailable as e:
            bound.warning("role_sync.aborted", step="resolve_identity", error=str(e))
            return SyncResult.aborted(email, str(e), previous_role=previous_role)

        # An alias address can still point at the actor's own directory account.
        if identity.directory_id == actor.directory_id:
            bound.info("role_sync.denied", reason=DenialReason.self_change_forbidden.value)
            return SyncResult.denied(
                email, DenialReason.self_change_forbidden, previous_role=previous_role
            )

        # Different addresses of one directory account share a single local row.
        async with self._locks.hold(f"directory:{identity.directory_id}"):
            current = await self._store.find_by_email(email)
            if current is None:
                current = await self._store.find_by_directory_id(identity.directory_id)
            denied = self._deny(actor, email, current, requested_role, bound)
            if denied is not None:
                return denied
            if current is not None and current.email != email:
                bound = bound.bind(principal_email=current.email)
            return await self._apply(
                actor=actor,
                email=email,
                current=current,
                identity=identity,
                requested_role=requested_role,
                cancel=cancel,
                bound=bound,
            )

    def _deny(
        self,
        actor: Principal,
        email: str,
        current: Principal | None,
        requested_role: UserRole | None,
        bound: BoundLogger,
    ) -> SyncResult | None:
        previous_role = current.role if current else None
        decision = decide(
            actor.role,
            previous_role,
            requested_role,
            self_change=current is not None and current.id == actor.id,
        )
        if decision.reason is None:
            return None
        bound.info("role_sync.denied", reason=decision.reason.value)
        return SyncResult.denied(email, decision.reason, previous_role=previous_role)

    async def _apply(
        self,
        *,
        actor: Principal,
        email: str,
        current: Principal | None,
        identity: DirectoryIdentity,
        requested_role: UserRole | None,
        cancel: CancellationToken,
        bound: BoundLogger,
    ) -> SyncResult:
        previous_role = current.role if current else None
        # Writes go to the row the principal already owns, whatever address was used.
        key = current.email if current else email

        if requested_role is None:
            return await self._remove(
                actor=actor,
                email=email,
                key=key,
                current=current,
                identity=identity,
                bound=bound,
            )

        try:
            cleared = await self._directory.clear_role_grants(identity.directory_id)
        except DirectoryError as e:
            bound.warning("role_sync.aborted", step="clear_grants", error=str(e))
            return SyncResult.aborted(email, str(e), previous_role=previous_role)
        bound.debug(
            "role_sync.transition", state=SyncState.directory_cleared.value, cleared=cleared
        )

        try:
            updated = await self._store.upsert_role(
                email=key,
                directory_id=identity.directory_id,
                display_name=identity.display_name,
                role=requested_role,
            )
        except LocalStoreError as e:
            bound.error("role_sync.local_update_failed", error=str(e))
            return await self._restore_directory(
                email=email,
                current=current,
                identity=identity,
                attempted=requested_role,
                detail=f"local store write failed: {e}",
                bound=bound,
            )
        bound.debug("role_sync.transition", state=SyncState.local_updated.value)

        try:
            outcome = await self._assign_with_retry(
                directory_id=identity.directory_id,
                role=requested_role,
                cancel=cancel,
                bound=bound,
            )
        except asyncio.CancelledError:
            bound.warning("role_sync.cancelled", state=SyncState.directory_assigning.value)
            await asyncio.shield(
                self._rollback_local(key=key, current=current, identity=identity, bound=bound)
            )
            raise

        if not outcome.assigned:
            detail = "cancelled" if outcome.cancelled else outcome.error
            return await self._compensate(
                email=email,
                key=key,
                current=current,
                identity=identity,
                attempted=requested_role,
                attempts=outcome.attempts,
                detail=detail,
                bound=bound,
            )

        await self._audit.record(
            AuditEntry(
                entity=AuditEntity.user,
                entity_id=str(updated.id),
                action=AuditAction.role_change,
                changed_by_id=str(actor.id),
                data_before=current.snapshot() if current else None,
                data_after=updated.snapshot(),
            )
        )
        self._presence.invalidate(key)

        bound.info(
            "role_sync.committed",
            previous_role=previous_role.value if previous_role else None,
            attempts=outcome.attempts,
        )
        return SyncResult(
            status=SyncStatus.committed,
            state=SyncState.committed,
            user_email=email,
            message=ROLE_CHANGED,
            previous_role=previous_role,
            new_role=requested_role,
            azure_ad_updated=True,
            rollback_required=False,
            attempts=outcome.attempts,
        )

    async def _remove(
        self,
        *,
        actor: Principal,
        email: str,
        key: str,
        current: Principal | None,
        identity: DirectoryIdentity,
        bound: BoundLogger,
    ) -> SyncResult:
        previous_role = current.role if current else None
        try:
            cleared = await self._directory.clear_role_grants(identity.directory_id)
        except DirectoryError as e:
            bound.warning("role_sync.aborted", step="clear_grants", error=str(e))
            return SyncResult.aborted(email, str(e), previous_role=previous_role)

        try:
            await self._store.remove_principal(key)
        except LocalStoreError as e:
            bound.error("role_sync.local_remove_failed", error=str(e))
            return await self._restore_directory(
                email=email,
                current=current,
                identity=identity,
                attempted=None,
                detail=f"local store delete failed: {e}",
                bound=bound,
            )

        await self._audit.record(
            AuditEntry(
                entity=AuditEntity.user,
                entity_id=str(current.id) if current else identity.directory_id,
                action=AuditAction.delete,
                changed_by_id=str(actor.id),
                data_before=current.snapshot() if current else None,
                data_after=None,
            )
        )
        self._presence.invalidate(key)

        bound.info(
            "role_sync.removed",
            previous_role=previous_role.value if previous_role else None,
            cleared=cleared,
        )
        return SyncResult(
            status=SyncStatus.committed,
            state=SyncState.committed,
            user_email=email,
            message=USER_REMOVED,
            previous_role=previous_role,
            new_role=None,
            azure_ad_updated=True,
            rollback_required=False,
        )

    async def _assign_with_retry(
        self,
        *,
        directory_id: str,
        role: UserRole,
        cancel: CancellationToken,
        bound: BoundLogger,
    ) -> _AssignAttempts:
        scope_id = self._scopes.scope_for(role)
        error: str | None = None
        for attempt in range(1, self._max_attempts + 1):
            if cancel.cancelled:
                return _AssignAttempts(False, attempt - 1, cancelled=True, error=error)
            try:
                await self._directory.assign_role_grant(directory_id, scope_id)
                return _AssignAttempts(True, attempt)
            except (DirectoryError, AuthConfigError) as e:
                error = str(e)
                bound.warning(
                    "role_sync.assign_failed",
                    attempt=attempt,
                    max_attempts=self._max_attempts,
                    error=error,
                )
            if attempt < self._max_attempts:
                if not await cancel.sleep(linear_delay(attempt, self._backoff_unit)):
                    return _AssignAttempts(False, attempt, cancelled=True, error=error)
        return _AssignAttempts(False, self._max_attempts, error=error)

    async def _rollback_local(
        self,
        *,
        key: str,
        current: Principal | None,
        identity: DirectoryIdentity,
        bound: BoundLogger,
    ) -> bool:
        try:
            if current is None or current.role is None:
                await self._store.remove_principal(key)
            else:
                await self._store.upsert_role(
                    email=key,
                    directory_id=identity.directory_id,
                    display_name=current.full_name,
                    role=current.role,
                )
        except LocalStoreError as e:
            bound.critical(
                "role_sync.rollback_failed",
                error=str(e),
                restore_role=current.role.value if current and current.role else None,
            )
            return False
        return True

    async def _compensate(
        self,
        *,
        email: str,
        key: str,
        current: Principal | None,
        identity: DirectoryIdentity,
        attempted: UserRole,
        attempts: int,
        detail: str | None,
        bound: BoundLogger,
    ) -> SyncResult:
        previous_role = current.role if current else None
        restored = await self._rollback_local(
            key=key, current=current, identity=identity, bound=bound
        )
        if restored:
            bound.warning("role_sync.rolled_back", attempts=attempts, detail=detail)
        return SyncResult(
            status=SyncStatus.rollback_required if restored else SyncStatus.rollback_failed,
            state=SyncState.rolled_back if restored else SyncState.rollback_failed,
            user_email=email,
            message=DIRECTORY_UPDATE_FAILED if restored else ROLLBACK_FAILED,
            previous_role=previous_role,
            new_role=attempted,
            azure_ad_updated=False,
            rollback_required=True,
            attempts=attempts,
            detail=detail,
        )

    async def _restore_directory(
        self,
        *,
        email: str,
        current: Principal | None,
        identity: DirectoryIdentity,
        attempted: UserRole | None,
        detail: str,
        bound: BoundLogger,
    ) -> SyncResult:
        # Local write failed after grants were cleared: put the previous grant back.
        previous_role = current.role if current else None
        restored = True
        if previous_role is not None:
            try:
                await self._directory.assign_role_grant(
                    identity.directory_id, self._scopes.scope_for(previous_role)
                )
            except (DirectoryError, AuthConfigError) as e:
                restored = False
                bound.critical(
                    "role_sync.rollback_failed",
                    error=str(e),
                    restore_role=previous_role.value,
                )
        return SyncResult(
            status=SyncStatus.rollback_required if restored else SyncStatus.rollback_failed,
            state=SyncState.rolled_back if restored else SyncState.rollback_failed,
            user_email=email,
            message=DIRECTORY_UPDATE_FAILED if restored else ROLLBACK_FAILED,
            previous_role=previous_role,
            new_role=attempted,
            azure_ad_updated=False,
            rollback_required=True,
            detail=detail,
        )


# --- Module Notes -----------------------------------------------------------
# No second-order rollback: a failed compensation is logged CRITICAL and reported as
# `rollback_failed`; operators re-invoke the operation once the cause is fixed.
