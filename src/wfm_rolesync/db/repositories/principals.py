"""
wfm_rolesync.db.repositories.principals

Repository for `User` rows (the authoritative local role field).

Responsibilities:
- Look up principals by email or directory id, ignoring soft-deleted rows.
- Upsert a role idempotently and soft-delete a principal.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wfm_rolesync.auth.models import UserRole, normalize_email
from wfm_rolesync.db.models import User, utcnow


class PrincipalRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_email(
        self, email: str, *, include_deleted: bool = False, for_update: bool = False
    ) -> User | None:
        stmt = select(User).where(User.email == normalize_email(email))
        if not include_deleted:
            stmt = stmt.where(User.deleted_at.is_(None))
        if for_update:
            stmt = stmt.with_for_update()
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def get_by_directory_id(
        self, directory_id: str, *, include_deleted: bool = False, for_update: bool = False
    ) -> User | None:
        stmt = select(User).where(User.directory_id == directory_id)
        if not include_deleted:
            stmt = stmt.where(User.deleted_at.is_(None))
        if for_update:
            stmt = stmt.with_for_update()
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def upsert_role(
        self,
        *,
        email: str,
        directory_id: str,
        full_name: str,
        role: UserRole,
    ) -> User:
        email = normalize_email(email)
        user = await self.get_by_email(email, include_deleted=True, for_update=True)
        if user is None:
            # Same directory account re-registered under a new address.
            user = await self.get_by_directory_id(
                directory_id, include_deleted=True, for_update=True
            )

        now = utcnow()
        if user is None:
            user = User(
                email=email,
                directory_id=directory_id,
                full_name=full_name,
                role=role,
                role_changed_at=now,
            )
            self._session.add(user)
            await self._session.flush()
            return user

        # Only a real transition moves role_changed_at; re-applying the same state is a no-op.
        if user.role != role or user.deleted_at is not None:
            user.role_changed_at = now
        user.role = role
        user.deleted_at = None
        user.email = email
        user.directory_id = directory_id
        if full_name:
            user.full_name = full_name
        await self._session.flush()
        return user

    async def soft_delete(self, email: str) -> User | None:
        user = await self.get_by_email(email, for_update=True)
        if user is None:
            return None
        now = utcnow()
        user.role = None
        user.role_changed_at = now
        user.deleted_at = now
        await self._session.flush()
        return user
