"""
wfm_rolesync.services.role_store

SQL-backed local role store.

Responsibilities:
- Run every store operation in its own short transaction.
- Hand back immutable `Principal` snapshots instead of live ORM rows.
- Translate SQLAlchemy failures into `LocalStoreError`.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wfm_rolesync.auth.models import Principal, UserRole
from wfm_rolesync.db.repositories.principals import PrincipalRepo
from wfm_rolesync.errors import LocalStoreError
from wfm_rolesync.observability.logging import get_logger

log = get_logger(__name__)


class SqlRoleStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_by_email(self, email: str) -> Principal | None:
        try:
            async with self._session_factory() as session:
                user = await PrincipalRepo(session).get_by_email(email)
                return user.as_principal() if user else None
        except SQLAlchemyError as e:
            raise LocalStoreError(f"lookup failed for {email}: {e}") from e

    async def find_by_directory_id(self, directory_id: str) -> Principal | None:
        try:
            async with self._session_factory() as session:
                user = await PrincipalRepo(session).get_by_directory_id(directory_id)
                return user.as_principal() if user else None
        except SQLAlchemyError as e:
            raise LocalStoreError(f"lookup failed for directory id {directory_id}: {e}") from e

    async def upsert_role(
        self, *, email: str, directory_id: str, display_name: str, role: UserRole
    ) -> Principal:
        # A concurrent first insert of the same principal loses on the unique index;
        # the second pass finds the winner's row and updates it.
        for attempt in (1, 2):
            try:
                async with self._session_factory() as session, session.begin():
                    user = await PrincipalRepo(session).upsert_role(
                        email=email,
                        directory_id=directory_id,
                        full_name=display_name,
                        role=role,
                    )
                    return user.as_principal()
            except IntegrityError as e:
                if attempt == 2:
                    raise LocalStoreError(f"upsert failed for {email}: {e}") from e
                log.info("role_store.upsert_conflict", email=email)
            except SQLAlchemyError as e:
                raise LocalStoreError(f"upsert failed for {email}: {e}") from e
        raise AssertionError("unreachable")

    async def remove_principal(self, email: str) -> None:
        try:
            async with self._session_factory() as session, session.begin():
                removed = await PrincipalRepo(session).soft_delete(email)
        except SQLAlchemyError as e:
            raise LocalStoreError(f"delete failed for {email}: {e}") from e
        if removed is None:
            log.debug("role_store.remove_absent", email=email)
