"""
Credential store backed by the ``principals`` table.

All lookups ignore soft-deleted principals. Email uniqueness is enforced by
the partial unique index on the table, so two concurrent registrations with
the same address cannot both commit.
"""
from datetime import datetime
from typing import Any, Iterable, List, Optional, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from school_core.auth.errors import DuplicateEmailError, ExternalIdConflictError, InvalidStatusError, NotFoundError
from school_core.auth.models import Principal, PrincipalStatus, Role
from school_core.base_service import utcnow


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _escape_like(value: str) -> str:
    # search text is matched literally
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class CredentialStore:
    """
    Persistence operations on principals for one database session.

    Args:
        db: Database session owned by the caller
    """
    def __init__(self, db: AsyncSession):
        self.db = db

    def _live(self):
        return select(Principal).where(Principal.deleted_at.is_(None))

    async def find_by_email(self, email: str, roles: Optional[Iterable[Role]] = None) -> Optional[Principal]:
        """
        Find a live principal by email.

        Args:
            email: Email address, compared case-insensitively
            roles: Only match principals holding one of these roles
        """
        query = self._live().where(Principal.email == normalize_email(email))
        if roles is not None:
            query = query.where(Principal.role.in_(list(roles)))
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def find_by_id(self, principal_id: str) -> Optional[Principal]:
        result = await self.db.execute(self._live().where(Principal.id == principal_id))
        return result.scalar_one_or_none()

    async def create(self, **fields: Any) -> Principal:
        """
        Insert a new principal and commit.

        ``fields`` must already carry ``hashed_password``; plaintext never
        reaches the store.

        Raises:
            InvalidStatusError: If the status is not allowed for the role
            DuplicateEmailError: If a live principal already holds the email
            ExternalIdConflictError: If the external id is already taken
        """
        role = Role(fields.setdefault("role", Role.STUDENT))
        status = PrincipalStatus(fields.setdefault("status", PrincipalStatus.ACTIVE))
        if status not in role.allowed_statuses:
            raise InvalidStatusError(f"Status '{status.value}' is not allowed for role '{role.value}'")

        fields["email"] = normalize_email(fields["email"])
        principal = Principal(**fields)
        self.db.add(principal)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            if await self.find_by_email(fields["email"]) is not None:
                raise DuplicateEmailError() from exc
            raise ExternalIdConflictError() from exc
        await self.db.refresh(principal)
        return principal

    async def _update_live(self, principal_id: str, **values: Any) -> None:
        result = await self.db.execute(
            update(Principal)
            .where(Principal.id == principal_id, Principal.deleted_at.is_(None))
            .values(**values)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise NotFoundError()
        await self.db.commit()

    async def update_password(self, principal_id: str, hashed_password: str) -> None:
        await self._update_live(principal_id, hashed_password=hashed_password, updated_at=utcnow())

    async def update_last_login(self, principal_id: str, timestamp: Optional[datetime] = None) -> None:
        await self._update_live(principal_id, last_login=timestamp or utcnow())

    async def soft_delete(self, principal_id: str) -> None:
        """Mark a principal deleted; the row is kept."""
        now = utcnow()
        await self._update_live(principal_id, deleted_at=now, updated_at=now)

    async def list_principals(
        self,
        role: Optional[Role] = None,
        page: int = 1,
        limit: int = 10,
        search: str = "",
        status: Optional[PrincipalStatus] = None,
    ) -> Tuple[List[Principal], int]:
        """
        Page through live principals, newest first.

        Returns:
            Tuple of the page rows and the total number of matches
        """
        query = self._live()
        if role is not None:
            query = query.where(Principal.role == role)
        if status is not None:
            query = query.where(Principal.status == status)
        if search:
            pattern = f"%{_escape_like(search.lower())}%"
            query = query.where(
                or_(
                    func.lower(Principal.first_name).like(pattern, escape="\\"),
                    func.lower(Principal.last_name).like(pattern, escape="\\"),
                    Principal.email.like(pattern, escape="\\"),
                    func.lower(Principal.external_id).like(pattern, escape="\\"),
                )
            )

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.db.execute(
            query.order_by(Principal.created_at.desc(), Principal.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0
