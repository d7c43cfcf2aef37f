"""
Authentication models for the Smart School core.

This module defines:
- The closed set of roles, account statuses and login user types
- The SQLAlchemy ``Principal`` model (one table for every role)
"""
import enum
import uuid
from typing import FrozenSet

from sqlalchemy import Column, Date, DateTime, Enum, Index, String, Text, text

from school_core.base_service import Base, utcnow


class Role(str, enum.Enum):
    """Every role a principal can hold."""
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

    @property
    def id_prefix(self) -> str:
        """Prefix of the human-readable external id."""
        return _ID_PREFIXES[self]

    @property
    def allowed_statuses(self) -> FrozenSet["PrincipalStatus"]:
        if self is Role.STUDENT:
            return frozenset(PrincipalStatus)
        return frozenset(PrincipalStatus) - {PrincipalStatus.GRADUATED}


class PrincipalStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    GRADUATED = "graduated"


class LoginUserType(str, enum.Enum):
    """User type a client declares when logging in."""
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"

    @property
    def roles(self) -> FrozenSet[Role]:
        return _LOGIN_ROLES[self]


_ID_PREFIXES = {
    Role.STUDENT: "STU",
    Role.TEACHER: "TCH",
    Role.ADMIN: "ADM",
    Role.SUPER_ADMIN: "SAD",
}

_LOGIN_ROLES = {
    LoginUserType.STUDENT: frozenset({Role.STUDENT}),
    LoginUserType.TEACHER: frozenset({Role.TEACHER}),
    LoginUserType.ADMIN: frozenset({Role.ADMIN, Role.SUPER_ADMIN}),
}

STAFF_ROLES = frozenset({Role.TEACHER, Role.ADMIN, Role.SUPER_ADMIN})
ADMIN_ROLES = frozenset({Role.ADMIN, Role.SUPER_ADMIN})


def _new_id() -> str:
    return str(uuid.uuid4())


class Principal(Base):
    """An identity that can authenticate: student, teacher or administrator."""
    __tablename__ = "principals"

    id = Column(String(36), primary_key=True, default=_new_id)
    external_id = Column(String(20), unique=True, nullable=False)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=True)
    hashed_password = Column(String(255), nullable=False)
    role = Column(Enum(Role, native_enum=False, values_callable=lambda e: [m.value for m in e], length=20),
                  nullable=False, default=Role.STUDENT)
    status = Column(Enum(PrincipalStatus, native_enum=False, values_callable=lambda e: [m.value for m in e], length=20),
                    nullable=False, default=PrincipalStatus.ACTIVE)
    profile_image = Column(String(255), nullable=True)

    # Student profile
    date_of_birth = Column(Date, nullable=True)
    address = Column(Text, nullable=True)
    enrollment_date = Column(Date, nullable=True)
    parent_name = Column(String(100), nullable=True)
    parent_email = Column(String(100), nullable=True)
    parent_phone = Column(String(20), nullable=True)

    # Staff profile
    department = Column(String(100), nullable=True)
    specialization = Column(String(100), nullable=True)

    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # One live principal per email; soft-deleted rows free the address.
        Index(
            "uq_principals_email_live",
            "email",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status == PrincipalStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Principal {self.external_id} role={self.role.value}>"
