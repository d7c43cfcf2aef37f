"""
Principal management service.

This module provides:
- Request/response models for the auth endpoints
- Registration of students, teachers and admins
- Login, profile retrieval and password change
- Token refresh and super admin bootstrap
"""
import asyncio
import logging
import random
import time
from datetime import date, datetime
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import Depends, Request
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from school_core.auth.errors import (
    AccountNotActiveError,
    DuplicateEmailError,
    ExternalIdConflictError,
    InvalidCredentialsError,
    InvalidCurrentPasswordError,
    InvalidTokenError,
    NotFoundError,
)
from school_core.auth.jwt import REFRESH, TokenClaims, TokenIssuer, TokenPair, TokenVerifier
from school_core.auth.models import LoginUserType, Principal, PrincipalStatus, Role
from school_core.auth.passwords import PasswordHasher
from school_core.auth.store import CredentialStore
from school_core.config import MIN_PASSWORD_LENGTH

logger = logging.getLogger("school_core.auth")

EXTERNAL_ID_ATTEMPTS = 5


class CamelModel(BaseModel):
    """Models exchanged with the frontend use camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Pydantic models for request validation
class PrincipalCreate(CamelModel):
    """Fields shared by every registration."""
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    phone: Optional[str] = Field(None, max_length=20)

    @field_validator("first_name", "last_name")
    @classmethod
    def name_must_not_be_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Name must not be blank")
        return v


class StudentCreate(PrincipalCreate):
    """Model for student registration."""
    date_of_birth: Optional[date] = None
    address: Optional[str] = None
    parent_name: Optional[str] = Field(None, max_length=100)
    parent_email: Optional[EmailStr] = None
    parent_phone: Optional[str] = Field(None, max_length=20)


class StaffCreate(PrincipalCreate):
    """Model for teacher and admin registration."""
    department: Optional[str] = Field(None, max_length=100)
    specialization: Optional[str] = Field(None, max_length=100)

    @field_validator("department", "specialization")
    @classmethod
    def strip_optional(cls, v):
        return v.strip() if v is not None else v


class LoginRequest(CamelModel):
    """Model for login."""
    email: EmailStr
    password: str = Field(..., min_length=1)
    user_type: LoginUserType


class PasswordUpdate(CamelModel):
    """Model for changing the current principal's password."""
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1)


class PrincipalOut(CamelModel):
    """Principal as returned to clients. Has no password field."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    external_id: str
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    role: Role
    status: PrincipalStatus
    profile_image: Optional[str] = None
    date_of_birth: Optional[date] = None
    address: Optional[str] = None
    enrollment_date: Optional[date] = None
    parent_name: Optional[str] = None
    parent_email: Optional[str] = None
    parent_phone: Optional[str] = None
    department: Optional[str] = None
    specialization: Optional[str] = None
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class TokenPairOut(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str
    expires_at: int


class AuthResult(BaseModel):
    principal: PrincipalOut
    tokens: TokenPair

    def to_response(self) -> Dict[str, Any]:
        return {
            "principal": self.principal.model_dump(mode="json", by_alias=True),
            "tokens": TokenPairOut(**self.tokens.model_dump()).model_dump(mode="json", by_alias=True),
        }


def generate_external_id(role: Role) -> str:
    """
    Human-readable id such as ``STU-482913071234``: last 8 digits of the
    millisecond clock followed by 4 random digits.
    """
    timestamp = str(int(time.time() * 1000))[-8:]
    return f"{role.id_prefix}-{timestamp}{random.randint(1000, 9999)}"


class AuthService:
    """
    Registration, login and credential management.

    Args:
        store: Credential store for the current request
        hasher: Password hasher
        issuer: Token issuer
        verifier: Token verifier, needed for refresh
    """
    def __init__(
        self,
        store: CredentialStore,
        hasher: PasswordHasher,
        issuer: TokenIssuer,
        verifier: Optional[TokenVerifier] = None,
    ):
        self.store = store
        self.hasher = hasher
        self.issuer = issuer
        self.verifier = verifier

    async def _hash(self, password: str) -> str:
        return await asyncio.to_thread(self.hasher.hash, password)

    async def _verify(self, password: str, hashed_password: str) -> bool:
        return await asyncio.to_thread(self.hasher.verify, password, hashed_password)

    def _result(self, profile: PrincipalOut) -> AuthResult:
        claims = TokenClaims(subject=profile.id, role=profile.role, email=profile.email)
        return AuthResult(principal=profile, tokens=self.issuer.issue_token_pair(claims))

    async def register(self, role: Role, data: PrincipalCreate) -> AuthResult:
        """
        Register a new principal with the given role.

        Args:
            role: Role of the new principal
            data: Validated registration fields

        Returns:
            AuthResult with the new principal and its token pair

        Raises:
            DuplicateEmailError: If a live principal already uses the email
        """
        if await self.store.find_by_email(data.email) is not None:
            raise DuplicateEmailError()

        fields = data.model_dump(exclude={"password"})
        fields["hashed_password"] = await self._hash(data.password)
        fields["role"] = role
        fields["status"] = PrincipalStatus.ACTIVE
        if role is Role.STUDENT:
            fields["enrollment_date"] = date.today()

        for attempt in range(1, EXTERNAL_ID_ATTEMPTS + 1):
            try:
                principal = await self.store.create(external_id=generate_external_id(role), **fields)
                break
            except ExternalIdConflictError:
                logger.warning("External id collision for %s, attempt %d", role.value, attempt)
                if attempt == EXTERNAL_ID_ATTEMPTS:
                    raise

        return self._result(PrincipalOut.model_validate(principal))

    async def login(self, email: str, password: str, user_type: LoginUserType) -> AuthResult:
        """
        Authenticate a principal and issue tokens.

        Unknown email and wrong password raise the same error.

        Raises:
            InvalidCredentialsError: If the email or password is wrong
            AccountNotActiveError: If the account is not active
        """
        principal = await self.store.find_by_email(email, roles=user_type.roles)
        if principal is None:
            await self._verify(password, self.hasher.dummy_hash)
            raise InvalidCredentialsError()

        if not principal.is_active:
            raise AccountNotActiveError()

        if not await self._verify(password, principal.hashed_password):
            raise InvalidCredentialsError()

        profile = PrincipalOut.model_validate(principal)
        try:
            await self.store.update_last_login(principal.id)
            profile = PrincipalOut.model_validate(principal)
        except (SQLAlchemyError, NotFoundError) as exc:
            await self.store.db.rollback()
            logger.warning("Could not record last login for %s: %s", profile.id, exc)

        return self._result(profile)

    async def get_profile(self, principal_id: str) -> PrincipalOut:
        principal = await self.store.find_by_id(principal_id)
        if principal is None:
            raise NotFoundError()
        return PrincipalOut.model_validate(principal)

    async def update_password(self, principal_id: str, current_password: str, new_password: str) -> None:
        """
        Change a principal's password after checking the current one.

        Tokens issued before the change remain valid until they expire.

        Raises:
            NotFoundError: If the principal does not exist
            InvalidCurrentPasswordError: If the current password is wrong
        """
        principal = await self.store.find_by_id(principal_id)
        if principal is None:
            raise NotFoundError()

        if not await self._verify(current_password, principal.hashed_password):
            raise InvalidCurrentPasswordError()

        await self.store.update_password(principal.id, await self._hash(new_password))

    async def refresh(self, refresh_token: str) -> AuthResult:
        """
        Exchange a refresh token for a new token pair.

        Raises:
            TokenExpiredError, InvalidTokenError: If the refresh token is bad
            AccountNotActiveError: If the account is no longer active
        """
        token_data = self.verifier.verify(refresh_token, kind=REFRESH)
        principal = await self.store.find_by_id(token_data.subject)
        if principal is None:
            raise InvalidTokenError()
        if not principal.is_active:
            raise AccountNotActiveError()
        return self._result(PrincipalOut.model_validate(principal))

    async def ensure_super_admin(self, email: str, password: str) -> Optional[Principal]:
        """
        Create the bootstrap super admin unless the email is already taken.

        Returns:
            The new principal, or None if nothing was created
        """
        if await self.store.find_by_email(email) is not None:
            return None
        data = StaffCreate(first_name="Super", last_name="Admin", email=email, password=password)
        try:
            result = await self.register(Role.SUPER_ADMIN, data)
        except DuplicateEmailError:
            return None
        return await self.store.find_by_id(result.principal.id)


async def get_db_session(request: Request) -> AsyncIterator[AsyncSession]:
    """Dependency for getting a database session."""
    async with request.app.state.session_factory() as session:
        yield session


def get_auth_service(request: Request, db: AsyncSession = Depends(get_db_session)) -> AuthService:
    """Dependency wiring an AuthService to the request's session."""
    state = request.app.state
    return AuthService(
        store=CredentialStore(db),
        hasher=state.password_hasher,
        issuer=state.token_issuer,
        verifier=state.token_verifier,
    )
