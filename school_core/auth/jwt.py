"""
JWT token handling for authentication.

This module provides:
- Issuing access and refresh tokens
- Verifying tokens and extracting their claims
"""
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt
from pydantic import BaseModel, ConfigDict

from school_core.auth.errors import InvalidTokenError, TokenExpiredError
from school_core.auth.models import Role
from school_core.config import Settings

ACCESS = "access"
REFRESH = "refresh"
TOKEN_KINDS = (ACCESS, REFRESH)

REQUIRED_CLAIMS = ["sub", "role", "email", "iat", "exp", "type"]

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenClaims(BaseModel):
    """Identity attributes embedded in every token."""
    model_config = ConfigDict(frozen=True)

    subject: str
    role: Role
    email: str


class TokenData(TokenClaims):
    """Claims of a verified token plus its metadata."""
    kind: str
    issued_at: datetime
    expires_at: datetime

    @property
    def claims(self) -> TokenClaims:
        return TokenClaims(subject=self.subject, role=self.role, email=self.email)


class TokenPair(BaseModel):
    """Token response model."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: int  # Unix timestamp of the access token expiry


class TokenIssuer:
    """
    Creates signed access and refresh tokens.

    Refresh tokens use their own secret when one is configured.
    """
    def __init__(self, settings: Settings, clock: Optional[Clock] = None):
        self.algorithm = settings.jwt_algorithm
        self.access_secret = settings.jwt_secret
        self.refresh_secret = settings.refresh_secret
        self.access_lifetime = settings.jwt_expires_in
        self.refresh_lifetime = settings.jwt_refresh_expires_in
        self.clock = clock or _utcnow

    def _issue(self, claims: TokenClaims, kind: str, secret: str, lifetime: timedelta) -> str:
        issued_at = self.clock()
        payload = {
            "sub": claims.subject,
            "role": claims.role.value,
            "email": claims.email,
            "type": kind,
            "iat": issued_at,
            "exp": issued_at + lifetime,
        }
        return jwt.encode(payload, secret, algorithm=self.algorithm)

    def issue_access_token(self, claims: TokenClaims, lifetime: Optional[timedelta] = None) -> str:
        return self._issue(claims, ACCESS, self.access_secret, self.access_lifetime if lifetime is None else lifetime)

    def issue_refresh_token(self, claims: TokenClaims, lifetime: Optional[timedelta] = None) -> str:
        return self._issue(claims, REFRESH, self.refresh_secret, self.refresh_lifetime if lifetime is None else lifetime)

    def issue_token_pair(self, claims: TokenClaims) -> TokenPair:
        """
        Create both access and refresh tokens for a principal.

        Args:
            claims: Subject id, role and email of the principal

        Returns:
            TokenPair with both tokens and the access token expiry
        """
        access_token = self.issue_access_token(claims)
        refresh_token = self.issue_refresh_token(claims)
        expires_at = int((self.clock() + self.access_lifetime).timestamp())
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
        )


class TokenVerifier:
    """
    Validates signature, algorithm, expiry and kind of a token.

    Only ``TokenExpiredError`` and ``InvalidTokenError`` ever leave ``verify``.
    """
    def __init__(self, settings: Settings, leeway: timedelta = timedelta(0)):
        self.algorithm = settings.jwt_algorithm
        self.secrets = {ACCESS: settings.jwt_secret, REFRESH: settings.refresh_secret}
        self.leeway = leeway

    def verify(self, token: str, kind: str = ACCESS) -> TokenData:
        """
        Verify a JWT token and return its data.

        Args:
            token: Encoded JWT
            kind: Expected token kind, ``access`` or ``refresh``

        Raises:
            TokenExpiredError: If the token is past its expiry
            InvalidTokenError: For any other problem with the token
        """
        if kind not in TOKEN_KINDS:
            raise ValueError(f"Unknown token kind: {kind}")
        if not token:
            raise InvalidTokenError()
        try:
            payload = jwt.decode(
                token,
                self.secrets[kind],
                algorithms=[self.algorithm],
                leeway=self.leeway,
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpiredError() from exc
        except jwt.PyJWTError as exc:
            raise InvalidTokenError() from exc

        if payload["type"] != kind:
            raise InvalidTokenError("Invalid token type")
        try:
            return TokenData(
                subject=str(payload["sub"]),
                role=Role(payload["role"]),
                email=payload["email"],
                kind=payload["type"],
                issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except (ValueError, TypeError) as exc:
            # unknown role or malformed claim values
            raise InvalidTokenError() from exc
