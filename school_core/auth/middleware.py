"""
Authentication middleware.

This module provides FastAPI dependencies for:
- Bearer token validation (mandatory and optional)
- Role-based access control
"""
from typing import Iterable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from school_core.auth.errors import ForbiddenError, InvalidTokenError, TokenExpiredError, UnauthenticatedError
from school_core.auth.jwt import TokenData, TokenVerifier
from school_core.auth.models import Role

# Bearer scheme; missing credentials are reported by us, not FastAPI
bearer_scheme = HTTPBearer(auto_error=False)


def get_token_verifier(request: Request) -> TokenVerifier:
    return request.app.state.token_verifier


async def get_current_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> TokenData:
    """
    Dependency for routes that require a valid access token.

    Raises:
        UnauthenticatedError: If no bearer token was presented
        TokenExpiredError: If the token has expired
        InvalidTokenError: If the token is invalid
    """
    if credentials is None:
        raise UnauthenticatedError()
    token_data = verifier.verify(credentials.credentials)
    request.state.identity = token_data
    return token_data


async def get_optional_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> Optional[TokenData]:
    """
    Dependency for routes where authentication is optional.

    A missing or unusable token both leave the request unauthenticated.
    """
    request.state.identity = None
    if credentials is None:
        return None
    try:
        token_data = verifier.verify(credentials.credentials)
    except (TokenExpiredError, InvalidTokenError):
        return None
    request.state.identity = token_data
    return token_data


def authorize(identity: Optional[TokenData], allowed_roles: Iterable[Role]) -> TokenData:
    """
    Decide whether an identity may proceed.

    Args:
        identity: Identity attached by token verification, if any
        allowed_roles: Roles the target operation accepts

    Returns:
        The identity, unchanged

    Raises:
        UnauthenticatedError: If there is no identity
        ForbiddenError: If the identity's role is not allowed
    """
    if identity is None:
        raise UnauthenticatedError("User not authenticated.")
    if identity.role not in frozenset(allowed_roles):
        raise ForbiddenError()
    return identity


class RBACMiddleware:
    """
    Role-Based Access Control.

    Creates FastAPI dependencies that protect routes by role.
    """

    @staticmethod
    def has_roles(*roles):
        """
        Dependency to check that the principal holds one of the roles.

        Args:
            roles: Allowed roles, as ``Role`` members or their values

        Returns:
            Dependency function
        """
        allowed = frozenset(Role(role) for role in roles)
        if not allowed:
            raise ValueError("At least one role is required")

        async def verify_roles(identity: TokenData = Depends(get_current_identity)) -> TokenData:
            return authorize(identity, allowed)

        return verify_roles
