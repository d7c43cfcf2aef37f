"""
Authentication and authorization errors.

Every error carries the HTTP status it maps to and a client-safe message.
They are raised by the auth components and translated into the standard
error envelope by the exception handlers registered in ``school_core.main``.
"""
from typing import Any, Dict, List, Optional


class AuthError(Exception):
    """Base class for all auth errors."""
    status_code = 500
    default_message = "Authentication error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class HashingError(AuthError):
    """Password could not be hashed (bad cost or empty plaintext)."""
    default_message = "Password hashing failed"


class DuplicateEmailError(AuthError):
    status_code = 409
    default_message = "Email already registered"


class ExternalIdConflictError(AuthError):
    """Generated external id collided with an existing one."""
    status_code = 409
    default_message = "External id already in use"


class InvalidStatusError(AuthError):
    """Status is not one the principal's role may hold."""
    status_code = 400
    default_message = "Status not allowed for this role"


class InvalidCredentialsError(AuthError):
    status_code = 401
    default_message = "Invalid credentials"


class InvalidCurrentPasswordError(AuthError):
    status_code = 401
    default_message = "Current password is incorrect"


class AccountNotActiveError(AuthError):
    status_code = 401
    default_message = "Account is not active"


class UnauthenticatedError(AuthError):
    status_code = 401
    default_message = "No token provided. Authorization denied."


class TokenExpiredError(UnauthenticatedError):
    default_message = "Token expired. Please login again."


class InvalidTokenError(UnauthenticatedError):
    default_message = "Invalid token. Authorization denied."


class ForbiddenError(AuthError):
    status_code = 403
    default_message = "Access denied. Insufficient permissions."


class NotFoundError(AuthError):
    status_code = 404
    default_message = "User not found"
