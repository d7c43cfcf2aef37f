"""
Authentication router.

This module provides the FastAPI router for authentication endpoints:
- Student, teacher and admin registration
- Login, token refresh and logout
- Profile retrieval and password change
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status

from school_core.auth.errors import AuthError
from school_core.auth.jwt import TokenData
from school_core.auth.middleware import RBACMiddleware, get_current_identity, get_optional_identity
from school_core.auth.models import ADMIN_ROLES, Role
from school_core.auth.users import (
    AuthService,
    LoginRequest,
    PasswordUpdate,
    RefreshRequest,
    StaffCreate,
    StudentCreate,
    get_auth_service,
)
from school_core.base_service import BaseService, utcnow

router = APIRouter(tags=["auth"])

base_service = BaseService("school_core.auth")


async def _register(service: AuthService, role: Role, data) -> Dict[str, Any]:
    result = await service.register(role, data)
    base_service.log_event("principal.registered", {
        "id": result.principal.id,
        "external_id": result.principal.external_id,
        "role": role.value,
    })
    return result.to_response()


# --- Registration ---

@router.post("/register/student", status_code=status.HTTP_201_CREATED)
async def register_student(
    data: StudentCreate,
    service: AuthService = Depends(get_auth_service),
):
    """Register a new student."""
    result = await _register(service, Role.STUDENT, data)
    return base_service.response(result, "Student registered successfully")


@router.post("/register/teacher", status_code=status.HTTP_201_CREATED)
async def register_teacher(
    data: StaffCreate,
    service: AuthService = Depends(get_auth_service),
):
    """Register a new teacher."""
    result = await _register(service, Role.TEACHER, data)
    return base_service.response(result, "Teacher registered successfully")


@router.post("/register/admin", status_code=status.HTTP_201_CREATED)
async def register_admin(
    data: StaffCreate,
    identity: TokenData = Depends(RBACMiddleware.has_roles(*ADMIN_ROLES)),
    service: AuthService = Depends(get_auth_service),
):
    """
    Register a new admin.

    Only admins and super admins may call this.
    """
    result = await _register(service, Role.ADMIN, data)
    base_service.log_event("principal.admin_created", {"by": identity.subject, "id": result["principal"]["id"]})
    return base_service.response(result, "Admin registered successfully")


# --- Session ---

@router.post("/login")
async def login(
    data: LoginRequest,
    service: AuthService = Depends(get_auth_service),
):
    """
    Authenticate a principal and return tokens.

    Unknown emails and wrong passwords get the same response.
    """
    try:
        result = await service.login(data.email, data.password, data.user_type)
    except AuthError as e:
        base_service.log_event("principal.login.failed", {
            "user_type": data.user_type.value,
            "reason": e.__class__.__name__,
        })
        raise

    base_service.log_event("principal.login", {
        "id": result.principal.id,
        "role": result.principal.role.value,
    })
    return base_service.response(result.to_response(), "Login successful")


@router.post("/refresh")
async def refresh_token(
    data: RefreshRequest,
    service: AuthService = Depends(get_auth_service),
):
    """Exchange a refresh token for a new token pair."""
    result = await service.refresh(data.refresh_token)
    return base_service.response(result.to_response(), "Token refreshed successfully")


@router.post("/logout")
async def logout(identity: Optional[TokenData] = Depends(get_optional_identity)):
    """
    Tokens are stateless; the client discards them. Always succeeds.
    """
    if identity is not None:
        base_service.log_event("principal.logout", {"id": identity.subject})
    return base_service.response(message="Logout successful")


# --- Current principal ---

@router.get("/profile")
async def get_profile(
    identity: TokenData = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
):
    """Get the profile of the authenticated principal."""
    profile = await service.get_profile(identity.subject)
    return base_service.response(
        {"principal": profile.model_dump(mode="json", by_alias=True)},
        "Profile retrieved successfully",
    )


@router.put("/password")
async def update_password(
    data: PasswordUpdate,
    identity: TokenData = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
):
    """Change the authenticated principal's password."""
    await service.update_password(identity.subject, data.current_password, data.new_password)
    base_service.log_event("principal.password.updated", {"id": identity.subject})
    return base_service.response(message="Password updated successfully")


# --- Health Check ---

@router.get("/ping")
async def ping():
    """Health check endpoint for the auth service."""
    return base_service.response(
        {"timestamp": utcnow().isoformat()},
        "Auth service is alive",
    )
