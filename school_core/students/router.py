"""
Student directory router.

Staff can browse students; students can only read their own record;
administrators can soft delete a student.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from school_core.auth.errors import ForbiddenError, NotFoundError
from school_core.auth.jwt import TokenData
from school_core.auth.middleware import RBACMiddleware, get_current_identity
from school_core.auth.models import ADMIN_ROLES, STAFF_ROLES, PrincipalStatus, Role
from school_core.auth.store import CredentialStore
from school_core.auth.users import PrincipalOut, get_db_session
from school_core.base_service import BaseService, paginated_response

router = APIRouter(tags=["students"])

base_service = BaseService("school_core.students")


def _dump(principal) -> dict:
    return PrincipalOut.model_validate(principal).model_dump(mode="json", by_alias=True)


async def _load_student(store: CredentialStore, student_id: str):
    student = await store.find_by_id(student_id)
    if student is None or student.role is not Role.STUDENT:
        raise NotFoundError("Student not found")
    return student


@router.get("")
async def list_students(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = Query("", max_length=100),
    status: Optional[PrincipalStatus] = None,
    identity: TokenData = Depends(RBACMiddleware.has_roles(*STAFF_ROLES)),
    db: AsyncSession = Depends(get_db_session),
):
    """List students, newest first."""
    rows, total = await CredentialStore(db).list_principals(
        role=Role.STUDENT,
        page=page,
        limit=limit,
        search=search.strip(),
        status=status,
    )
    return paginated_response(
        [_dump(row) for row in rows],
        page=page,
        limit=limit,
        total=total,
        message="Students retrieved successfully",
    )


@router.get("/{student_id}")
async def get_student(
    student_id: str,
    identity: TokenData = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
):
    """Get one student. Students may only view their own record."""
    if identity.role is Role.STUDENT and identity.subject != student_id:
        raise ForbiddenError("Access denied. You can only view your own profile.")
    student = await _load_student(CredentialStore(db), student_id)
    return base_service.response({"principal": _dump(student)}, "Student retrieved successfully")


@router.delete("/{student_id}")
async def delete_student(
    student_id: str,
    identity: TokenData = Depends(RBACMiddleware.has_roles(*ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db_session),
):
    """Soft delete a student; the record is kept but no longer visible."""
    store = CredentialStore(db)
    student = await _load_student(store, student_id)
    await store.soft_delete(student.id)
    base_service.log_event("principal.soft_deleted", {"id": student_id, "by": identity.subject})
    return base_service.response(message="Student deleted successfully")
