"""
Test cases for the credential store.
"""
from datetime import datetime, timezone

import pytest

from school_core.auth.errors import DuplicateEmailError, ExternalIdConflictError, InvalidStatusError, NotFoundError
from school_core.auth.models import PrincipalStatus, Role
from school_core.auth.store import CredentialStore, normalize_email


def _fields(email, external_id, role=Role.STUDENT, **extra):
    fields = {
        "external_id": external_id,
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": email,
        "hashed_password": "$2b$04$placeholderplaceholderplaceholderplaceholderpla",
        "role": role,
        "status": PrincipalStatus.ACTIVE,
    }
    fields.update(extra)
    return fields


@pytest.fixture
def store(db_session):
    return CredentialStore(db_session)


def test_normalize_email():
    assert normalize_email("  Ada@School.EDU ") == "ada@school.edu"


async def test_create_and_find(store):
    created = await store.create(**_fields("Ada@School.edu", "STU-1"))

    assert created.id
    assert created.email == "ada@school.edu"
    assert created.created_at is not None

    assert (await store.find_by_email("ADA@school.edu")).id == created.id
    assert (await store.find_by_id(created.id)).external_id == "STU-1"


async def test_find_by_email_filters_roles(store):
    await store.create(**_fields("t@school.edu", "TCH-1", role=Role.TEACHER))

    assert await store.find_by_email("t@school.edu", roles=[Role.STUDENT]) is None
    assert await store.find_by_email("t@school.edu", roles=[Role.TEACHER]) is not None


async def test_find_missing_returns_none(store):
    assert await store.find_by_email("nobody@school.edu") is None
    assert await store.find_by_id("no-such-id") is None


async def test_duplicate_email(store):
    await store.create(**_fields("dup@school.edu", "STU-1"))

    with pytest.raises(DuplicateEmailError):
        await store.create(**_fields("DUP@school.edu", "STU-2"))


async def test_duplicate_external_id(store):
    await store.create(**_fields("one@school.edu", "STU-1"))

    with pytest.raises(ExternalIdConflictError):
        await store.create(**_fields("two@school.edu", "STU-1"))


async def test_update_password(store):
    created = await store.create(**_fields("pw@school.edu", "STU-1"))
    created_id = created.id

    await store.update_password(created_id, "new-hash")

    store.db.expire_all()
    assert (await store.find_by_id(created_id)).hashed_password == "new-hash"


async def test_update_last_login(store):
    created = await store.create(**_fields("ll@school.edu", "STU-1"))
    assert created.last_login is None
    when = datetime(2026, 3, 1, 8, 30, tzinfo=timezone.utc)
    created_id = created.id

    await store.update_last_login(created_id, when)

    store.db.expire_all()
    found = await store.find_by_id(created_id)
    assert found.last_login.replace(tzinfo=timezone.utc) == when


async def test_updates_on_missing_principal(store):
    with pytest.raises(NotFoundError):
        await store.update_password("no-such-id", "hash")
    with pytest.raises(NotFoundError):
        await store.update_last_login("no-such-id")


async def test_soft_delete_hides_principal_and_frees_email(store):
    created = await store.create(**_fields("gone@school.edu", "STU-1"))
    created_id = created.id

    await store.soft_delete(created_id)

    assert await store.find_by_id(created_id) is None
    assert await store.find_by_email("gone@school.edu") is None
    with pytest.raises(NotFoundError):
        await store.soft_delete(created_id)

    again = await store.create(**_fields("gone@school.edu", "STU-2"))
    assert again.id != created_id


async def test_list_principals(store):
    for i in range(5):
        await store.create(**_fields(f"s{i}@school.edu", f"STU-{i}", first_name=f"Student{i}"))
    await store.create(**_fields("t@school.edu", "TCH-1", role=Role.TEACHER))
    await store.create(**_fields("inactive@school.edu", "STU-9", status=PrincipalStatus.INACTIVE))

    rows, total = await store.list_principals(role=Role.STUDENT, page=1, limit=2)
    assert total == 6
    assert len(rows) == 2
    assert all(row.role is Role.STUDENT for row in rows)

    rows, total = await store.list_principals(role=Role.STUDENT, page=4, limit=2)
    assert total == 6
    assert rows == []

    rows, total = await store.list_principals(role=Role.STUDENT, status=PrincipalStatus.INACTIVE)
    assert total == 1
    assert rows[0].email == "inactive@school.edu"

    rows, total = await store.list_principals(role=Role.STUDENT, search="STUDENT3")
    assert total == 1
    assert rows[0].first_name == "Student3"

    rows, total = await store.list_principals()
    assert total == 7


async def test_list_principals_skips_deleted(store):
    kept = await store.create(**_fields("kept@school.edu", "STU-1"))
    kept_id = kept.id
    gone = await store.create(**_fields("gone@school.edu", "STU-2"))
    await store.soft_delete(gone.id)

    rows, total = await store.list_principals(role=Role.STUDENT)

    assert total == 1
    assert [row.id for row in rows] == [kept_id]


async def test_graduated_is_student_only(store):
    student = await store.create(**_fields("grad@school.edu", "STU-1", status=PrincipalStatus.GRADUATED))
    assert student.status is PrincipalStatus.GRADUATED

    with pytest.raises(InvalidStatusError):
        await store.create(**_fields("t@school.edu", "TCH-1", role=Role.TEACHER, status=PrincipalStatus.GRADUATED))
    with pytest.raises(InvalidStatusError):
        await store.create(**_fields("a@school.edu", "ADM-1", role=Role.ADMIN, status="graduated"))

    assert await store.find_by_email("t@school.edu") is None


async def test_search_wildcards_match_literally(store):
    await store.create(**_fields("plain@school.edu", "STU-1", first_name="Plain"))
    await store.create(**_fields("under@school.edu", "STU-2", first_name="Under_score"))
    await store.create(**_fields("pct@school.edu", "STU-3", first_name="Hundred%"))

    underscore, total = await store.list_principals(role=Role.STUDENT, search="_")
    assert total == 1
    assert underscore[0].first_name == "Under_score"

    percent, total = await store.list_principals(role=Role.STUDENT, search="%")
    assert total == 1
    assert percent[0].first_name == "Hundred%"

    _, total = await store.list_principals(role=Role.STUDENT, search="\\")
    assert total == 0
