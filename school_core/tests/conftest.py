"""
Shared fixtures: an app wired to a throwaway SQLite database per test.
"""
import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from school_core.auth.jwt import TokenClaims
from school_core.auth.models import PrincipalStatus, Role
from school_core.auth.store import CredentialStore
from school_core.auth.users import AuthService
from school_core.config import Settings
from school_core.main import create_app, start_auth_service

TEST_JWT_SECRET = "test-jwt-secret-key-for-testing-only-0123456789"
TEST_REFRESH_SECRET = "test-refresh-secret-key-for-testing-only-98765"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        jwt_secret=TEST_JWT_SECRET,
        jwt_refresh_secret=TEST_REFRESH_SECRET,
        bcrypt_rounds=4,
    )


@pytest.fixture
async def app(settings):
    app = create_app(settings)
    await start_auth_service(app)
    yield app
    await app.state.engine.dispose()


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        yield ac


@pytest.fixture
async def db_session(app):
    async with app.state.session_factory() as session:
        yield session


@pytest.fixture
def auth_service(app, db_session):
    return AuthService(
        store=CredentialStore(db_session),
        hasher=app.state.password_hasher,
        issuer=app.state.token_issuer,
        verifier=app.state.token_verifier,
    )


@pytest.fixture
def make_principal(app):
    """Insert a principal directly, bypassing registration."""
    async def _make(
        email="a@x.com",
        password="secret",
        role=Role.STUDENT,
        status=PrincipalStatus.ACTIVE,
        **extra,
    ):
        async with app.state.session_factory() as session:
            return await CredentialStore(session).create(
                external_id=f"{role.id_prefix}-{uuid.uuid4().hex[:12]}",
                first_name=extra.pop("first_name", "Test"),
                last_name=extra.pop("last_name", "User"),
                email=email,
                hashed_password=app.state.password_hasher.hash(password),
                role=role,
                status=status,
                **extra,
            )
    return _make


@pytest.fixture
def auth_headers(app):
    """Build an Authorization header carrying an access token for a principal."""
    def _headers(principal):
        token = app.state.token_issuer.issue_access_token(
            TokenClaims(subject=principal.id, role=principal.role, email=principal.email)
        )
        return {"Authorization": f"Bearer {token}"}
    return _headers
