from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from school_core import __version__
from school_core.auth.errors import AuthError
from school_core.auth.jwt import TokenIssuer, TokenVerifier
from school_core.auth.passwords import PasswordHasher
from school_core.auth.router import router as auth_router
from school_core.auth.store import CredentialStore
from school_core.auth.users import AuthService
from school_core.base_service import Base, BaseService, ErrorResponse, configure_logging, create_session_factory
from school_core.config import Settings
from school_core.students.router import router as students_router

base_service = BaseService("school_core")


async def start_auth_service(app: FastAPI) -> None:
    """
    Create missing tables and the bootstrap super admin.
    """
    settings: Settings = app.state.settings
    async with app.state.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if settings.super_admin_email and settings.super_admin_password:
        async with app.state.session_factory() as session:
            service = AuthService(
                store=CredentialStore(session),
                hasher=app.state.password_hasher,
                issuer=app.state.token_issuer,
            )
            created = await service.ensure_super_admin(settings.super_admin_email, settings.super_admin_password)
            if created is not None:
                base_service.log_event("principal.bootstrapped", {"id": created.id, "role": created.role.value})


@asynccontextmanager
async def lifespan(app: FastAPI):
    base_service.log_event("service.startup", {"service": "main", "env": app.state.settings.app_env})
    try:
        await start_auth_service(app)
    except Exception as e:
        base_service.log_error(e, context="Auth service startup")
        raise
    yield
    base_service.log_event("service.shutdown", {"service": "main"})
    await app.state.engine.dispose()


def _validation_errors(exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(loc), "message": error.get("msg", "Invalid value")})
    return errors


def register_exception_handlers(app: FastAPI) -> None:
    """Translate every error into the standard error envelope."""

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        if exc.status_code >= 500:
            base_service.log_error(exc, context=f"{request.method} {request.url.path}")
            return ErrorResponse("Internal server error", status_code=500)
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return ErrorResponse(exc.message, status_code=exc.status_code, errors=exc.errors, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return ErrorResponse("Validation failed", status_code=400, errors=_validation_errors(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return ErrorResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        base_service.log_error(exc, context=f"{request.method} {request.url.path}")
        return ErrorResponse("Internal server error", status_code=500)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the API with all components wired from ``settings``.

    Components live on ``app.state``; nothing is shared at module level.
    """
    settings = settings or Settings.from_env()
    settings.validate_runtime()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Smart School API",
        description="Authentication and role-based access for the Smart School Management System",
        version=__version__,
        lifespan=lifespan,
    )

    engine, session_factory = create_session_factory(settings)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.password_hasher = PasswordHasher(settings.bcrypt_rounds)
    app.state.token_issuer = TokenIssuer(settings)
    app.state.token_verifier = TokenVerifier(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.cors_origin.split(",") if origin.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(auth_router, prefix="/auth")
    app.include_router(students_router, prefix="/students")

    @app.get("/", tags=["root"])
    async def root():
        """Root endpoint returning API information."""
        return base_service.response(
            {"name": "Smart School API", "version": __version__, "services": ["auth", "students"]},
            "Smart School API",
        )

    @app.get("/health", tags=["health"])
    async def health_check():
        """Overall system health check."""
        return base_service.response(
            {"status": "ok", "environment": settings.app_env, "services": {"auth": "online", "students": "online"}},
            "Server is healthy",
        )

    return app


# For running directly with uvicorn
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("school_core.main:create_app", factory=True, host="0.0.0.0", port=8000, reload=True)
