from __future__ import annotations

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from rbac_admin.api.errors import validation_error_handler
from rbac_admin.api.routers import auth, departments, permissions, roles, user_roles, users
from rbac_admin.infra.auth import get_jwt_secret
from rbac_admin.infra.db import check_db_ready
from rbac_admin.infra.logging import configure_logging, get_logger
from rbac_admin.infra.tracing import RequestContextMiddleware
from rbac_admin.services.bootstrap_service import BootstrapService

BOOTSTRAP_SYSTEM_USER = os.getenv("BOOTSTRAP_SYSTEM_USER", "true").lower() in {"1", "true", "yes"}

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    configure_logging()
    get_jwt_secret()
    if BOOTSTRAP_SYSTEM_USER:
        BootstrapService().ensure_system_user()
    logger.info("startup_complete", bootstrap=BOOTSTRAP_SYSTEM_USER)
    yield


app = FastAPI(
    title="rbac-admin",
    description="User, role and permission administration with JWT authentication.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)
app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]

app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(auth.me_router, tags=["auth"])
app.include_router(users.router, prefix="/users", tags=["users"])
app.include_router(departments.router, prefix="/departments", tags=["departments"])
app.include_router(roles.router, prefix="/roles", tags=["roles"])
app.include_router(permissions.router, prefix="/permissions", tags=["permissions"])
app.include_router(user_roles.router, prefix="/user-roles", tags=["user-roles"])


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/readyz")
def readyz() -> dict[str, object]:
    db_ok = check_db_ready()
    checks = {"db": "ok" if db_ok else "fail"}
    if not db_ok:
        raise HTTPException(
            status_code=503,
            detail={"status": "not_ready", "checks": checks},
        )
    return {"status": "ready", "checks": checks}
