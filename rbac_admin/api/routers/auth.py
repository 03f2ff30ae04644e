from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from rbac_admin.api.deps import Context, CurrentPrincipal
from rbac_admin.api.errors import raise_http_error
from rbac_admin.domain.models import LoginRequest, TokenResponse, UserRead
from rbac_admin.services.auth_service import AuthService
from rbac_admin.services.errors import AccessAdminError
from rbac_admin.services.user_service import UserService

router = APIRouter()
me_router = APIRouter()


def get_auth_service(context: Context) -> AuthService:
    return AuthService(context)


def get_user_service(context: Context) -> UserService:
    return UserService(context)


Service = Annotated[AuthService, Depends(get_auth_service)]
Users = Annotated[UserService, Depends(get_user_service)]


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, service: Service) -> TokenResponse:
    try:
        return service.login(payload.email, payload.password)
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@me_router.get("/me", response_model=UserRead)
def me(principal: CurrentPrincipal, users: Users) -> UserRead:
    try:
        return UserRead.model_validate(users.find_by_id(principal.user_id))
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise
