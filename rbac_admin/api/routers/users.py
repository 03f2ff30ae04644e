from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from rbac_admin.api.deps import Context, IdList, Page, Sort, as_ids, require_permissions
from rbac_admin.api.errors import raise_http_error
from rbac_admin.domain.models import DeleteResult, UserCreate, UserPage, UserRead, UserUpdate
from rbac_admin.domain.permissions import (
    PERM_USER_CREATE,
    PERM_USER_DELETE,
    PERM_USER_READ,
    PERM_USER_UPDATE,
)
from rbac_admin.services.auth_service import Principal
from rbac_admin.services.errors import AccessAdminError
from rbac_admin.services.user_service import UserService

router = APIRouter()


def get_user_service(context: Context) -> UserService:
    return UserService(context)


Service = Annotated[UserService, Depends(get_user_service)]
Creator = Annotated[Principal, Depends(require_permissions(PERM_USER_CREATE))]
Email = Annotated[str, Query(min_length=3)]


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(payload: UserCreate, creator: Creator, service: Service) -> UserRead:
    try:
        user = service.create(payload, created_by=creator.user_id)
        return UserRead.model_validate(user)
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.get(
    "/search",
    response_model=UserPage,
    dependencies=[Depends(require_permissions(PERM_USER_READ))],
)
def search_users(page: Page, sort: Sort, service: Service, value: str = "") -> UserPage:
    try:
        return service.search_for(value, page, sort)
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.get(
    "/by-email",
    response_model=UserRead,
    dependencies=[Depends(require_permissions(PERM_USER_READ))],
)
def get_user_by_email(email: Email, service: Service) -> UserRead:
    try:
        return UserRead.model_validate(service.find_by_email(email))
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.patch(
    "/by-email",
    response_model=UserRead,
    dependencies=[Depends(require_permissions(PERM_USER_UPDATE))],
)
def update_user_by_email(email: Email, payload: UserUpdate, service: Service) -> UserRead:
    try:
        return UserRead.model_validate(service.update_by_email(email, payload))
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.get(
    "/{user_id}",
    response_model=UserRead,
    dependencies=[Depends(require_permissions(PERM_USER_READ))],
)
def get_user(user_id: UUID, service: Service) -> UserRead:
    try:
        return UserRead.model_validate(service.find_by_id(str(user_id)))
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.patch(
    "/{user_id}",
    response_model=UserRead,
    dependencies=[Depends(require_permissions(PERM_USER_UPDATE))],
)
def update_user(user_id: UUID, payload: UserUpdate, service: Service) -> UserRead:
    try:
        return UserRead.model_validate(service.update_by_id(str(user_id), payload))
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.delete(
    "",
    response_model=DeleteResult,
    dependencies=[Depends(require_permissions(PERM_USER_DELETE))],
)
def delete_users(ids: IdList, service: Service) -> DeleteResult:
    try:
        return DeleteResult(deleted=service.delete_by_ids(as_ids(ids)))
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise
