from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from rbac_admin.api.deps import Context, require_permissions
from rbac_admin.api.errors import raise_http_error
from rbac_admin.domain.models import (
    UnassignResult,
    UserRoleAssign,
    UserRoleCreate,
    UserRoleRead,
    UserRoleUnassign,
)
from rbac_admin.domain.permissions import (
    PERM_USER_ROLE_CREATE,
    PERM_USER_ROLE_DELETE,
    PERM_USER_ROLE_READ,
)
from rbac_admin.services.errors import AccessAdminError
from rbac_admin.services.user_role_service import UserRoleService

router = APIRouter()


def get_user_role_service(context: Context) -> UserRoleService:
    return UserRoleService(context)


Service = Annotated[UserRoleService, Depends(get_user_role_service)]
OptionalIds = Annotated[list[UUID] | None, Query()]


@router.post(
    "",
    response_model=list[UserRoleRead],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions(PERM_USER_ROLE_CREATE))],
)
def create_user_roles(payload: UserRoleCreate, service: Service) -> list[UserRoleRead]:
    try:
        return [UserRoleRead.model_validate(item) for item in service.create(payload)]
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.get(
    "",
    response_model=list[UserRoleRead],
    dependencies=[Depends(require_permissions(PERM_USER_ROLE_READ))],
)
def list_user_roles(
    service: Service,
    user_ids: OptionalIds = None,
    role_ids: OptionalIds = None,
    assigned_by_ids: OptionalIds = None,
) -> list[UserRoleRead]:
    bindings = service.find_by_ids(
        user_ids=[str(item) for item in user_ids or []],
        role_ids=[str(item) for item in role_ids or []],
        assigned_by_ids=[str(item) for item in assigned_by_ids or []],
    )
    return [UserRoleRead.model_validate(item) for item in bindings]


@router.get(
    "/by-email",
    response_model=UserRoleRead,
    dependencies=[Depends(require_permissions(PERM_USER_ROLE_READ))],
)
def get_user_role_by_email(email: Annotated[str, Query(min_length=3)], service: Service) -> UserRoleRead:
    try:
        return UserRoleRead.model_validate(service.find_by_user_email(email))
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.post(
    "/assign/{user_id}",
    response_model=UserRoleRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions(PERM_USER_ROLE_CREATE))],
)
def assign_role(user_id: UUID, payload: UserRoleAssign, service: Service) -> UserRoleRead:
    try:
        return UserRoleRead.model_validate(service.assign_role_to_user(str(user_id), payload.role_id))
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.post(
    "/unassign",
    response_model=UnassignResult,
    dependencies=[Depends(require_permissions(PERM_USER_ROLE_DELETE))],
)
def unassign_roles(payload: UserRoleUnassign, service: Service) -> UnassignResult:
    try:
        return UnassignResult(
            unassigned=service.unassign_role_from_user(payload.user_ids, payload.role_ids)
        )
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise
