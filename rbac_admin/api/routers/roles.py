from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status

from rbac_admin.api.deps import Context, IdList, Page, Sort, as_ids, require_permissions
from rbac_admin.api.errors import raise_http_error
from rbac_admin.domain.models import (
    DeleteResult,
    RoleCreate,
    RolePage,
    RolePermissionsAdd,
    RoleRead,
    RoleUpdate,
)
from rbac_admin.domain.permissions import (
    PERM_ROLE_CREATE,
    PERM_ROLE_DELETE,
    PERM_ROLE_READ,
    PERM_ROLE_UPDATE,
)
from rbac_admin.services.errors import AccessAdminError
from rbac_admin.services.role_service import RoleService

router = APIRouter()


def get_role_service(context: Context) -> RoleService:
    return RoleService(context)


Service = Annotated[RoleService, Depends(get_role_service)]


@router.post(
    "",
    response_model=RoleRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions(PERM_ROLE_CREATE))],
)
def create_role(payload: RoleCreate, service: Service) -> RoleRead:
    try:
        return service.create(payload)
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.get(
    "",
    response_model=list[RoleRead],
    dependencies=[Depends(require_permissions(PERM_ROLE_READ))],
)
def list_roles_by_ids(ids: IdList, service: Service) -> list[RoleRead]:
    try:
        return service.find_by_ids(as_ids(ids))
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.get(
    "/search",
    response_model=RolePage,
    dependencies=[Depends(require_permissions(PERM_ROLE_READ))],
)
def search_roles(page: Page, sort: Sort, service: Service, value: str = "") -> RolePage:
    try:
        return service.search_for(value, page, sort)
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.get(
    "/{role_id}",
    response_model=RoleRead,
    dependencies=[Depends(require_permissions(PERM_ROLE_READ))],
)
def get_role(role_id: UUID, service: Service) -> RoleRead:
    try:
        return service.find_by_ids([str(role_id)])[0]
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.post(
    "/{role_id}/permissions",
    response_model=RoleRead,
    dependencies=[Depends(require_permissions(PERM_ROLE_UPDATE))],
)
def add_permissions_to_role(role_id: UUID, payload: RolePermissionsAdd, service: Service) -> RoleRead:
    try:
        return service.add_permissions_to_role(payload.permission_ids, str(role_id))
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.patch(
    "/{role_id}",
    response_model=RoleRead,
    dependencies=[Depends(require_permissions(PERM_ROLE_UPDATE))],
)
def update_role(role_id: UUID, payload: RoleUpdate, service: Service) -> RoleRead:
    try:
        return service.update(str(role_id), payload)
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.delete(
    "",
    response_model=DeleteResult,
    dependencies=[Depends(require_permissions(PERM_ROLE_DELETE))],
)
def delete_roles(ids: IdList, service: Service) -> DeleteResult:
    try:
        return DeleteResult(deleted=service.delete_by_ids(as_ids(ids)))
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise
