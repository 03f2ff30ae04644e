from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from rbac_admin.api.deps import Context, IdList, Page, Sort, as_ids, require_permissions
from rbac_admin.api.errors import raise_http_error
from rbac_admin.domain.models import (
    DeleteResult,
    PermissionCreate,
    PermissionPage,
    PermissionRead,
    PermissionUpdate,
)
from rbac_admin.domain.permissions import (
    PERM_PERMISSION_CREATE,
    PERM_PERMISSION_DELETE,
    PERM_PERMISSION_READ,
    PERM_PERMISSION_UPDATE,
)
from rbac_admin.services.errors import AccessAdminError
from rbac_admin.services.permission_service import PermissionService

router = APIRouter()


def get_permission_service(context: Context) -> PermissionService:
    return PermissionService(context)


Service = Annotated[PermissionService, Depends(get_permission_service)]


@router.post(
    "",
    response_model=list[PermissionRead],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions(PERM_PERMISSION_CREATE))],
)
def create_permissions(payload: list[PermissionCreate], service: Service) -> list[PermissionRead]:
    try:
        return service.create(payload)
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.get(
    "",
    response_model=list[PermissionRead],
    dependencies=[Depends(require_permissions(PERM_PERMISSION_READ))],
)
def list_permissions_by_ids(ids: IdList, service: Service) -> list[PermissionRead]:
    try:
        return service.find_by_ids(as_ids(ids))
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.get(
    "/by-codes",
    response_model=list[PermissionRead],
    dependencies=[Depends(require_permissions(PERM_PERMISSION_READ))],
)
def list_permissions_by_codes(
    codes: Annotated[list[str], Query(min_length=1)],
    service: Service,
) -> list[PermissionRead]:
    try:
        return service.find_by_codes(codes)
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.get(
    "/search",
    response_model=PermissionPage,
    dependencies=[Depends(require_permissions(PERM_PERMISSION_READ))],
)
def search_permissions(page: Page, sort: Sort, service: Service, value: str = "") -> PermissionPage:
    try:
        return service.search_for(value, page, sort)
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.patch(
    "/{permission_id}",
    response_model=PermissionRead,
    dependencies=[Depends(require_permissions(PERM_PERMISSION_UPDATE))],
)
def update_permission(permission_id: UUID, payload: PermissionUpdate, service: Service) -> PermissionRead:
    try:
        return service.update(str(permission_id), payload)
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.delete(
    "",
    response_model=DeleteResult,
    dependencies=[Depends(require_permissions(PERM_PERMISSION_DELETE))],
)
def delete_permissions(ids: IdList, service: Service) -> DeleteResult:
    try:
        return DeleteResult(deleted=service.delete_by_ids(as_ids(ids)))
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise
