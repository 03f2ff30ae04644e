from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status

from rbac_admin.api.deps import Context, IdList, Page, Sort, as_ids, require_permissions
from rbac_admin.api.errors import raise_http_error
from rbac_admin.domain.models import (
    DeleteResult,
    DepartmentCreate,
    DepartmentPage,
    DepartmentRead,
    DepartmentUpdate,
)
from rbac_admin.domain.permissions import (
    PERM_DEPARTMENT_CREATE,
    PERM_DEPARTMENT_DELETE,
    PERM_DEPARTMENT_READ,
    PERM_DEPARTMENT_UPDATE,
)
from rbac_admin.services.department_service import DepartmentService
from rbac_admin.services.errors import AccessAdminError

router = APIRouter()


def get_department_service(context: Context) -> DepartmentService:
    return DepartmentService(context)


Service = Annotated[DepartmentService, Depends(get_department_service)]


@router.post(
    "",
    response_model=DepartmentRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions(PERM_DEPARTMENT_CREATE))],
)
def create_department(payload: DepartmentCreate, service: Service) -> DepartmentRead:
    try:
        return DepartmentRead.model_validate(service.create(payload))
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.get(
    "",
    response_model=list[DepartmentRead],
    dependencies=[Depends(require_permissions(PERM_DEPARTMENT_READ))],
)
def list_departments_by_ids(ids: IdList, service: Service) -> list[DepartmentRead]:
    try:
        return [DepartmentRead.model_validate(item) for item in service.find_by_ids(as_ids(ids))]
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.get(
    "/search",
    response_model=DepartmentPage,
    dependencies=[Depends(require_permissions(PERM_DEPARTMENT_READ))],
)
def search_departments(page: Page, sort: Sort, service: Service, value: str = "") -> DepartmentPage:
    try:
        return service.search_for(value, page, sort)
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.patch(
    "/{department_id}",
    response_model=DepartmentRead,
    dependencies=[Depends(require_permissions(PERM_DEPARTMENT_UPDATE))],
)
def update_department(
    department_id: UUID,
    payload: DepartmentUpdate,
    service: Service,
) -> DepartmentRead:
    try:
        return DepartmentRead.model_validate(service.update(str(department_id), payload))
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise


@router.delete(
    "",
    response_model=DeleteResult,
    dependencies=[Depends(require_permissions(PERM_DEPARTMENT_DELETE))],
)
def delete_departments(ids: IdList, service: Service) -> DeleteResult:
    try:
        return DeleteResult(deleted=service.delete_by_ids(as_ids(ids)))
    except AccessAdminError as exc:
        raise_http_error(exc)
        raise
