from __future__ import annotations

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from rbac_admin.domain.models import PageQuery, PermissionCreate, RoleCreate, SortQuery
from rbac_admin.services.errors import ConflictError, NotFoundError
from rbac_admin.services.permission_service import PermissionService
from rbac_admin.services.role_service import RoleService


def test_batch_create_links_roles(test_engine: Engine) -> None:
    role = RoleService().create(RoleCreate(name="Dispatcher"))
    created = PermissionService().create(
        [
            PermissionCreate(code="mission:read", name="Read missions", role_ids=[role.id]),
            PermissionCreate(code="mission:write", name="Write missions"),
        ]
    )

    assert [item.code for item in created] == ["mission:read", "mission:write"]
    assert created[0].role_ids == [role.id]
    assert created[1].role_ids == []


def test_batch_with_existing_code_is_rejected_entirely(test_engine: Engine) -> None:
    service = PermissionService()
    service.create([PermissionCreate(code="alert:read", name="Read alerts")])

    with pytest.raises(ConflictError, match="alert:read"):
        service.create(
            [
                PermissionCreate(code="alert:ack", name="Acknowledge alerts"),
                PermissionCreate(code="alert:read", name="Read alerts again"),
            ]
        )
    with pytest.raises(NotFoundError):
        service.find_by_codes(["alert:ack"])


def test_batch_with_duplicate_inside_is_rejected(test_engine: Engine) -> None:
    with pytest.raises(ConflictError, match="Same name"):
        PermissionService().create(
            [
                PermissionCreate(code="a:one", name="Same name"),
                PermissionCreate(code="a:two", name="Same name"),
            ]
        )


def test_batch_with_unknown_role_is_rejected(test_engine: Engine) -> None:
    missing = str(uuid4())
    with pytest.raises(NotFoundError, match=missing):
        PermissionService().create([PermissionCreate(code="x:read", name="x", role_ids=[missing])])
    with pytest.raises(NotFoundError):
        PermissionService().find_by_codes(["x:read"])


def test_update_checks_other_permissions(client: TestClient, root_headers: dict[str, str]) -> None:
    created = client.post(
        "/permissions",
        json=[{"code": "kpi:read", "name": "Read KPIs"}, {"code": "kpi:write", "name": "Write KPIs"}],
        headers=root_headers,
    ).json()
    first = created[0]

    conflict = client.patch(f"/permissions/{first['id']}", json={"code": "kpi:write"}, headers=root_headers)
    assert conflict.status_code == 409

    unchanged = client.patch(f"/permissions/{first['id']}", json={"code": "kpi:read"}, headers=root_headers)
    assert unchanged.status_code == 200

    renamed = client.patch(f"/permissions/{first['id']}", json={"name": "View KPIs"}, headers=root_headers)
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "View KPIs"
    assert renamed.json()["code"] == "kpi:read"

    unknown = client.patch(f"/permissions/{uuid4()}", json={"name": "Ghost"}, headers=root_headers)
    assert unknown.status_code == 404


def test_search_is_case_insensitive(client: TestClient, root_headers: dict[str, str]) -> None:
    client.post("/permissions", json=[{"code": "billing:read", "name": "Read invoices"}], headers=root_headers)

    response = client.get("/permissions/search", params={"value": "BILLING"}, headers=root_headers)
    assert response.status_code == 200
    assert [item["code"] for item in response.json()["permissions"]] == ["billing:read"]


def test_delete_detaches_roles_first(client: TestClient, root_headers: dict[str, str]) -> None:
    permission = client.post(
        "/permissions",
        json=[{"code": "map:read", "name": "Read map"}],
        headers=root_headers,
    ).json()[0]
    role = client.post("/roles", json={"name": "Mapper", "permissions": ["map:read"]}, headers=root_headers).json()

    missing = str(uuid4())
    fail_fast = client.delete("/permissions", params={"ids": [permission["id"], missing]}, headers=root_headers)
    assert fail_fast.status_code == 404
    assert missing in fail_fast.json()["detail"]

    deleted = client.delete("/permissions", params={"ids": [permission["id"]]}, headers=root_headers)
    assert deleted.json() == {"deleted": 1}

    refreshed = client.get(f"/roles/{role['id']}", headers=root_headers)
    assert refreshed.json()["permissions"] == []


def test_find_by_ids_without_match_is_not_found(test_engine: Engine) -> None:
    with pytest.raises(NotFoundError):
        PermissionService().find_by_ids([str(uuid4())])
    assert PermissionService().delete_by_ids([]) == 0


def test_search_escapes_like_wildcards(test_engine: Engine) -> None:
    service = PermissionService()
    service.create(
        [
            PermissionCreate(code="report_view", name="View reports"),
            PermissionCreate(code="reportXview", name="View reports elsewhere"),
            PermissionCreate(code="quota:edit", name="Edit 100% quota"),
        ]
    )

    underscore = service.search_for("report_", PageQuery(), SortQuery())
    assert [item.code for item in underscore.permissions] == ["report_view"]

    percent = service.search_for("0%", PageQuery(), SortQuery())
    assert [item.code for item in percent.permissions] == ["quota:edit"]

    backslash = service.search_for("\\", PageQuery(), SortQuery())
    assert backslash.total == 0
