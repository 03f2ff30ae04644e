from __future__ import annotations

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlmodel import Session

from rbac_admin.domain.models import DepartmentCreate, Role, RoleCreate, UserCreate, UserRoleCreate
from rbac_admin.infra import db
from rbac_admin.services.department_service import DepartmentService
from rbac_admin.services.errors import ConflictError, NotFoundError
from rbac_admin.services.role_service import RoleService
from rbac_admin.services.user_role_service import BINDING_BATCH_SIZE, UserRoleService
from rbac_admin.services.user_service import UserService


def _user(email: str, department_id: str) -> str:
    payload = UserCreate(
        first_name="Lin",
        last_name="Binder",
        email=email,
        password="binder-password",
        department_ids=[department_id],
    )
    return UserService().create(payload).id


@pytest.fixture()
def department_id(test_engine: Engine) -> str:
    return DepartmentService().create(DepartmentCreate(name="Bindings", country="US")).id


def test_create_bindings_and_reject_rebinding(department_id: str) -> None:
    user_id = _user("lin@example.com", department_id)
    admin_id = _user("admin@example.com", department_id)
    first = RoleService().create(RoleCreate(name="First"))
    second = RoleService().create(RoleCreate(name="Second"))
    service = UserRoleService()

    bindings = service.create(
        UserRoleCreate(user_id=user_id, role_ids=[first.id, second.id], assigned_by_id=admin_id)
    )
    assert {item.role_id for item in bindings} == {first.id, second.id}
    assert all(item.assigned_by_id == admin_id for item in bindings)

    with pytest.raises(ConflictError):
        service.create(UserRoleCreate(user_id=user_id, role_ids=[first.id], assigned_by_id=admin_id))


def test_create_requires_every_role_and_both_users(department_id: str) -> None:
    user_id = _user("lin@example.com", department_id)
    role = RoleService().create(RoleCreate(name="Only"))
    missing = str(uuid4())
    service = UserRoleService()

    with pytest.raises(NotFoundError, match=missing):
        service.create(UserRoleCreate(user_id=user_id, role_ids=[role.id, missing], assigned_by_id=user_id))
    assert service.find_by_ids(user_ids=[user_id]) == []

    with pytest.raises(NotFoundError):
        service.create(UserRoleCreate(user_id=user_id, role_ids=[role.id], assigned_by_id=str(uuid4())))
    with pytest.raises(NotFoundError):
        service.create(UserRoleCreate(user_id=str(uuid4()), role_ids=[role.id], assigned_by_id=user_id))


def test_create_handles_more_roles_than_one_batch(department_id: str) -> None:
    user_id = _user("many@example.com", department_id)
    with Session(db.get_engine(), expire_on_commit=False) as session:
        roles = [Role(name=f"bulk-{index:03d}") for index in range(BINDING_BATCH_SIZE + 10)]
        session.add_all(roles)
        session.commit()
        role_ids = [item.id for item in roles]

    bindings = UserRoleService().create(
        UserRoleCreate(user_id=user_id, role_ids=role_ids, assigned_by_id=user_id)
    )
    assert len(bindings) == BINDING_BATCH_SIZE + 10
    assert len(UserRoleService().find_by_ids(user_ids=[user_id])) == BINDING_BATCH_SIZE + 10


def test_find_by_ids_intersects_filters(department_id: str) -> None:
    ann = _user("ann@example.com", department_id)
    bob = _user("bob@example.com", department_id)
    reader = RoleService().create(RoleCreate(name="Reader"))
    writer = RoleService().create(RoleCreate(name="Writer"))
    service = UserRoleService()
    service.create(UserRoleCreate(user_id=ann, role_ids=[reader.id, writer.id], assigned_by_id=bob))
    service.create(UserRoleCreate(user_id=bob, role_ids=[reader.id], assigned_by_id=bob))

    assert len(service.find_by_ids(role_ids=[reader.id])) == 2
    narrowed = service.find_by_ids(user_ids=[ann], role_ids=[reader.id])
    assert [(item.user_id, item.role_id) for item in narrowed] == [(ann, reader.id)]
    assert len(service.find_by_ids(assigned_by_ids=[bob])) == 3
    assert service.find_by_ids(user_ids=[bob], role_ids=[writer.id]) == []


def test_find_by_user_email_matches_bound_or_assigning_user(department_id: str) -> None:
    ann = _user("ann@example.com", department_id)
    bob = _user("bob@example.com", department_id)
    role = RoleService().create(RoleCreate(name="Clerk"))
    service = UserRoleService()
    service.create(UserRoleCreate(user_id=ann, role_ids=[role.id], assigned_by_id=bob))

    assert service.find_by_user_email("ann@example.com").user_id == ann
    assert service.find_by_user_email("bob@example.com").user_id == ann
    with pytest.raises(NotFoundError):
        service.find_by_user_email("nobody@example.com")


def test_assign_and_unassign_over_http(client: TestClient, root_headers: dict[str, str]) -> None:
    department = client.post("/departments", json={"name": "Http", "country": "US"}, headers=root_headers).json()
    role = client.post("/roles", json={"name": "Http Role"}, headers=root_headers).json()
    user = client.post(
        "/users",
        json={
            "first_name": "Hal",
            "last_name": "Http",
            "email": "hal@example.com",
            "password": "http-password",
            "department_ids": [department["id"]],
        },
        headers=root_headers,
    ).json()

    assigned = client.post(f"/user-roles/assign/{user['id']}", json={"role_id": role["id"]}, headers=root_headers)
    assert assigned.status_code == 201
    assert assigned.json()["assigned_by_id"] == user["id"]

    by_email = client.get("/user-roles/by-email", params={"email": "hal@example.com"}, headers=root_headers)
    assert by_email.json()["role_id"] == role["id"]

    empty = client.post("/user-roles/unassign", json={"user_ids": [user["id"]], "role_ids": []}, headers=root_headers)
    assert empty.json() == {"unassigned": False}

    removed = client.post(
        "/user-roles/unassign",
        json={"user_ids": [user["id"]], "role_ids": [role["id"]]},
        headers=root_headers,
    )
    assert removed.json() == {"unassigned": True}

    again = client.post(
        "/user-roles/unassign",
        json={"user_ids": [user["id"]], "role_ids": [role["id"]]},
        headers=root_headers,
    )
    assert again.status_code == 404


def test_bulk_create_over_http(client: TestClient, root_headers: dict[str, str]) -> None:
    department = client.post("/departments", json={"name": "Bulk", "country": "US"}, headers=root_headers).json()
    roles = [client.post("/roles", json={"name": name}, headers=root_headers).json() for name in ("R1", "R2")]
    user = client.post(
        "/users",
        json={
            "first_name": "Bea",
            "last_name": "Bulk",
            "email": "bea@example.com",
            "password": "bulk-password",
            "department_ids": [department["id"]],
        },
        headers=root_headers,
    ).json()
    me = client.get("/me", headers=root_headers).json()

    response = client.post(
        "/user-roles",
        json={"user_id": user["id"], "role_ids": [item["id"] for item in roles], "assigned_by_id": me["id"]},
        headers=root_headers,
    )
    assert response.status_code == 201
    assert len(response.json()) == 2
