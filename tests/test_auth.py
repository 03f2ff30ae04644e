from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
import pytest
from fastapi.testclient import TestClient

from rbac_admin.infra.auth import JWT_ALGORITHM, create_access_token, decode_access_token
from rbac_admin.infra.passwords import verify_password
from rbac_admin.services import auth_service
from rbac_admin.services.auth_service import (
    AUTH_FAILED_MESSAGE,
    INACTIVE_USER_MESSAGE,
    INVALID_CREDENTIALS_MESSAGE,
    NO_ROLES_MESSAGE,
)

PASSWORD = "member-password"


def _auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _login(client: TestClient, email: str, password: str = PASSWORD) -> str:
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    assert response.json()["token_type"] == "bearer"
    return response.json()["access_token"]


def _create_member(
    client: TestClient,
    headers: dict[str, str],
    email: str,
    role_ids: list[str],
) -> dict:
    department = client.post(
        "/departments",
        json={"name": f"dept-{email}", "country": "US"},
        headers=headers,
    ).json()
    response = client.post(
        "/users",
        json={
            "first_name": "Mem",
            "last_name": "Ber",
            "email": email,
            "password": PASSWORD,
            "department_ids": [department["id"]],
            "role_ids": role_ids,
        },
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


def _role_with(client: TestClient, headers: dict[str, str], name: str, codes: list[str]) -> str:
    existing = client.get("/permissions/search", params={"limit": 500}, headers=headers).json()["permissions"]
    known = {item["code"] for item in existing}
    fresh = [{"code": code, "name": code} for code in codes if code not in known]
    if fresh:
        assert client.post("/permissions", json=fresh, headers=headers).status_code == 201
    response = client.post("/roles", json={"name": name, "permissions": codes}, headers=headers)
    assert response.status_code == 201
    return response.json()["id"]


def test_login_flattens_permissions_across_roles(client: TestClient, root_headers: dict[str, str]) -> None:
    first = _role_with(client, root_headers, "R1", ["doc:read", "doc:write"])
    second = _role_with(client, root_headers, "R2", ["doc:read", "doc:share"])
    user = _create_member(client, root_headers, "member@example.com", [first, second])

    token = _login(client, "member@example.com")
    claims = decode_access_token(token)
    assert claims["sub"] == user["id"]
    assert claims["email"] == "member@example.com"
    assert sorted(claims["permissions"]) == ["doc:read", "doc:read", "doc:share", "doc:write"]
    assert claims["exp"] > claims["iat"]

    again = decode_access_token(_login(client, "member@example.com"))
    assert again["permissions"] == claims["permissions"]


def test_login_failures_are_unauthorized(client: TestClient, root_headers: dict[str, str]) -> None:
    role = _role_with(client, root_headers, "Viewer", ["doc:read"])
    _create_member(client, root_headers, "viewer@example.com", [role])

    unknown = client.post("/auth/login", json={"email": "ghost@example.com", "password": PASSWORD})
    assert unknown.status_code == 401
    assert unknown.json()["detail"] == AUTH_FAILED_MESSAGE

    wrong = client.post("/auth/login", json={"email": "viewer@example.com", "password": "nope"})
    assert wrong.status_code == 401
    assert wrong.json()["detail"] == INVALID_CREDENTIALS_MESSAGE


def test_inactive_user_cannot_login(client: TestClient, root_headers: dict[str, str]) -> None:
    role = _role_with(client, root_headers, "Sleeper", ["doc:read"])
    user = _create_member(client, root_headers, "inactive@example.com", [role])
    client.patch(f"/users/{user['id']}", json={"is_active": False}, headers=root_headers)

    response = client.post("/auth/login", json={"email": "inactive@example.com", "password": PASSWORD})
    assert response.status_code == 401
    assert response.json()["detail"] == INACTIVE_USER_MESSAGE


def test_user_without_roles_cannot_login(client: TestClient, root_headers: dict[str, str]) -> None:
    _create_member(client, root_headers, "roleless@example.com", [])

    response = client.post("/auth/login", json={"email": "roleless@example.com", "password": PASSWORD})
    assert response.status_code == 401
    assert response.json()["detail"] == NO_ROLES_MESSAGE


def test_guard_requires_route_permissions(client: TestClient, root_headers: dict[str, str]) -> None:
    role = _role_with(client, root_headers, "Role Reader", ["role:read"])
    _create_member(client, root_headers, "reader@example.com", [role])
    headers = _auth_header(_login(client, "reader@example.com"))

    allowed = client.get("/roles/search", headers=headers)
    assert allowed.status_code == 200

    denied = client.post("/roles", json={"name": "Sneaky"}, headers=headers)
    assert denied.status_code == 403
    assert denied.json()["detail"] == "You do not have the required permissions: role:create"


def test_role_without_permissions_yields_empty_grant(client: TestClient, root_headers: dict[str, str]) -> None:
    empty_role = client.post("/roles", json={"name": "Empty"}, headers=root_headers).json()
    _create_member(client, root_headers, "empty@example.com", [empty_role["id"]])
    token = _login(client, "empty@example.com")
    assert decode_access_token(token)["permissions"] == []

    denied = client.get("/roles/search", headers=_auth_header(token))
    assert denied.status_code == 403
    assert denied.json()["detail"] == "You do not have any permissions assigned"

    me = client.get("/me", headers=_auth_header(token))
    assert me.status_code == 200
    assert me.json()["email"] == "empty@example.com"


def test_invalid_or_orphaned_tokens_are_rejected(client: TestClient, root_headers: dict[str, str]) -> None:
    assert client.get("/me").status_code == 401
    assert client.get("/me", headers=_auth_header("not-a-token")).status_code == 401

    orphan = create_access_token(user_id="deleted-user", email="gone@example.com", permissions=["root_all"])
    response = client.get("/roles/search", headers=_auth_header(orphan))
    assert response.status_code == 401

    root_id = decode_access_token(root_headers["Authorization"].removeprefix("Bearer "))["sub"]
    issued_at = datetime.now(UTC) - timedelta(hours=2)
    expired = jwt.encode(
        {
            "sub": root_id,
            "email": "root@example.com",
            "permissions": ["root_all"],
            "iat": issued_at,
            "exp": issued_at + timedelta(minutes=5),
        },
        "test-signing-secret",
        algorithm=JWT_ALGORITHM,
    )
    assert client.get("/roles/search", headers=_auth_header(expired)).status_code == 401

    forged = jwt.encode(
        {
            "sub": root_id,
            "email": "root@example.com",
            "permissions": ["root_all"],
            "iat": datetime.now(UTC),
            "exp": datetime.now(UTC) + timedelta(minutes=5),
        },
        "some-other-secret",
        algorithm=JWT_ALGORITHM,
    )
    assert client.get("/roles/search", headers=_auth_header(forged)).status_code == 401
    assert client.get("/roles/search", headers=root_headers).status_code == 200


def test_unknown_email_still_checks_a_password_hash(
    client: TestClient, root_headers: dict[str, str], monkeypatch: pytest.MonkeyPatch
) -> None:
    checked: list[str] = []

    def _recording_verify(password: str, stored_hash: str) -> bool:
        checked.append(stored_hash)
        return verify_password(password, stored_hash)

    monkeypatch.setattr(auth_service, "verify_password", _recording_verify)
    response = client.post("/auth/login", json={"email": "nobody@example.com", "password": PASSWORD})

    assert response.status_code == 401
    assert response.json()["detail"] == AUTH_FAILED_MESSAGE
    assert len(checked) == 1
    assert checked[0].startswith("pbkdf2_sha256$")
