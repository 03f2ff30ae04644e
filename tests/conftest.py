from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from rbac_admin import main as app_main
from rbac_admin.infra import db, passwords
from rbac_admin.services.bootstrap_service import BootstrapService

ROOT_EMAIL = "root@example.com"
ROOT_PASSWORD = "root-password-1"


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("JWT_SECRET", "test-signing-secret")
    monkeypatch.setattr(passwords, "PASSWORD_HASH_ITERATIONS", 1000)


@pytest.fixture()
def test_engine(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> Generator[Engine, None, None]:
    db_path = tmp_path / "rbac_test.db"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection: object, _connection_record: object) -> None:
        cursor = dbapi_connection.cursor()  # type: ignore[attr-defined]
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    SQLModel.metadata.create_all(engine)
    monkeypatch.setattr(db, "engine", engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def client(test_engine: Engine) -> Generator[TestClient, None, None]:
    test_client = TestClient(app_main.app)
    yield test_client
    test_client.close()


@pytest.fixture()
def root_headers(client: TestClient) -> dict[str, str]:
    BootstrapService().ensure_system_user(email=ROOT_EMAIL, password=ROOT_PASSWORD)
    response = client.post("/auth/login", json={"email": ROOT_EMAIL, "password": ROOT_PASSWORD})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
