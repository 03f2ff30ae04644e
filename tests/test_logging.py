from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from structlog.testing import capture_logs

from rbac_admin.domain.models import UserUpdate
from rbac_admin.infra.logging import SensitiveDataProcessor, mask_sensitive
from rbac_admin.infra.tracing import RequestContextMiddleware
from rbac_admin.services.errors import NotFoundError
from rbac_admin.services.user_service import UserService


def test_processor_masks_secrets_and_emails() -> None:
    event = SensitiveDataProcessor()(
        None,
        "info",
        {
            "event": "login_failed",
            "password": "hunter2-hunter2",
            "password_hash": "pbkdf2_sha256$1000$salt$digest",
            "access_token": "eyJhbGciOi",
            "jwt_secret": "signing-key",
            "email": "alice@example.com",
            "detail": "user with email not found: alice.secret@example.com",
            "payload": {"user": {"email": "bob@example.com", "token": "abc"}},
            "status_code": 404,
        },
    )

    assert event["password"] == "***"
    assert event["password_hash"] == "***"
    assert event["access_token"] == "***"
    assert event["jwt_secret"] == "***"
    assert event["email"] == "***mple.com"
    assert event["detail"] == "user with email not found: ***@example.com"
    assert event["payload"] == {"user": {"email": "***ple.com", "token": "***"}}
    assert event["status_code"] == 404
    assert event["event"] == "login_failed"


def test_text_without_addresses_is_unchanged() -> None:
    assert mask_sensitive("role not found: 42") == "role not found: 42"
    assert mask_sensitive(None) is None


def test_failed_operation_does_not_log_raw_email(test_engine: Engine) -> None:
    email = "alice.secret@example.com"
    with capture_logs() as logs:
        with pytest.raises(NotFoundError):
            UserService().update_by_email(email, UserUpdate(first_name="Alice"))

    failed = [entry for entry in logs if entry["event"] == "operation_failed"]
    assert failed
    assert failed[0]["operation"] == "user.update_by_email"
    assert failed[0]["detail"] == "user with email not found: ***@example.com"
    assert not any(email in str(entry) for entry in logs)


def test_request_failure_is_logged_with_trace_id() -> None:
    app = FastAPI()
    app.add_middleware(RequestContextMiddleware)

    @app.get("/boom")
    def boom() -> None:
        raise RuntimeError("database exploded for carol@example.com")

    client = TestClient(app)
    with capture_logs() as logs:
        with pytest.raises(RuntimeError):
            client.get("/boom", headers={"X-Request-ID": "trace-boom"})

    failed = [entry for entry in logs if entry["event"] == "request_failed"]
    assert len(failed) == 1
    assert failed[0]["trace_id"] == "trace-boom"
    assert failed[0]["path"] == "/boom"
    assert failed[0]["error"] == "RuntimeError"
    assert "carol@example.com" not in failed[0]["detail"]
