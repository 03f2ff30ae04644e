from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from functools import cache
from typing import Any

from sqlmodel import Session, col, select

from rbac_admin.domain.models import Permission, Role, RolePermission, TokenResponse, User, UserRole
from rbac_admin.domain.state_machine import LoginStage, can_transition
from rbac_admin.infra.auth import create_access_token, decode_access_token
from rbac_admin.infra.db import session_scope
from rbac_admin.infra.logging import get_logger
from rbac_admin.infra.passwords import hash_password, new_opaque_token, verify_password
from rbac_admin.infra.tracing import RequestContext, traced
from rbac_admin.services.errors import AuthError

AUTH_FAILED_MESSAGE = "Authentication failed"
INVALID_CREDENTIALS_MESSAGE = "Invalid credentials"
INACTIVE_USER_MESSAGE = "User is not active, if you think this is a mistake please contact support"
NO_ROLES_MESSAGE = "User has no roles assigned, please contact support"
NO_PERMISSIONS_MESSAGE = "User has no permissions assigned, please contact support"


@cache
def _dummy_password_hash() -> str:
    """Hash checked when the email is unknown, so both failures cost one verification."""
    return hash_password(new_opaque_token())


@dataclass(frozen=True)
class Principal:
    user_id: str
    email: str
    permissions: tuple[str, ...]


class AuthService:
    def __init__(self, context: RequestContext | None = None) -> None:
        self.context = context or RequestContext()
        self.log = get_logger(__name__)
        self.security_log = get_logger("rbac_admin.security")

    def _advance(self, current: LoginStage, target: LoginStage) -> LoginStage:
        if not can_transition(current, target):
            raise RuntimeError(f"illegal login transition: {current} -> {target}")
        return target

    def _reject(self, stage: LoginStage, message: str, **detail: Any) -> AuthError:
        self.context.bind(self.security_log).warning("login_failed", stage=str(stage), **detail)
        return AuthError(message)

    def collect_permission_codes(self, session: Session, roles: list[Role]) -> list[str]:
        """Flatten the codes granted by ``roles``, role by role, keeping duplicates."""
        statement = (
            select(RolePermission.role_id, Permission.code)
            .join(Permission, col(Permission.id) == col(RolePermission.permission_id))
            .where(col(RolePermission.role_id).in_([item.id for item in roles]))
            .order_by(col(Permission.code))
        )
        by_role: dict[str, list[str]] = defaultdict(list)
        for role_id, code in session.exec(statement).all():
            by_role[role_id].append(code)
        return [code for role in roles for code in by_role[role.id]]

    @traced("auth.login")
    def login(self, email: str, password: str) -> TokenResponse:
        stage = LoginStage.CREDENTIALS_RECEIVED
        with session_scope() as session:
            user = session.exec(
                select(User).where(User.email == email).order_by(col(User.created_at).desc())
            ).first()
            if user is None:
                verify_password(password, _dummy_password_hash())
                raise self._reject(stage, AUTH_FAILED_MESSAGE)
            stage = self._advance(stage, LoginStage.USER_RESOLVED)

            if not verify_password(password, user.password_hash):
                raise self._reject(stage, INVALID_CREDENTIALS_MESSAGE, user_id=user.id)
            stage = self._advance(stage, LoginStage.PASSWORD_VERIFIED)

            if not user.is_active:
                raise self._reject(stage, INACTIVE_USER_MESSAGE, user_id=user.id)
            stage = self._advance(stage, LoginStage.ACTIVE_CHECKED)

            role_ids = list(
                dict.fromkeys(
                    session.exec(select(UserRole.role_id).where(UserRole.user_id == user.id)).all()
                )
            )
            if not role_ids:
                raise self._reject(stage, NO_ROLES_MESSAGE, user_id=user.id)
            stage = self._advance(stage, LoginStage.ROLES_RESOLVED)

            roles = list(
                session.exec(
                    select(Role)
                    .where(col(Role.id).in_(role_ids))
                    .order_by(col(Role.created_at).desc(), col(Role.id))
                ).all()
            )
            if not roles:
                raise self._reject(
                    stage,
                    f"{NO_PERMISSIONS_MESSAGE}, roles: {', '.join(role_ids)}",
                    user_id=user.id,
                )
            permissions = self.collect_permission_codes(session, roles)
            stage = self._advance(stage, LoginStage.PERMISSIONS_RESOLVED)

        token = create_access_token(user_id=user.id, email=user.email, permissions=permissions)
        stage = self._advance(stage, LoginStage.TOKEN_ISSUED)
        self.context.bind(self.security_log).info(
            "login_succeeded",
            user_id=user.id,
            permission_count=len(permissions),
        )
        return TokenResponse(access_token=token)

    def authenticate_token(self, token: str) -> Principal:
        """Verify ``token`` and confirm its subject still exists."""
        try:
            claims = decode_access_token(token)
        except Exception as exc:
            raise AuthError("Invalid token") from exc
        permissions = claims.get("permissions", [])
        if not isinstance(permissions, list):
            raise AuthError("Invalid token")
        with session_scope() as session:
            user = session.get(User, str(claims["sub"]))
        if user is None:
            raise AuthError("Invalid token")
        return Principal(
            user_id=user.id,
            email=user.email,
            permissions=tuple(str(item) for item in permissions),
        )
