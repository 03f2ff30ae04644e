from __future__ import annotations

import os

from sqlmodel import Session, select

from rbac_admin.domain.models import Department, Permission, Role, RolePermission, User, UserRole
from rbac_admin.domain.permissions import PERM_ROOT_ALL
from rbac_admin.infra.db import session_scope
from rbac_admin.infra.logging import get_logger
from rbac_admin.infra.passwords import hash_password, new_opaque_token
from rbac_admin.infra.tracing import RequestContext

SYSTEM_USER_EMAIL = os.getenv("SYSTEM_USER_EMAIL", "system@rbac-admin.local")
SYSTEM_USER_PASSWORD = os.getenv("SYSTEM_USER_PASSWORD", "change-me-system")
SYSTEM_NAME = "System"
SYSTEM_COUNTRY = "US"
SYSTEM_PERMISSION_NAME = "System Permissions"


class BootstrapService:
    """Seeds the super-admin account that owns ``root_all``."""

    def __init__(self, context: RequestContext | None = None) -> None:
        self.context = context or RequestContext()
        self.log = get_logger(__name__)

    def _department(self, session: Session) -> Department:
        department = session.exec(select(Department).where(Department.name == SYSTEM_NAME)).first()
        if department is None:
            department = Department(name=SYSTEM_NAME, country=SYSTEM_COUNTRY)
            session.add(department)
        return department

    def _role(self, session: Session) -> Role:
        role = session.exec(select(Role).where(Role.name == SYSTEM_NAME)).first()
        if role is None:
            role = Role(name=SYSTEM_NAME)
            session.add(role)
        return role

    def _root_permission(self, session: Session) -> Permission:
        permission = session.exec(select(Permission).where(Permission.code == PERM_ROOT_ALL)).first()
        if permission is None:
            permission = Permission(code=PERM_ROOT_ALL, name=SYSTEM_PERMISSION_NAME)
            session.add(permission)
        return permission

    def ensure_system_user(
        self,
        email: str | None = None,
        password: str | None = None,
    ) -> User:
        email = email or SYSTEM_USER_EMAIL
        log = self.context.bind(self.log)
        with session_scope() as session:
            existing = session.exec(select(User).where(User.email == email)).first()
            if existing is not None:
                log.info("system_user_present", user_id=existing.id)
                return existing

            department = self._department(session)
            role = self._role(session)
            permission = self._root_permission(session)
            user = User(
                first_name=SYSTEM_NAME,
                last_name="User",
                email=email,
                password_hash=hash_password(password or SYSTEM_USER_PASSWORD),
                is_email_verified=True,
                email_verification_token=new_opaque_token(),
                password_reset_token=new_opaque_token(),
            )
            session.add(user)
            session.flush()

            department.user_id = user.id
            session.add(department)
            if session.get(RolePermission, (role.id, permission.id)) is None:
                session.add(RolePermission(role_id=role.id, permission_id=permission.id))
            session.add(UserRole(user_id=user.id, role_id=role.id, assigned_by_id=user.id))
            session.flush()
        log.info("system_user_created", user_id=user.id)
        return user
