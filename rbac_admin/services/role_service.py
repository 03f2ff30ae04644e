from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from rbac_admin.domain.models import (
    PageQuery,
    Permission,
    PermissionSummary,
    Role,
    RoleCreate,
    RolePage,
    RolePermission,
    RoleRead,
    RoleUpdate,
    SortQuery,
    now_utc,
)
from rbac_admin.infra.db import session_scope
from rbac_admin.infra.logging import get_logger
from rbac_admin.infra.tracing import RequestContext, traced
from rbac_admin.services.errors import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    ensure_all_found,
)
from rbac_admin.services.listing import LIKE_ESCAPE, like_pattern, search_page, total_pages
from rbac_admin.services.permission_service import PermissionService


class RoleService:
    def __init__(
        self,
        context: RequestContext | None = None,
        permission_service: PermissionService | None = None,
    ) -> None:
        self.context = context or RequestContext()
        self.permission_service = permission_service or PermissionService(self.context)
        self.log = get_logger(__name__)

    def _name_taken(self, session: Session, name: str, *, exclude_id: str | None = None) -> bool:
        statement = select(Role.id).where(Role.name == name)
        if exclude_id is not None:
            statement = statement.where(Role.id != exclude_id)
        return session.exec(statement).first() is not None

    def _to_read(self, session: Session, roles: Sequence[Role]) -> list[RoleRead]:
        """Attach each role's permissions, codes ordered for stable output."""
        ids = [item.id for item in roles]
        by_role: dict[str, list[PermissionSummary]] = defaultdict(list)
        if ids:
            statement = (
                select(RolePermission.role_id, Permission)
                .join(Permission, col(Permission.id) == col(RolePermission.permission_id))
                .where(col(RolePermission.role_id).in_(ids))
                .order_by(col(Permission.code), col(Permission.name))
            )
            for role_id, permission in session.exec(statement).all():
                by_role[role_id].append(PermissionSummary.model_validate(permission))
        return [
            RoleRead.model_validate({**item.model_dump(), "permissions": by_role[item.id]})
            for item in roles
        ]

    def _link(self, session: Session, role_id: str, permission_ids: Sequence[str]) -> None:
        already = set(
            session.exec(
                select(RolePermission.permission_id).where(RolePermission.role_id == role_id)
            ).all()
        )
        for permission_id in dict.fromkeys(permission_ids):
            if permission_id in already:
                continue
            session.add(RolePermission(role_id=role_id, permission_id=permission_id))

    @traced("role.create")
    def create(self, payload: RoleCreate) -> RoleRead:
        with session_scope() as session:
            if self._name_taken(session, payload.name):
                raise ConflictError(f"role name already exists: {payload.name}")
            permission_ids: list[str] = []
            if payload.permissions:
                codes = list(dict.fromkeys(payload.permissions))
                resolved = self.permission_service.find_by_codes(codes, session=session)
                ensure_all_found("permissions", codes, [item.code for item in resolved], key="codes")
                permission_ids = [item.id for item in resolved]
            role = Role(name=payload.name)
            session.add(role)
            try:
                session.flush()
            except IntegrityError as exc:
                raise ConflictError(f"role name already exists: {payload.name}") from exc
            self._link(session, role.id, permission_ids)
            session.flush()
            result = self._to_read(session, [role])[0]
        self.context.bind(self.log).info("role_created", role_id=result.id)
        return result

    @traced("role.add_permissions")
    def add_permissions_to_role(self, permission_ids: list[str], role_id: str) -> RoleRead:
        with session_scope() as session:
            role = session.get(Role, role_id)
            if role is None:
                raise NotFoundError(f"role not found: {role_id}")
            resolved = self.permission_service.find_by_ids(permission_ids, session=session)
            ensure_all_found("permissions", permission_ids, [item.id for item in resolved])
            self._link(session, role.id, permission_ids)
            role.updated_at = now_utc()
            session.add(role)
            session.flush()
            return self._to_read(session, [role])[0]

    def find_by_ids(self, ids: list[str]) -> list[RoleRead]:
        with session_scope() as session:
            rows = session.exec(select(Role).where(col(Role.id).in_(ids))).all()
            if not rows:
                raise NotFoundError(f"roles not found: {', '.join(ids)}")
            return self._to_read(session, rows)

    @traced("role.search")
    def search_for(self, value: str, page: PageQuery, sort: SortQuery) -> RolePage:
        condition = sa.or_(
            col(Role.name).contains(value, autoescape=True),
            col(Role.id).ilike(like_pattern(value), escape=LIKE_ESCAPE),
        )
        with session_scope() as session:
            rows, total = search_page(session, Role, "role", condition, page, sort)
            roles = self._to_read(session, rows)
        return RolePage(
            total=total,
            page=page.page,
            limit=page.limit,
            total_pages=total_pages(total, page.limit),
            roles=roles,
        )

    @traced("role.update")
    def update(self, role_id: str, payload: RoleUpdate) -> RoleRead:
        with session_scope() as session:
            role = session.get(Role, role_id)
            if role is None:
                raise NotFoundError(f"role not found: {role_id}")
            if payload.name is None or not payload.name.strip():
                raise BadRequestError("role name is required")
            if self._name_taken(session, payload.name, exclude_id=role_id):
                raise ConflictError(f"role name already exists: {payload.name}")
            session.execute(
                sa.update(Role)
                .where(col(Role.id) == role_id)
                .values(name=payload.name, updated_at=now_utc())
            )
            try:
                session.flush()
            except IntegrityError as exc:
                raise ConflictError(f"role name already exists: {payload.name}") from exc
            session.refresh(role)
            return self._to_read(session, [role])[0]

    @traced("role.delete")
    def delete_by_ids(self, ids: list[str]) -> int:
        """Delete roles; role-permission links and user bindings go with them via ON DELETE CASCADE."""
        if not ids:
            return 0
        with session_scope() as session:
            found = session.exec(select(Role.id).where(col(Role.id).in_(ids))).all()
            ensure_all_found("roles", ids, found)
            result = session.execute(sa.delete(Role).where(col(Role.id).in_(ids)))
            deleted = int(getattr(result, "rowcount", 0) or 0)
        self.context.bind(self.log).info("roles_deleted", count=deleted)
        return deleted
