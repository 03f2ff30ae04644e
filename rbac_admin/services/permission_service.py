from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from rbac_admin.domain.models import (
    PageQuery,
    Permission,
    PermissionCreate,
    PermissionPage,
    PermissionRead,
    PermissionUpdate,
    Role,
    RolePermission,
    SortQuery,
    now_utc,
)
from rbac_admin.infra.db import session_scope
from rbac_admin.infra.logging import get_logger
from rbac_admin.infra.tracing import RequestContext, traced
from rbac_admin.services.errors import ConflictError, NotFoundError, ensure_all_found
from rbac_admin.services.listing import LIKE_ESCAPE, like_pattern, search_page, total_pages


class PermissionService:
    def __init__(self, context: RequestContext | None = None) -> None:
        self.context = context or RequestContext()
        self.log = get_logger(__name__)

    def _to_read(self, session: Session, permissions: Sequence[Permission]) -> list[PermissionRead]:
        ids = [item.id for item in permissions]
        role_ids: dict[str, list[str]] = defaultdict(list)
        if ids:
            links = session.exec(
                select(RolePermission).where(col(RolePermission.permission_id).in_(ids))
            ).all()
            for link in links:
                role_ids[link.permission_id].append(link.role_id)
        return [
            PermissionRead.model_validate(
                {**item.model_dump(), "role_ids": sorted(role_ids[item.id])}
            )
            for item in permissions
        ]

    def _taken_names_and_codes(
        self,
        session: Session,
        names: Sequence[str],
        codes: Sequence[str],
        *,
        exclude_id: str | None = None,
    ) -> tuple[set[str], set[str]]:
        statement = select(Permission).where(
            sa.or_(col(Permission.name).in_(names), col(Permission.code).in_(codes))
        )
        if exclude_id is not None:
            statement = statement.where(Permission.id != exclude_id)
        existing = session.exec(statement).all()
        return (
            {item.name for item in existing if item.name in names},
            {item.code for item in existing if item.code in codes},
        )

    @traced("permission.create")
    def create(self, payloads: list[PermissionCreate]) -> list[PermissionRead]:
        if not payloads:
            return []
        names = [item.name for item in payloads]
        codes = [item.code for item in payloads]
        with session_scope() as session:
            taken_names, taken_codes = self._taken_names_and_codes(session, names, codes)
            taken_names |= {name for name, count in Counter(names).items() if count > 1}
            taken_codes |= {code for code, count in Counter(codes).items() if count > 1}
            if taken_names or taken_codes:
                offenders = sorted(taken_names) + sorted(taken_codes)
                raise ConflictError(f"permissions already exist: {', '.join(offenders)}")

            role_ids = list(dict.fromkeys(rid for item in payloads for rid in item.role_ids))
            if role_ids:
                found = session.exec(select(Role.id).where(col(Role.id).in_(role_ids))).all()
                ensure_all_found("roles", role_ids, found)

            created: list[Permission] = []
            for item in payloads:
                permission = Permission(name=item.name, code=item.code)
                session.add(permission)
                created.append(permission)
            session.flush()
            for permission, item in zip(created, payloads, strict=True):
                for role_id in dict.fromkeys(item.role_ids):
                    session.add(RolePermission(role_id=role_id, permission_id=permission.id))
            try:
                session.flush()
            except IntegrityError as exc:
                raise ConflictError("permission code/name pair already exists") from exc
            result = self._to_read(session, created)
        self.context.bind(self.log).info("permissions_created", count=len(result))
        return result

    def find_by_ids(self, ids: list[str], *, session: Session | None = None) -> list[PermissionRead]:
        with session_scope(session) as scoped:
            rows = scoped.exec(select(Permission).where(col(Permission.id).in_(ids))).all()
            if not rows:
                raise NotFoundError(f"permissions not found: {', '.join(ids)}")
            return self._to_read(scoped, rows)

    def find_by_codes(self, codes: list[str], *, session: Session | None = None) -> list[PermissionRead]:
        with session_scope(session) as scoped:
            rows = scoped.exec(select(Permission).where(col(Permission.code).in_(codes))).all()
            if not rows:
                raise NotFoundError(f"permissions with codes not found: {', '.join(codes)}")
            return self._to_read(scoped, rows)

    @traced("permission.search")
    def search_for(self, value: str, page: PageQuery, sort: SortQuery) -> PermissionPage:
        pattern = like_pattern(value)
        condition = sa.or_(
            col(Permission.name).ilike(pattern, escape=LIKE_ESCAPE),
            col(Permission.code).ilike(pattern, escape=LIKE_ESCAPE),
            col(Permission.id).ilike(pattern, escape=LIKE_ESCAPE),
        )
        with session_scope() as session:
            rows, total = search_page(session, Permission, "permission", condition, page, sort)
            permissions = self._to_read(session, rows)
        return PermissionPage(
            total=total,
            page=page.page,
            limit=page.limit,
            total_pages=total_pages(total, page.limit),
            permissions=permissions,
        )

    @traced("permission.update")
    def update(self, permission_id: str, payload: PermissionUpdate) -> PermissionRead:
        with session_scope() as session:
            permission = session.get(Permission, permission_id)
            if permission is None:
                raise NotFoundError(f"permission not found: {permission_id}")
            names = [payload.name] if payload.name is not None else []
            codes = [payload.code] if payload.code is not None else []
            if names or codes:
                taken_names, taken_codes = self._taken_names_and_codes(
                    session, names, codes, exclude_id=permission_id
                )
                if taken_names or taken_codes:
                    offenders = sorted(taken_names | taken_codes)
                    raise ConflictError(f"permissions already exist: {', '.join(offenders)}")
            for key, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
                setattr(permission, key, value)
            permission.updated_at = now_utc()
            session.add(permission)
            try:
                session.flush()
            except IntegrityError as exc:
                raise ConflictError("permission code/name pair already exists") from exc
            return self._to_read(session, [permission])[0]

    @traced("permission.delete")
    def delete_by_ids(self, ids: list[str]) -> int:
        if not ids:
            return 0
        with session_scope() as session:
            found = session.exec(select(Permission.id).where(col(Permission.id).in_(ids))).all()
            ensure_all_found("permissions", ids, found)
            session.execute(
                sa.delete(RolePermission).where(col(RolePermission.permission_id).in_(ids))
            )
            result = session.execute(sa.delete(Permission).where(col(Permission.id).in_(ids)))
            deleted = int(getattr(result, "rowcount", 0) or 0)
        self.context.bind(self.log).info("permissions_deleted", count=deleted)
        return deleted
