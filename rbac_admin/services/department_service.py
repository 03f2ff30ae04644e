from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from rbac_admin.domain.models import (
    Department,
    DepartmentCreate,
    DepartmentPage,
    DepartmentRead,
    DepartmentUpdate,
    PageQuery,
    SortQuery,
    User,
    now_utc,
)
from rbac_admin.infra.db import session_scope
from rbac_admin.infra.logging import get_logger
from rbac_admin.infra.tracing import RequestContext, traced
from rbac_admin.services.errors import ConflictError, NotFoundError, ensure_all_found
from rbac_admin.services.listing import search_page, total_pages


class DepartmentService:
    def __init__(self, context: RequestContext | None = None) -> None:
        self.context = context or RequestContext()
        self.log = get_logger(__name__)

    def _name_taken(self, session: Session, name: str, *, exclude_id: str | None = None) -> bool:
        statement = select(Department.id).where(Department.name == name)
        if exclude_id is not None:
            statement = statement.where(Department.id != exclude_id)
        return session.exec(statement).first() is not None

    def _ensure_user(self, session: Session, user_id: str | None) -> None:
        if user_id is not None and session.get(User, user_id) is None:
            raise NotFoundError(f"user not found: {user_id}")

    @traced("department.create")
    def create(self, payload: DepartmentCreate) -> Department:
        with session_scope() as session:
            if self._name_taken(session, payload.name):
                raise ConflictError(f"department name already exists: {payload.name}")
            self._ensure_user(session, payload.user_id)
            department = Department(**payload.model_dump())
            session.add(department)
            try:
                session.flush()
            except IntegrityError as exc:
                raise ConflictError(f"department name already exists: {payload.name}") from exc
        self.context.bind(self.log).info("department_created", department_id=department.id)
        return department

    def find_by_ids(self, ids: list[str], *, session: Session | None = None) -> list[Department]:
        with session_scope(session) as scoped:
            rows = scoped.exec(select(Department).where(col(Department.id).in_(ids))).all()
            if not rows:
                raise NotFoundError(f"departments not found: {', '.join(ids)}")
            return list(rows)

    @traced("department.search")
    def search_for(self, value: str, page: PageQuery, sort: SortQuery) -> DepartmentPage:
        condition = sa.or_(
            col(Department.name).contains(value, autoescape=True),
            col(Department.country).contains(value, autoescape=True),
        )
        with session_scope() as session:
            rows, total = search_page(session, Department, "department", condition, page, sort)
        return DepartmentPage(
            total=total,
            page=page.page,
            limit=page.limit,
            total_pages=total_pages(total, page.limit),
            departments=[DepartmentRead.model_validate(item) for item in rows],
        )

    @traced("department.update")
    def update(self, department_id: str, payload: DepartmentUpdate) -> Department:
        changes = payload.model_dump(exclude_unset=True)
        with session_scope() as session:
            department = session.get(Department, department_id)
            if department is None:
                raise NotFoundError(f"department not found: {department_id}")
            name = changes.get("name")
            if name is not None and name != department.name:
                if self._name_taken(session, name, exclude_id=department_id):
                    raise ConflictError(f"department name already exists: {name}")
            if "user_id" in changes:
                self._ensure_user(session, changes["user_id"])
            for key, value in changes.items():
                if value is None and key != "user_id":
                    continue
                setattr(department, key, value)
            department.updated_at = now_utc()
            session.add(department)
            try:
                session.flush()
            except IntegrityError as exc:
                raise ConflictError(f"department name already exists: {name}") from exc
            session.refresh(department)
        return department

    @traced("department.delete")
    def delete_by_ids(self, ids: list[str]) -> int:
        if not ids:
            return 0
        with session_scope() as session:
            found = session.exec(select(Department.id).where(col(Department.id).in_(ids))).all()
            ensure_all_found("departments", ids, found)
            result = session.execute(sa.delete(Department).where(col(Department.id).in_(ids)))
            deleted = int(getattr(result, "rowcount", 0) or 0)
        self.context.bind(self.log).info("departments_deleted", count=deleted)
        return deleted
