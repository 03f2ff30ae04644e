from __future__ import annotations

from typing import Any

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from rbac_admin.domain.models import (
    PageQuery,
    SortQuery,
    User,
    UserCreate,
    UserPage,
    UserRead,
    UserRole,
    UserRoleCreate,
    UserUpdate,
    now_utc,
)
from rbac_admin.infra.db import session_scope
from rbac_admin.infra.logging import get_logger
from rbac_admin.infra.passwords import hash_password, new_opaque_token
from rbac_admin.infra.tracing import RequestContext, traced
from rbac_admin.services.department_service import DepartmentService
from rbac_admin.services.errors import ConflictError, NotFoundError, ensure_all_found
from rbac_admin.services.listing import LIKE_ESCAPE, like_pattern, search_page, total_pages
from rbac_admin.services.user_role_service import UserRoleService


class UserService:
    def __init__(
        self,
        context: RequestContext | None = None,
        department_service: DepartmentService | None = None,
        user_role_service: UserRoleService | None = None,
    ) -> None:
        self.context = context or RequestContext()
        self.department_service = department_service or DepartmentService(self.context)
        self.user_role_service = user_role_service or UserRoleService(self.context)
        self.log = get_logger(__name__)

    def _email_taken(self, session: Session, email: str, *, exclude_id: str | None = None) -> bool:
        statement = select(User.id).where(User.email == email)
        if exclude_id is not None:
            statement = statement.where(User.id != exclude_id)
        return session.exec(statement).first() is not None

    @traced("user.create")
    def create(self, payload: UserCreate, created_by: str | None = None) -> User:
        """Insert the user, attach departments and bind roles in one transaction.

        Any failure, including a role binding that cannot be made, leaves no
        trace of the user behind.
        """
        department_ids = list(dict.fromkeys(payload.department_ids))
        with session_scope() as session:
            departments = self.department_service.find_by_ids(department_ids, session=session)
            ensure_all_found("departments", department_ids, [item.id for item in departments])
            if self._email_taken(session, payload.email):
                raise ConflictError("User with this email already exists")

            user = User(
                **payload.model_dump(exclude={"password", "department_ids", "role_ids"}),
                password_hash=hash_password(payload.password),
                email_verification_token=new_opaque_token(),
                password_reset_token=new_opaque_token(),
            )
            session.add(user)
            try:
                session.flush()
            except IntegrityError as exc:
                raise ConflictError("User with this email already exists") from exc

            for department in departments:
                department.user_id = user.id
                department.updated_at = now_utc()
                session.add(department)

            if payload.role_ids:
                self.user_role_service.create(
                    UserRoleCreate(
                        user_id=user.id,
                        role_ids=payload.role_ids,
                        assigned_by_id=created_by or user.id,
                    ),
                    session=session,
                )
            session.flush()
        self.context.bind(self.log).info("user_created", user_id=user.id, created_by=created_by)
        return user

    def find_by_id(self, user_id: str) -> User:
        with session_scope() as session:
            user = session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"user not found: {user_id}")
        return user

    def find_by_email(self, email: str) -> User:
        with session_scope() as session:
            user = session.exec(select(User).where(User.email == email)).first()
        if user is None:
            raise NotFoundError(f"user with email not found: {email}")
        return user

    @traced("user.search")
    def search_for(self, value: str, page: PageQuery, sort: SortQuery) -> UserPage:
        pattern = like_pattern(value)
        condition = sa.or_(
            col(User.first_name).ilike(pattern, escape=LIKE_ESCAPE),
            col(User.last_name).ilike(pattern, escape=LIKE_ESCAPE),
            col(User.email).ilike(pattern, escape=LIKE_ESCAPE),
            col(User.id).ilike(pattern, escape=LIKE_ESCAPE),
        )
        with session_scope() as session:
            rows, total = search_page(session, User, "user", condition, page, sort)
        return UserPage(
            total=total,
            page=page.page,
            limit=page.limit,
            total_pages=total_pages(total, page.limit),
            users=[UserRead.model_validate(item) for item in rows],
        )

    def _changes(self, payload: UserUpdate) -> dict[str, Any]:
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        password = changes.pop("password", None)
        if password is not None:
            changes["password_hash"] = hash_password(password)
        email = changes.get("email")
        if email is not None and not email.strip():
            changes.pop("email")
        changes["updated_at"] = now_utc()
        return changes

    def _apply_update(self, session: Session, user: User, payload: UserUpdate) -> User:
        changes = self._changes(payload)
        email = changes.get("email")
        if email is not None and self._email_taken(session, email, exclude_id=user.id):
            raise ConflictError("Email is already in use by another user")
        session.execute(sa.update(User).where(col(User.id) == user.id).values(**changes))
        try:
            session.flush()
        except IntegrityError as exc:
            raise ConflictError("Email is already in use by another user") from exc
        session.refresh(user)
        return user

    @traced("user.update_by_id")
    def update_by_id(self, user_id: str, payload: UserUpdate) -> User:
        with session_scope() as session:
            user = session.get(User, user_id)
            if user is None:
                raise NotFoundError(f"user not found: {user_id}")
            return self._apply_update(session, user, payload)

    @traced("user.update_by_email")
    def update_by_email(self, email: str, payload: UserUpdate) -> User:
        with session_scope() as session:
            user = session.exec(select(User).where(User.email == email)).first()
            if user is None:
                raise NotFoundError(f"user with email not found: {email}")
            return self._apply_update(session, user, payload)

    @traced("user.delete")
    def delete_by_ids(self, ids: list[str]) -> int:
        if not ids:
            return 0
        with session_scope() as session:
            found = session.exec(select(User.id).where(col(User.id).in_(ids))).all()
            ensure_all_found("users", ids, found)
            role_ids = list(
                dict.fromkeys(
                    session.exec(
                        select(UserRole.role_id).where(col(UserRole.user_id).in_(ids))
                    ).all()
                )
            )
            if role_ids:
                self.user_role_service.unassign_role_from_user(list(ids), role_ids, session=session)
            result = session.execute(sa.delete(User).where(col(User.id).in_(ids)))
            deleted = int(getattr(result, "rowcount", 0) or 0)
        self.context.bind(self.log).info("users_deleted", count=deleted)
        return deleted
