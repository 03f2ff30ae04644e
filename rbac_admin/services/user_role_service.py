from __future__ import annotations

from collections.abc import Iterator, Sequence

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased
from sqlmodel import Session, col, select

from rbac_admin.domain.models import Role, User, UserRole, UserRoleCreate
from rbac_admin.infra.db import session_scope
from rbac_admin.infra.logging import get_logger
from rbac_admin.infra.tracing import RequestContext, traced
from rbac_admin.services.errors import ConflictError, NotFoundError, ensure_all_found

BINDING_BATCH_SIZE = 50


def _chunks(items: Sequence[str], size: int) -> Iterator[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class UserRoleService:
    def __init__(self, context: RequestContext | None = None) -> None:
        self.context = context or RequestContext()
        self.log = get_logger(__name__)

    def _require_user(self, session: Session, user_id: str) -> User:
        user = session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"user not found: {user_id}")
        return user

    @traced("user_role.create")
    def create(self, payload: UserRoleCreate, *, session: Session | None = None) -> list[UserRole]:
        """Bind every role in ``payload.role_ids`` to the user, or none of them."""
        role_ids = list(dict.fromkeys(payload.role_ids))
        with session_scope(session) as scoped:
            self._require_user(scoped, payload.user_id)
            self._require_user(scoped, payload.assigned_by_id)
            found = scoped.exec(select(Role.id).where(col(Role.id).in_(role_ids))).all()
            ensure_all_found("roles", role_ids, found)

            bindings: list[UserRole] = []
            for chunk in _chunks(role_ids, BINDING_BATCH_SIZE):
                batch = [
                    UserRole(
                        user_id=payload.user_id,
                        role_id=role_id,
                        assigned_by_id=payload.assigned_by_id,
                    )
                    for role_id in chunk
                ]
                scoped.add_all(batch)
                try:
                    scoped.flush()
                except IntegrityError as exc:
                    raise ConflictError(
                        f"user {payload.user_id} already holds one of the roles: {', '.join(chunk)}"
                    ) from exc
                bindings.extend(batch)
        self.context.bind(self.log).info(
            "roles_assigned",
            user_id=payload.user_id,
            assigned_by_id=payload.assigned_by_id,
            count=len(bindings),
        )
        return bindings

    def find_by_ids(
        self,
        *,
        user_ids: list[str] | None = None,
        role_ids: list[str] | None = None,
        assigned_by_ids: list[str] | None = None,
    ) -> list[UserRole]:
        statement = select(UserRole)
        if user_ids:
            statement = statement.where(col(UserRole.user_id).in_(user_ids))
        if role_ids:
            statement = statement.where(col(UserRole.role_id).in_(role_ids))
        if assigned_by_ids:
            statement = statement.where(col(UserRole.assigned_by_id).in_(assigned_by_ids))
        statement = statement.order_by(col(UserRole.created_at))
        with session_scope() as session:
            return list(session.exec(statement).all())

    def find_by_user_email(self, email: str) -> UserRole:
        assigned_user = aliased(User)
        assigning_user = aliased(User)
        statement = (
            select(UserRole)
            .join(assigned_user, col(UserRole.user_id) == assigned_user.id)
            .outerjoin(assigning_user, col(UserRole.assigned_by_id) == assigning_user.id)
            .where(sa.or_(assigned_user.email == email, assigning_user.email == email))
            .order_by(col(UserRole.created_at).desc())
        )
        with session_scope() as session:
            binding = session.exec(statement).first()
        if binding is None:
            raise NotFoundError(f"no role binding found for email: {email}")
        return binding

    @traced("user_role.assign")
    def assign_role_to_user(self, user_id: str, role_id: str) -> UserRole:
        with session_scope() as session:
            self._require_user(session, user_id)
            if session.get(Role, role_id) is None:
                raise NotFoundError(f"role not found: {role_id}")
            binding = UserRole(user_id=user_id, role_id=role_id, assigned_by_id=user_id)
            session.add(binding)
            try:
                session.flush()
            except IntegrityError as exc:
                raise ConflictError(f"user {user_id} already holds role {role_id}") from exc
        return binding

    @traced("user_role.unassign")
    def unassign_role_from_user(
        self,
        user_ids: list[str],
        role_ids: list[str],
        *,
        session: Session | None = None,
    ) -> bool:
        if not user_ids or not role_ids:
            return False
        with session_scope(session) as scoped:
            result = scoped.execute(
                sa.delete(UserRole)
                .where(col(UserRole.user_id).in_(user_ids))
                .where(col(UserRole.role_id).in_(role_ids))
            )
            affected = int(getattr(result, "rowcount", 0) or 0)
            if affected == 0:
                raise NotFoundError(
                    f"no role bindings for users {', '.join(user_ids)} and roles {', '.join(role_ids)}"
                )
        self.context.bind(self.log).info("roles_unassigned", count=affected)
        return True
