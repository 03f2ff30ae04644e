from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Any, TypeVar

import sqlalchemy as sa
from sqlmodel import Session, SQLModel, select

from rbac_admin.domain.fields import SORTABLE_FIELDS, SortOrder
from rbac_admin.domain.models import PageQuery, SortQuery
from rbac_admin.services.errors import BadRequestError

MAX_PAGE_LIMIT = 500
LIKE_ESCAPE = "\\"

ModelT = TypeVar("ModelT", bound=SQLModel)


def like_pattern(value: str) -> str:
    """Substring pattern for ``value`` with ``%`` and ``_`` matched literally.

    Use together with ``escape=LIKE_ESCAPE`` on the ``like``/``ilike`` call.
    """
    escaped = (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


def validate_page(page: PageQuery) -> None:
    if page.page < 1:
        raise BadRequestError("page must be greater than or equal to 1")
    if page.limit < 1 or page.limit > MAX_PAGE_LIMIT:
        raise BadRequestError(f"limit must be between 1 and {MAX_PAGE_LIMIT}")


def order_by_clause(model: type[SQLModel], entity: str, sort: SortQuery) -> Any:
    if sort.sort_field not in SORTABLE_FIELDS[entity]:
        raise BadRequestError(f"cannot sort {entity} by '{sort.sort_field}'")
    column = getattr(model, sort.sort_field)
    return column.asc() if sort.sort_order == SortOrder.ASC else column.desc()


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if total else 0


def search_page(
    session: Session,
    model: type[ModelT],
    entity: str,
    condition: Any,
    page: PageQuery,
    sort: SortQuery,
) -> tuple[Sequence[ModelT], int]:
    """Return one page of ``model`` rows matching ``condition`` plus the total match count."""
    validate_page(page)
    ordering = order_by_clause(model, entity, sort)
    total = session.execute(
        sa.select(sa.func.count()).select_from(model).where(condition)
    ).scalar_one()
    statement = (
        select(model)
        .where(condition)
        .order_by(ordering)
        .offset((page.page - 1) * page.limit)
        .limit(page.limit)
    )
    return session.exec(statement).all(), int(total)
