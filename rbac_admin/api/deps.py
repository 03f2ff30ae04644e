from __future__ import annotations

from collections.abc import Callable
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Query, Request
from fastapi.security import OAuth2PasswordBearer

from rbac_admin.api.errors import raise_http_error
from rbac_admin.domain.fields import DEFAULT_SORT_FIELD, SortOrder
from rbac_admin.domain.models import PageQuery, SortQuery
from rbac_admin.domain.permissions import permission_denial
from rbac_admin.infra.logging import get_logger
from rbac_admin.infra.tracing import RequestContext, get_request_context
from rbac_admin.services.auth_service import AuthService, Principal
from rbac_admin.services.errors import AuthError, ForbiddenError

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

security_log = get_logger("rbac_admin.security")

Context = Annotated[RequestContext, Depends(get_request_context)]


def get_current_principal(
    request: Request,
    context: Context,
    token: str = Depends(oauth2_scheme),
) -> Principal:
    try:
        principal = AuthService(context).authenticate_token(token)
    except AuthError as exc:
        raise_http_error(exc)
        raise
    context.actor_id = principal.user_id
    request.state.principal = principal
    return principal


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


def require_permissions(*permissions: str) -> Callable[..., Principal]:
    """Route dependency allowing callers that hold every code in ``permissions``."""
    expected = tuple(item for item in permissions if item)

    def _checker(principal: CurrentPrincipal, context: Context) -> Principal:
        reason = permission_denial(set(principal.permissions), expected)
        if reason is not None:
            context.bind(security_log).warning(
                "permission_denied",
                required=list(expected),
                reason=reason,
            )
            raise_http_error(ForbiddenError(reason))
        return principal

    return _checker


def get_page_query(page: int = 1, limit: int = 10) -> PageQuery:
    return PageQuery(page=page, limit=limit)


def get_sort_query(
    sort_field: str = DEFAULT_SORT_FIELD,
    sort_order: SortOrder = SortOrder.DESC,
) -> SortQuery:
    return SortQuery(sort_field=sort_field, sort_order=sort_order)


Page = Annotated[PageQuery, Depends(get_page_query)]
Sort = Annotated[SortQuery, Depends(get_sort_query)]
IdList = Annotated[list[UUID], Query(min_length=1)]


def as_ids(values: list[UUID]) -> list[str]:
    return [str(item) for item in values]
