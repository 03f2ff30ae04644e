from __future__ import annotations

import functools
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from rbac_admin.infra.logging import get_logger, mask_sensitive

REQUEST_ID_HEADER = "X-Request-ID"
REQUEST_CONTEXT_STATE_KEY = "context"

F = TypeVar("F", bound=Callable[..., Any])

logger = get_logger("rbac_admin.http")


@dataclass
class RequestContext:
    """Per-request trace data, handed explicitly from the route to the services."""

    trace_id: str = field(default_factory=lambda: uuid4().hex)
    actor_id: str | None = None

    def bind(self, log: Any) -> Any:
        return log.bind(trace_id=self.trace_id, actor_id=self.actor_id)


def get_request_context(request: Request) -> RequestContext:
    context = getattr(request.state, REQUEST_CONTEXT_STATE_KEY, None)
    if isinstance(context, RequestContext):
        return context
    context = RequestContext()
    setattr(request.state, REQUEST_CONTEXT_STATE_KEY, context)
    return context


def traced(operation: str) -> Callable[[F], F]:
    """Log duration and outcome of a service method.

    The wrapped method's instance must expose ``context`` (a RequestContext)
    and ``log`` (a bound logger).
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            log = self.context.bind(self.log)
            started = time.perf_counter()
            try:
                result = func(self, *args, **kwargs)
            except Exception as exc:
                log.info(
                    "operation_failed",
                    operation=operation,
                    error=type(exc).__name__,
                    detail=mask_sensitive(str(exc)),
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                )
                raise
            log.debug(
                "operation_completed",
                operation=operation,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            return result

        return wrapper  # type: ignore[return-value]

    return decorator


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        context = RequestContext(trace_id=request.headers.get(REQUEST_ID_HEADER) or uuid4().hex)
        setattr(request.state, REQUEST_CONTEXT_STATE_KEY, context)
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            context.bind(logger).error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                error=type(exc).__name__,
                detail=mask_sensitive(str(exc)),
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise
        response.headers[REQUEST_ID_HEADER] = context.trace_id
        context.bind(logger).info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response
