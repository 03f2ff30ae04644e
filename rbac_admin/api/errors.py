from __future__ import annotations

from typing import NoReturn

from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from rbac_admin.services.errors import (
    AccessAdminError,
    AuthError,
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)

ERROR_STATUS: dict[type[AccessAdminError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    BadRequestError: status.HTTP_400_BAD_REQUEST,
    AuthError: status.HTTP_401_UNAUTHORIZED,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
}


def raise_http_error(exc: AccessAdminError) -> NoReturn:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            headers = {"WWW-Authenticate": "Bearer"} if error_type is AuthError else None
            raise HTTPException(status_code=status_code, detail=str(exc), headers=headers) from exc
    raise exc


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )
