from __future__ import annotations

from collections.abc import Iterable


class AccessAdminError(Exception):
    pass


class NotFoundError(AccessAdminError):
    pass


class ConflictError(AccessAdminError):
    pass


class BadRequestError(AccessAdminError):
    pass


class AuthError(AccessAdminError):
    pass


class ForbiddenError(AccessAdminError):
    pass


def missing_error(entity: str, missing: Iterable[str], *, key: str = "ids") -> NotFoundError:
    return NotFoundError(f"{entity} with {key} not found: {', '.join(missing)}")


def ensure_all_found(entity: str, requested: Iterable[str], found: Iterable[str], *, key: str = "ids") -> None:
    """Raise NotFoundError naming every requested identifier absent from ``found``."""
    present = set(found)
    missing = [item for item in dict.fromkeys(requested) if item not in present]
    if missing:
        raise missing_error(entity, missing, key=key)
