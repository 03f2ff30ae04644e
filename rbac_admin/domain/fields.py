"""Columns each entity exposes for listing and sorting.

Sort requests may only name columns listed here.
"""

from __future__ import annotations

from enum import StrEnum


class SortOrder(StrEnum):
    ASC = "ASC"
    DESC = "DESC"


USER_FIELDS: tuple[str, ...] = (
    "id",
    "first_name",
    "last_name",
    "email",
    "phone",
    "date_of_birth",
    "is_active",
    "is_email_verified",
    "is_two_factor_enabled",
    "created_at",
    "updated_at",
)
DEPARTMENT_FIELDS: tuple[str, ...] = ("id", "name", "country", "user_id", "created_at", "updated_at")
ROLE_FIELDS: tuple[str, ...] = ("id", "name", "created_at", "updated_at")
PERMISSION_FIELDS: tuple[str, ...] = ("id", "code", "name", "created_at", "updated_at")

SORTABLE_FIELDS: dict[str, frozenset[str]] = {
    "user": frozenset(USER_FIELDS),
    "department": frozenset(DEPARTMENT_FIELDS),
    "role": frozenset(ROLE_FIELDS),
    "permission": frozenset(PERMISSION_FIELDS),
}

DEFAULT_SORT_FIELD = "created_at"
