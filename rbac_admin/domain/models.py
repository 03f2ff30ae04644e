from __future__ import annotations

from datetime import UTC, date, datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, EmailStr
from pydantic import Field as PydanticField
from sqlalchemy import ForeignKeyConstraint, Index, UniqueConstraint
from sqlmodel import Field, SQLModel

from rbac_admin.domain.fields import DEFAULT_SORT_FIELD, SortOrder

COUNTRY_CODE_PATTERN = r"^[A-Z]{2}$"


def now_utc() -> datetime:
    return datetime.now(UTC)


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    first_name: str
    last_name: str
    email: str = Field(index=True, unique=True)
    password_hash: str
    phone: str | None = None
    date_of_birth: date | None = None
    is_active: bool = Field(default=True)
    is_email_verified: bool = Field(default=False)
    is_two_factor_enabled: bool = Field(default=False)
    email_verification_token: str | None = None
    password_reset_token: str | None = None
    password_reset_expires: datetime | None = None
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc)


class Department(SQLModel, table=True):
    __tablename__ = "departments"
    __table_args__ = (
        ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    name: str = Field(index=True, unique=True)
    country: str
    user_id: str | None = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc)


class Role(SQLModel, table=True):
    __tablename__ = "roles"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    name: str = Field(index=True, unique=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc)


class Permission(SQLModel, table=True):
    __tablename__ = "permissions"
    __table_args__ = (
        UniqueConstraint("code", "name", name="uq_permissions_code_name"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    code: str = Field(index=True)
    name: str = Field(index=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc)


class RolePermission(SQLModel, table=True):
    __tablename__ = "role_permissions"
    __table_args__ = (
        ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
        ForeignKeyConstraint(["permission_id"], ["permissions.id"], ondelete="CASCADE"),
        Index("ix_role_permissions_permission", "permission_id"),
    )

    role_id: str = Field(primary_key=True)
    permission_id: str = Field(primary_key=True)
    created_at: datetime = Field(default_factory=now_utc)


class UserRole(SQLModel, table=True):
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role_id", name="uq_user_roles_user_role"),
        ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
        ForeignKeyConstraint(["assigned_by_id"], ["users.id"], ondelete="SET NULL"),
        Index("ix_user_roles_user", "user_id"),
        Index("ix_user_roles_role", "role_id"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    user_id: str
    role_id: str
    assigned_by_id: str | None = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc)


class ORMReadModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class PageQuery(BaseModel):
    page: int = 1
    limit: int = 10


class SortQuery(BaseModel):
    sort_field: str = DEFAULT_SORT_FIELD
    sort_order: SortOrder = SortOrder.DESC


class DeleteResult(BaseModel):
    deleted: int


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class PermissionCreate(BaseModel):
    name: str = PydanticField(min_length=1)
    code: str = PydanticField(min_length=1)
    role_ids: list[str] = PydanticField(default_factory=list)


class PermissionUpdate(BaseModel):
    name: str | None = PydanticField(default=None, min_length=1)
    code: str | None = PydanticField(default=None, min_length=1)


class PermissionRead(ORMReadModel):
    id: str
    code: str
    name: str
    role_ids: list[str] = PydanticField(default_factory=list)
    created_at: datetime
    updated_at: datetime


class PermissionPage(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int
    permissions: list[PermissionRead]


class PermissionSummary(ORMReadModel):
    id: str
    code: str
    name: str


class RoleCreate(BaseModel):
    name: str = PydanticField(min_length=1)
    permissions: list[str] = PydanticField(default_factory=list)


class RoleUpdate(BaseModel):
    name: str | None = None


class RolePermissionsAdd(BaseModel):
    permission_ids: list[str] = PydanticField(min_length=1)


class RoleRead(ORMReadModel):
    id: str
    name: str
    permissions: list[PermissionSummary] = PydanticField(default_factory=list)
    created_at: datetime
    updated_at: datetime


class RolePage(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int
    roles: list[RoleRead]


class DepartmentCreate(BaseModel):
    name: str = PydanticField(min_length=1)
    country: str = PydanticField(pattern=COUNTRY_CODE_PATTERN)
    user_id: str | None = None


class DepartmentUpdate(BaseModel):
    name: str | None = PydanticField(default=None, min_length=1)
    country: str | None = PydanticField(default=None, pattern=COUNTRY_CODE_PATTERN)
    user_id: str | None = None


class DepartmentRead(ORMReadModel):
    id: str
    name: str
    country: str
    user_id: str | None = None
    created_at: datetime
    updated_at: datetime


class DepartmentPage(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int
    departments: list[DepartmentRead]


class UserCreate(BaseModel):
    first_name: str = PydanticField(min_length=1)
    last_name: str = PydanticField(min_length=1)
    email: EmailStr
    password: str = PydanticField(min_length=8)
    phone: str | None = None
    date_of_birth: date | None = None
    department_ids: list[str] = PydanticField(min_length=1)
    role_ids: list[str] = PydanticField(default_factory=list)


class UserUpdate(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: EmailStr | None = None
    password: str | None = PydanticField(default=None, min_length=8)
    phone: str | None = None
    date_of_birth: date | None = None
    is_active: bool | None = None
    is_two_factor_enabled: bool | None = None


class UserRead(ORMReadModel):
    id: str
    first_name: str
    last_name: str
    email: str
    phone: str | None = None
    date_of_birth: date | None = None
    is_active: bool
    is_email_verified: bool
    is_two_factor_enabled: bool
    created_at: datetime
    updated_at: datetime


class UserPage(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int
    users: list[UserRead]


class UserRoleCreate(BaseModel):
    user_id: str
    role_ids: list[str] = PydanticField(min_length=1)
    assigned_by_id: str


class UserRoleAssign(BaseModel):
    role_id: str


class UserRoleUnassign(BaseModel):
    user_ids: list[str] = PydanticField(default_factory=list)
    role_ids: list[str] = PydanticField(default_factory=list)


class UserRoleRead(ORMReadModel):
    id: str
    user_id: str
    role_id: str
    assigned_by_id: str | None = None
    created_at: datetime
    updated_at: datetime


class UnassignResult(BaseModel):
    unassigned: bool
