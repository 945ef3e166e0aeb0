"""Role and permission administration schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class PermissionCreateRequest(BaseModel):
    """Request to create a permission."""

    name: str = Field(min_length=3, max_length=100, pattern=r"^[a-z_]+(:[a-z_]+)+$")
    description: str | None = Field(default=None, max_length=500)


class PermissionUpdateRequest(BaseModel):
    """Rename a permission or change its description."""

    name: str | None = Field(default=None, min_length=3, max_length=100, pattern=r"^[a-z_]+(:[a-z_]+)+$")
    description: str | None = Field(default=None, max_length=500)


class PermissionResponse(BaseModel):
    """Permission information response."""

    id: UUID
    name: str
    description: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class RoleCreateRequest(BaseModel):
    """Request to create a role."""

    name: str = Field(min_length=2, max_length=50, pattern=r"^[a-z_]+$")
    description: str | None = Field(default=None, max_length=500)


class RoleUpdateRequest(BaseModel):
    """Rename a role or change its description."""

    name: str | None = Field(default=None, min_length=2, max_length=50, pattern=r"^[a-z_]+$")
    description: str | None = Field(default=None, max_length=500)


class RoleResponse(BaseModel):
    """Role with its permissions."""

    id: UUID
    name: str
    description: str | None = None
    created_at: datetime
    permissions: list[PermissionResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class SetUserRolesRequest(BaseModel):
    """Replace a user's roles. An empty list clears every role."""

    role_ids: list[UUID]


class SetRolePermissionsRequest(BaseModel):
    """Replace a role's permissions. An empty list clears every permission."""

    permission_ids: list[UUID]


class UserPermissionsResponse(BaseModel):
    """Effective roles and permissions of a user."""

    user_id: UUID
    roles: list[str]
    permissions: list[str]
