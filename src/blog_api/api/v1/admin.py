"""RBAC administration endpoints.

Roles, permissions, user accounts and role assignment, and the draft
access log.
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from blog_api.core.config import Settings, get_settings
from blog_api.core.database import unit_of_work
from blog_api.core.dependencies import get_async_session, permission_required
from blog_api.core.identity import UserContext
from blog_api.schemas.auth import AdminResetPasswordRequest, UserPublic
from blog_api.schemas.common import Page, PaginationMeta, PaginationParams
from blog_api.schemas.draft import DraftAccessLogResponse
from blog_api.schemas.rbac import (
    PermissionCreateRequest,
    PermissionResponse,
    PermissionUpdateRequest,
    RoleCreateRequest,
    RoleResponse,
    RoleUpdateRequest,
    SetRolePermissionsRequest,
    SetUserRolesRequest,
    UserPermissionsResponse,
)
from blog_api.services import auth_service, draft_access_service, rbac_service

ROLE_MANAGEMENT = "admin:role_management"
USER_MANAGEMENT = "admin:user_management"
USER_LIST = "admin:user_list"
VIEW_PERMISSIONS = "admin:view_permissions"
VIEW_STATISTICS = "admin:view_statistics"

router = APIRouter(prefix="/admin", tags=["admin"])

SessionDep = Annotated[AsyncSession, Depends(get_async_session)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


# --- Roles ---


@router.get("/roles", response_model=list[RoleResponse])
async def list_roles(
    _caller: Annotated[UserContext, Depends(permission_required(VIEW_PERMISSIONS))],
    session: SessionDep,
    settings: SettingsDep,
) -> list[RoleResponse]:
    """List roles with their permissions."""
    async with unit_of_work(session, settings.store_timeout_seconds):
        roles = await rbac_service.list_roles(session)
        return [RoleResponse.model_validate(r) for r in roles]


@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    request: RoleCreateRequest,
    _caller: Annotated[UserContext, Depends(permission_required(ROLE_MANAGEMENT))],
    session: SessionDep,
    settings: SettingsDep,
) -> RoleResponse:
    """Create a role."""
    async with unit_of_work(session, settings.store_timeout_seconds):
        role = await rbac_service.create_role(session, request.name, request.description)
        response = RoleResponse.model_validate(role)
    return response


@router.patch("/roles/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: uuid.UUID,
    request: RoleUpdateRequest,
    _caller: Annotated[UserContext, Depends(permission_required(ROLE_MANAGEMENT))],
    session: SessionDep,
    settings: SettingsDep,
) -> RoleResponse:
    """Rename a role or change its description."""
    async with unit_of_work(session, settings.store_timeout_seconds):
        role = await rbac_service.update_role(session, role_id, name=request.name, description=request.description)
        response = RoleResponse.model_validate(role)
    return response


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: uuid.UUID,
    _caller: Annotated[UserContext, Depends(permission_required(ROLE_MANAGEMENT))],
    session: SessionDep,
    settings: SettingsDep,
) -> Response:
    """Delete a role."""
    async with unit_of_work(session, settings.store_timeout_seconds):
        await rbac_service.delete_role(session, role_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/roles/{role_id}/permissions", response_model=RoleResponse)
async def set_role_permissions(
    role_id: uuid.UUID,
    request: SetRolePermissionsRequest,
    _caller: Annotated[UserContext, Depends(permission_required(ROLE_MANAGEMENT))],
    session: SessionDep,
    settings: SettingsDep,
) -> RoleResponse:
    """Replace the permissions granted by a role."""
    async with unit_of_work(session, settings.store_timeout_seconds):
        role = await rbac_service.set_role_permissions(session, role_id, request.permission_ids)
        response = RoleResponse.model_validate(role)
    return response


# --- Permissions ---


@router.get("/permissions", response_model=list[PermissionResponse])
async def list_permissions(
    _caller: Annotated[UserContext, Depends(permission_required(VIEW_PERMISSIONS))],
    session: SessionDep,
    settings: SettingsDep,
) -> list[PermissionResponse]:
    """List permissions."""
    async with unit_of_work(session, settings.store_timeout_seconds):
        permissions = await rbac_service.list_permissions(session)
        return [PermissionResponse.model_validate(p) for p in permissions]


@router.post("/permissions", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    request: PermissionCreateRequest,
    _caller: Annotated[UserContext, Depends(permission_required(ROLE_MANAGEMENT))],
    session: SessionDep,
    settings: SettingsDep,
) -> PermissionResponse:
    """Create a permission."""
    async with unit_of_work(session, settings.store_timeout_seconds):
        permission = await rbac_service.create_permission(session, request.name, request.description)
        response = PermissionResponse.model_validate(permission)
    return response


@router.patch("/permissions/{permission_id}", response_model=PermissionResponse)
async def update_permission(
    permission_id: uuid.UUID,
    request: PermissionUpdateRequest,
    _caller: Annotated[UserContext, Depends(permission_required(ROLE_MANAGEMENT))],
    session: SessionDep,
    settings: SettingsDep,
) -> PermissionResponse:
    """Rename a permission or change its description."""
    async with unit_of_work(session, settings.store_timeout_seconds):
        permission = await rbac_service.update_permission(
            session,
            permission_id,
            name=request.name,
            description=request.description,
        )
        response = PermissionResponse.model_validate(permission)
    return response


@router.delete("/permissions/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_permission(
    permission_id: uuid.UUID,
    _caller: Annotated[UserContext, Depends(permission_required(ROLE_MANAGEMENT))],
    session: SessionDep,
    settings: SettingsDep,
) -> Response:
    """Delete a permission."""
    async with unit_of_work(session, settings.store_timeout_seconds):
        await rbac_service.delete_permission(session, permission_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Users ---


@router.get("/users", response_model=Page[UserPublic])
async def list_users(
    _caller: Annotated[UserContext, Depends(permission_required(USER_LIST))],
    session: SessionDep,
    settings: SettingsDep,
    pagination: Annotated[PaginationParams, Depends()],
) -> Page[UserPublic]:
    """List registered users."""
    async with unit_of_work(session, settings.store_timeout_seconds):
        users, total = await auth_service.list_users(session, pagination.page, pagination.page_size)
        items = [
            auth_service.to_user_public(u, await rbac_service.get_user_role_names(session, u.id)) for u in users
        ]
    return Page[UserPublic](items=items, pagination=PaginationMeta.for_total(total, pagination))


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: uuid.UUID,
    _caller: Annotated[UserContext, Depends(permission_required(USER_MANAGEMENT))],
    session: SessionDep,
    settings: SettingsDep,
) -> Response:
    """Delete a user account and end all of its sessions."""
    await auth_service.delete_user(session, user_id, settings)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/users/{user_id}/password", status_code=status.HTTP_204_NO_CONTENT)
async def reset_user_password(
    user_id: uuid.UUID,
    request: AdminResetPasswordRequest,
    _caller: Annotated[UserContext, Depends(permission_required(USER_MANAGEMENT))],
    session: SessionDep,
    settings: SettingsDep,
) -> Response:
    """Set a user's password and sign out every session of that user."""
    await auth_service.admin_reset_password(
        session,
        user_id,
        request.new_password,
        request.confirm_password,
        settings,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/users/{user_id}/roles", response_model=UserPublic)
async def set_user_roles(
    user_id: uuid.UUID,
    request: SetUserRolesRequest,
    _caller: Annotated[UserContext, Depends(permission_required(USER_MANAGEMENT))],
    session: SessionDep,
    settings: SettingsDep,
) -> UserPublic:
    """Replace the roles a user holds. Takes effect at the user's next login or refresh."""
    async with unit_of_work(session, settings.store_timeout_seconds):
        await rbac_service.set_user_roles(session, user_id, request.role_ids)
        return await auth_service.get_profile(session, user_id)


@router.get("/users/{user_id}/permissions", response_model=UserPermissionsResponse)
async def get_user_permissions(
    user_id: uuid.UUID,
    _caller: Annotated[UserContext, Depends(permission_required(VIEW_PERMISSIONS))],
    session: SessionDep,
    settings: SettingsDep,
) -> UserPermissionsResponse:
    """Show a user's roles and the union of their permissions."""
    async with unit_of_work(session, settings.store_timeout_seconds):
        profile = await auth_service.get_profile(session, user_id)
        return UserPermissionsResponse(
            user_id=profile.id,
            roles=profile.roles,
            permissions=await rbac_service.get_user_permission_names(session, user_id),
        )


# --- Draft access log ---


@router.get("/draft-access-logs", response_model=Page[DraftAccessLogResponse])
async def list_draft_access_logs(
    _caller: Annotated[UserContext, Depends(permission_required(VIEW_STATISTICS))],
    session: SessionDep,
    settings: SettingsDep,
    pagination: Annotated[PaginationParams, Depends()],
    post_id: Annotated[uuid.UUID | None, Query()] = None,
    accessed_by: Annotated[uuid.UUID | None, Query()] = None,
) -> Page[DraftAccessLogResponse]:
    """Query who accessed which draft through sharing."""
    async with unit_of_work(session, settings.store_timeout_seconds):
        logs, total = await draft_access_service.query_access_logs(
            session,
            post_id=post_id,
            accessed_by=accessed_by,
            page=pagination.page,
            page_size=pagination.page_size,
        )
        items = [DraftAccessLogResponse.model_validate(entry) for entry in logs]
    return Page[DraftAccessLogResponse](items=items, pagination=PaginationMeta.for_total(total, pagination))
