"""Role-based permission resolution and RBAC administration.

A user's effective permissions are the union of the permissions of every
role they hold. Administrative functions flush but never commit; the
caller owns the transaction.
"""

import uuid

from loguru import logger
from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from blog_api.core.errors import ConflictError, InternalError, NotFoundError
from blog_api.models.rbac import Permission, Role, role_permissions, user_roles
from blog_api.models.user import User

DEFAULT_PERMISSIONS: dict[str, str] = {
    "admin:role_management": "Create, delete and edit roles and permissions",
    "admin:user_management": "Assign roles to users",
    "admin:user_list": "List registered users",
    "admin:view_permissions": "View role and user permissions",
    "admin:view_statistics": "View site statistics and draft access logs",
    "category:create": "Create categories",
    "category:manage": "Edit, merge and delete categories",
    "tag:create": "Create tags",
    "tag:manage": "Edit, merge and delete tags",
    "post:create": "Create and edit own posts",
    "post:read_published": "Read published posts",
    "post:draft:access_shared": "Read drafts shared publicly with trusted users",
}

DEFAULT_ROLE_PERMISSIONS: dict[str, tuple[str, ...]] = {
    "admin": tuple(DEFAULT_PERMISSIONS),
    "editor": (
        "category:create",
        "category:manage",
        "tag:create",
        "tag:manage",
        "post:create",
        "post:read_published",
        "post:draft:access_shared",
    ),
    "author": ("category:create", "tag:create", "post:create", "post:read_published"),
}


async def get_user_role_names(session: AsyncSession, user_id: uuid.UUID) -> list[str]:
    """Return the names of every role the user holds, sorted."""
    result = await session.execute(
        select(Role.name)
        .join(user_roles, user_roles.c.role_id == Role.id)
        .where(user_roles.c.user_id == user_id)
        .order_by(Role.name)
    )
    return list(result.scalars().all())


async def get_user_permission_names(session: AsyncSession, user_id: uuid.UUID) -> list[str]:
    """Return the union of permissions across all of the user's roles, sorted."""
    result = await session.execute(
        select(Permission.name)
        .join(role_permissions, role_permissions.c.permission_id == Permission.id)
        .join(user_roles, user_roles.c.role_id == role_permissions.c.role_id)
        .where(user_roles.c.user_id == user_id)
        .distinct()
        .order_by(Permission.name)
    )
    return list(result.scalars().all())


async def assign_default_role(session: AsyncSession, user_id: uuid.UUID, role_name: str) -> None:
    """Attach the configured default role to a newly created user.

    Raises:
        InternalError: If the role does not exist (server misconfiguration).
    """
    role_id = (await session.execute(select(Role.id).where(Role.name == role_name))).scalar_one_or_none()
    if role_id is None:
        logger.error(f"Default role '{role_name}' is missing; run 'blog-api seed'")
        msg = f"Default role '{role_name}' is not configured"
        raise InternalError(msg)
    await session.execute(insert(user_roles).values(user_id=user_id, role_id=role_id))


# --- Roles ---


async def list_roles(session: AsyncSession) -> list[Role]:
    """List every role with its permissions, ordered by name."""
    result = await session.execute(select(Role).order_by(Role.name))
    return list(result.scalars().all())


async def get_role(session: AsyncSession, role_id: uuid.UUID) -> Role:
    """Fetch a role by ID.

    Raises:
        NotFoundError: If no such role exists.
    """
    role = await session.get(Role, role_id)
    if role is None:
        msg = f"Role {role_id} not found"
        raise NotFoundError(msg)
    return role


async def create_role(session: AsyncSession, name: str, description: str | None = None) -> Role:
    """Create a role with no permissions.

    Raises:
        ConflictError: If the name is taken.
    """
    existing = await session.execute(select(Role.id).where(Role.name == name))
    if existing.scalar_one_or_none() is not None:
        msg = f"Role '{name}' already exists"
        raise ConflictError(msg)
    role = Role(name=name, description=description)
    session.add(role)
    try:
        await session.flush()
    except IntegrityError as e:
        msg = f"Role '{name}' already exists"
        raise ConflictError(msg) from e
    await session.refresh(role, attribute_names=["permissions", "created_at"])
    logger.info(f"Created role '{name}'")
    return role


async def update_role(
    session: AsyncSession,
    role_id: uuid.UUID,
    *,
    name: str | None = None,
    description: str | None = None,
) -> Role:
    """Rename a role or change its description. ``None`` leaves a field unchanged.

    Raises:
        NotFoundError: If no such role exists.
        ConflictError: If another role already has the new name.
    """
    role = await get_role(session, role_id)
    if name is not None and name != role.name:
        taken = await session.execute(select(Role.id).where(Role.name == name, Role.id != role_id))
        if taken.scalar_one_or_none() is not None:
            msg = f"Role '{name}' already exists"
            raise ConflictError(msg)
        logger.info(f"Renamed role '{role.name}' to '{name}'")
        role.name = name
    if description is not None:
        role.description = description
    await session.flush()
    await session.refresh(role, attribute_names=["permissions"])
    return role


async def delete_role(session: AsyncSession, role_id: uuid.UUID) -> None:
    """Delete a role. Memberships and grants cascade.

    Raises:
        NotFoundError: If no such role exists.
    """
    role = await get_role(session, role_id)
    await session.execute(delete(user_roles).where(user_roles.c.role_id == role_id))
    await session.delete(role)
    await session.flush()
    logger.info(f"Deleted role '{role.name}'")


async def set_role_permissions(
    session: AsyncSession,
    role_id: uuid.UUID,
    permission_ids: list[uuid.UUID],
) -> Role:
    """Replace a role's permission set.

    Raises:
        NotFoundError: If the role or any permission does not exist.
    """
    role = await get_role(session, role_id)
    wanted = set(permission_ids)
    if wanted:
        found = await session.execute(select(Permission.id).where(Permission.id.in_(wanted)))
        missing = wanted - set(found.scalars().all())
        if missing:
            msg = f"Unknown permission IDs: {', '.join(sorted(str(m) for m in missing))}"
            raise NotFoundError(msg)

    await session.execute(delete(role_permissions).where(role_permissions.c.role_id == role_id))
    if wanted:
        await session.execute(
            insert(role_permissions),
            [{"role_id": role_id, "permission_id": pid} for pid in wanted],
        )
    await session.flush()
    await session.refresh(role, attribute_names=["permissions"])
    logger.info(f"Role '{role.name}' now grants {len(wanted)} permission(s)")
    return role


# --- Permissions ---


async def list_permissions(session: AsyncSession) -> list[Permission]:
    """List every permission, ordered by name."""
    result = await session.execute(select(Permission).order_by(Permission.name))
    return list(result.scalars().all())


async def create_permission(session: AsyncSession, name: str, description: str | None = None) -> Permission:
    """Create a permission.

    Raises:
        ConflictError: If the name is taken.
    """
    existing = await session.execute(select(Permission.id).where(Permission.name == name))
    if existing.scalar_one_or_none() is not None:
        msg = f"Permission '{name}' already exists"
        raise ConflictError(msg)
    permission = Permission(name=name, description=description)
    session.add(permission)
    try:
        await session.flush()
    except IntegrityError as e:
        msg = f"Permission '{name}' already exists"
        raise ConflictError(msg) from e
    await session.refresh(permission, attribute_names=["created_at"])
    logger.info(f"Created permission '{name}'")
    return permission


async def update_permission(
    session: AsyncSession,
    permission_id: uuid.UUID,
    *,
    name: str | None = None,
    description: str | None = None,
) -> Permission:
    """Rename a permission or change its description. ``None`` leaves a field unchanged.

    Raises:
        NotFoundError: If no such permission exists.
        ConflictError: If another permission already has the new name.
    """
    permission = await session.get(Permission, permission_id)
    if permission is None:
        msg = f"Permission {permission_id} not found"
        raise NotFoundError(msg)
    if name is not None and name != permission.name:
        taken = await session.execute(
            select(Permission.id).where(Permission.name == name, Permission.id != permission_id)
        )
        if taken.scalar_one_or_none() is not None:
            msg = f"Permission '{name}' already exists"
            raise ConflictError(msg)
        logger.info(f"Renamed permission '{permission.name}' to '{name}'")
        permission.name = name
    if description is not None:
        permission.description = description
    await session.flush()
    return permission


async def delete_permission(session: AsyncSession, permission_id: uuid.UUID) -> None:
    """Delete a permission. Grants cascade.

    Raises:
        NotFoundError: If no such permission exists.
    """
    permission = await session.get(Permission, permission_id)
    if permission is None:
        msg = f"Permission {permission_id} not found"
        raise NotFoundError(msg)
    await session.execute(delete(role_permissions).where(role_permissions.c.permission_id == permission_id))
    await session.delete(permission)
    await session.flush()
    logger.info(f"Deleted permission '{permission.name}'")


# --- User roles ---


async def set_user_roles(session: AsyncSession, user_id: uuid.UUID, role_ids: list[uuid.UUID]) -> list[str]:
    """Replace the set of roles a user holds.

    Returns:
        The user's role names after the change.

    Raises:
        NotFoundError: If the user or any role does not exist.
    """
    if await session.get(User, user_id) is None:
        msg = f"User {user_id} not found"
        raise NotFoundError(msg)
    wanted = set(role_ids)
    if wanted:
        found = await session.execute(select(Role.id).where(Role.id.in_(wanted)))
        missing = wanted - set(found.scalars().all())
        if missing:
            msg = f"Unknown role IDs: {', '.join(sorted(str(m) for m in missing))}"
            raise NotFoundError(msg)

    await session.execute(delete(user_roles).where(user_roles.c.user_id == user_id))
    if wanted:
        await session.execute(insert(user_roles), [{"user_id": user_id, "role_id": rid} for rid in wanted])
    await session.flush()
    names = await get_user_role_names(session, user_id)
    logger.info(f"User {user_id} roles set to {names}")
    return names


async def grant_role_by_name(session: AsyncSession, username: str, role_name: str) -> None:
    """Add a role to a user, both looked up by name. No-op if already held.

    Raises:
        NotFoundError: If the user or role does not exist.
    """
    user_id = (await session.execute(select(User.id).where(User.username == username))).scalar_one_or_none()
    if user_id is None:
        msg = f"User '{username}' not found"
        raise NotFoundError(msg)
    role_id = (await session.execute(select(Role.id).where(Role.name == role_name))).scalar_one_or_none()
    if role_id is None:
        msg = f"Role '{role_name}' not found"
        raise NotFoundError(msg)
    held = await session.execute(
        select(func.count()).select_from(user_roles).where(
            user_roles.c.user_id == user_id,
            user_roles.c.role_id == role_id,
        )
    )
    if held.scalar_one() == 0:
        await session.execute(insert(user_roles).values(user_id=user_id, role_id=role_id))
        logger.info(f"Granted role '{role_name}' to '{username}'")


async def seed_defaults(session: AsyncSession) -> dict[str, int]:
    """Create the default permissions and roles if they are missing.

    Existing roles keep their current grants; only missing roles receive
    the default permission set. Safe to run repeatedly.

    Returns:
        Counts of permissions and roles created.
    """
    existing_perms = {p.name: p for p in await list_permissions(session)}
    created_perms = 0
    for name, description in DEFAULT_PERMISSIONS.items():
        if name not in existing_perms:
            permission = Permission(name=name, description=description)
            session.add(permission)
            existing_perms[name] = permission
            created_perms += 1
    await session.flush()

    existing_roles = set((await session.execute(select(Role.name))).scalars().all())
    created_roles = 0
    for role_name, perm_names in DEFAULT_ROLE_PERMISSIONS.items():
        if role_name in existing_roles:
            continue
        role = Role(name=role_name, description=f"Default {role_name} role")
        session.add(role)
        await session.flush()
        await session.execute(
            insert(role_permissions),
            [{"role_id": role.id, "permission_id": existing_perms[p].id} for p in perm_names],
        )
        created_roles += 1
    await session.flush()

    logger.info(f"Seeded {created_perms} permission(s) and {created_roles} role(s)")
    return {"permissions": created_perms, "roles": created_roles}
