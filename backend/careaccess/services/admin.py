"""Role / permission administration.

Covers catalog CRUD, role cloning and the role → permission mapping.

Cloning is a snapshot: creating a role with `base_role_id` copies the base
role's permissions once. Pointing an existing role at a different base
replaces its permissions with a fresh copy of the new base's.

Deletes are refused while anything still references the entity (counts are
returned in the ConflictError details) and for seeded `is_system` rows.
"""

import logging

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from careaccess.middleware.exceptions import BadRequestError, ConflictError, NotFoundError
from careaccess.models.enums import ContextType
from careaccess.models.organization_role import OrganizationRole
from careaccess.models.permission import Permission
from careaccess.models.permission_implication import PermissionImplication
from careaccess.models.role import Role
from careaccess.models.role_permission import RolePermission
from careaccess.models.user_custom_permission import UserCustomPermission
from careaccess.schemas.permission import PermissionCreate, PermissionUpdate
from careaccess.schemas.role import RoleCreate, RoleUpdate
from careaccess.utils.cache import invalidate_effective_permissions

logger = logging.getLogger(__name__)


async def _count(db: AsyncSession, model, *where) -> int:
    result = await db.execute(select(func.count()).select_from(model).where(*where))
    return result.scalar() or 0


# ── Permissions ──────────────────────────────────────────────

async def list_permissions(
    db: AsyncSession,
    category: str | None = None,
    context_type: ContextType | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Permission], int]:
    """Return one page of permissions and the unpaged total."""
    filters = []
    if category:
        filters.append(Permission.category == category)
    if context_type:
        filters.append(Permission.context_type == context_type)

    total = await _count(db, Permission, *filters)
    result = await db.execute(
        select(Permission)
        .where(*filters)
        .order_by(Permission.category, Permission.name)
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total


async def list_categories(db: AsyncSession) -> list[str]:
    result = await db.execute(
        select(Permission.category).distinct().order_by(Permission.category)
    )
    return list(result.scalars().all())


async def get_permission(db: AsyncSession, permission_id: str) -> Permission:
    permission = await db.get(Permission, permission_id)
    if permission is None:
        raise NotFoundError("Permission", permission_id)
    return permission


async def create_permission(db: AsyncSession, body: PermissionCreate) -> Permission:
    if await db.get(Permission, body.id) is not None:
        raise ConflictError(f"Permission with ID {body.id} already exists")

    permission = Permission(**body.model_dump())
    db.add(permission)
    await db.flush()
    logger.info(f"Permission created: {permission.id}")
    return permission


async def update_permission(
    db: AsyncSession, permission_id: str, body: PermissionUpdate
) -> Permission:
    permission = await get_permission(db, permission_id)

    updates = body.model_dump(exclude_unset=True)
    for key, value in updates.items():
        setattr(permission, key, value)
    await db.flush()
    logger.info(f"Permission updated: {permission_id} ({', '.join(updates) or 'no changes'})")
    return permission


async def delete_permission(db: AsyncSession, permission_id: str) -> None:
    """Delete an unreferenced, non-system permission.

    Raises:
        NotFoundError: permission does not exist
        ConflictError: still used by roles, user grants or implication edges
        BadRequestError: seeded system permission
    """
    permission = await get_permission(db, permission_id)

    references = {
        "role_permissions": await _count(
            db, RolePermission, RolePermission.permission_id == permission_id
        ),
        "user_custom_permissions": await _count(
            db, UserCustomPermission, UserCustomPermission.permission_id == permission_id
        ),
        "permission_implications": await _count(
            db,
            PermissionImplication,
            or_(
                PermissionImplication.parent_permission_id == permission_id,
                PermissionImplication.child_permission_id == permission_id,
            ),
        ),
    }
    if any(references.values()):
        raise ConflictError(
            f"Cannot delete permission {permission_id}: still referenced",
            details=references,
        )
    if permission.is_system:
        raise BadRequestError(f"Permission {permission_id} is a system permission")

    await db.delete(permission)
    await db.flush()
    logger.info(f"Permission deleted: {permission_id}")


# ── Roles ────────────────────────────────────────────────────

async def list_roles(
    db: AsyncSession,
    context_type: ContextType | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Role], int]:
    filters = []
    if context_type:
        filters.append(Role.context_type == context_type)

    total = await _count(db, Role, *filters)
    result = await db.execute(
        select(Role)
        .where(*filters)
        .order_by(Role.hierarchy_level, Role.name)
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total


async def get_role(db: AsyncSession, role_id: str) -> Role:
    role = await db.get(Role, role_id)
    if role is None:
        raise NotFoundError("Role", role_id)
    return role


async def _copy_permissions(db: AsyncSession, role_id: str, base_role_id: str) -> int:
    result = await db.execute(
        select(RolePermission.permission_id).where(RolePermission.role_id == base_role_id)
    )
    permission_ids = list(result.scalars().all())
    db.add_all(
        RolePermission(role_id=role_id, permission_id=permission_id)
        for permission_id in permission_ids
    )
    await db.flush()
    return len(permission_ids)


async def _clear_permissions(db: AsyncSession, role_id: str) -> None:
    await db.execute(
        delete(RolePermission)
        .where(RolePermission.role_id == role_id)
        .execution_options(synchronize_session="fetch")
    )


async def create_role(db: AsyncSession, body: RoleCreate) -> Role:
    """Create a role; with `base_role_id`, start from a copy of that role's permissions."""
    if await db.get(Role, body.id) is not None:
        raise ConflictError(f"Role with ID {body.id} already exists")
    if body.base_role_id and await db.get(Role, body.base_role_id) is None:
        raise NotFoundError("Base role", body.base_role_id)

    role = Role(**body.model_dump())
    db.add(role)
    await db.flush()

    if body.base_role_id:
        copied = await _copy_permissions(db, role.id, body.base_role_id)
        logger.info(f"Role created: {role.id} (cloned {copied} permissions from {body.base_role_id})")
    else:
        logger.info(f"Role created: {role.id}")
    return role


async def update_role(db: AsyncSession, role_id: str, body: RoleUpdate) -> Role:
    role = await get_role(db, role_id)
    updates = body.model_dump(exclude_unset=True)

    new_base = updates.get("base_role_id")
    rebase = "base_role_id" in updates and new_base and new_base != role.base_role_id
    if rebase:
        if new_base == role_id:
            raise BadRequestError("A role cannot be its own base role")
        if await db.get(Role, new_base) is None:
            raise NotFoundError("Base role", new_base)

    for key, value in updates.items():
        setattr(role, key, value)
    await db.flush()

    if rebase:
        await _clear_permissions(db, role_id)
        copied = await _copy_permissions(db, role_id, new_base)
        logger.info(f"Role {role_id} rebased on {new_base}: {copied} permissions copied")
        await invalidate_effective_permissions()
    return role


async def delete_role(db: AsyncSession, role_id: str) -> None:
    """Delete an unassigned, non-system role together with its permission rows.

    Raises:
        NotFoundError: role does not exist
        ConflictError: assigned to users, or the base of another role
        BadRequestError: seeded system role
    """
    role = await get_role(db, role_id)

    references = {
        "organization_roles": await _count(
            db, OrganizationRole, OrganizationRole.role_id == role_id
        ),
        "derived_roles": await _count(db, Role, Role.base_role_id == role_id),
    }
    if any(references.values()):
        raise ConflictError(
            f"Cannot delete role {role_id}: still referenced",
            details=references,
        )
    if role.is_system:
        raise BadRequestError(f"Role {role_id} is a system role")

    await _clear_permissions(db, role_id)
    await db.delete(role)
    await db.flush()
    logger.info(f"Role deleted: {role_id}")


# ── Role permissions ─────────────────────────────────────────

async def _role_permission_ids(db: AsyncSession, role_id: str) -> set[str]:
    result = await db.execute(
        select(RolePermission.permission_id).where(RolePermission.role_id == role_id)
    )
    return set(result.scalars().all())


async def get_role_permissions(db: AsyncSession, role_id: str) -> list[Permission]:
    await get_role(db, role_id)
    result = await db.execute(
        select(Permission)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .where(RolePermission.role_id == role_id)
        .order_by(Permission.category, Permission.name)
    )
    return list(result.scalars().all())


async def assign_permissions_to_role(
    db: AsyncSession, role_id: str, permission_ids: list[str]
) -> dict:
    """Idempotent bulk add.

    Returns:
        {"role_id": str, "added": [...], "already_assigned": [...]}

    Raises:
        NotFoundError: role does not exist
        BadRequestError: any id is unknown (nothing is inserted)
    """
    await get_role(db, role_id)

    requested = list(dict.fromkeys(permission_ids))
    result = await db.execute(select(Permission.id).where(Permission.id.in_(requested)))
    known = set(result.scalars().all())
    unknown = [pid for pid in requested if pid not in known]
    if unknown:
        raise BadRequestError(
            "One or more permissions do not exist",
            details={"unknown_permission_ids": unknown},
        )

    current = await _role_permission_ids(db, role_id)
    added = [pid for pid in requested if pid not in current]
    already_assigned = [pid for pid in requested if pid in current]

    db.add_all(RolePermission(role_id=role_id, permission_id=pid) for pid in added)
    await db.flush()

    if added:
        logger.info(f"Role {role_id}: {len(added)} permissions added")
        await invalidate_effective_permissions()
    return {"role_id": role_id, "added": added, "already_assigned": already_assigned}


async def add_permission_to_role(
    db: AsyncSession, role_id: str, permission_id: str
) -> RolePermission:
    await get_role(db, role_id)
    await get_permission(db, permission_id)

    if permission_id in await _role_permission_ids(db, role_id):
        raise ConflictError(f"Permission {permission_id} is already assigned to role {role_id}")

    role_permission = RolePermission(role_id=role_id, permission_id=permission_id)
    db.add(role_permission)
    await db.flush()

    logger.info(f"Role {role_id}: permission {permission_id} added")
    await invalidate_effective_permissions()
    return role_permission


async def remove_permission_from_role(
    db: AsyncSession, role_id: str, permission_id: str
) -> None:
    await get_role(db, role_id)
    await get_permission(db, permission_id)

    role_permission = await db.get(RolePermission, (role_id, permission_id))
    if role_permission is None:
        raise NotFoundError(
            "Role permission",
            f"{role_id}/{permission_id}",
            message=f"Permission {permission_id} is not assigned to role {role_id}",
        )
    await db.delete(role_permission)
    await db.flush()

    logger.info(f"Role {role_id}: permission {permission_id} removed")
    await invalidate_effective_permissions()
