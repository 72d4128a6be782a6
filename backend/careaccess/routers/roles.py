"""Role catalog router, including cloning and the role → permission mapping.

Endpoints:
    GET    /api/authz/roles                          List roles (paged)
    POST   /api/authz/roles                          Create role (optionally cloned)
    GET    /api/authz/roles/{id}                     Get role
    PUT    /api/authz/roles/{id}                     Update role (rebase re-copies)
    DELETE /api/authz/roles/{id}                     Delete role
    GET    /api/authz/roles/{id}/permissions         Direct permissions of a role
    POST   /api/authz/roles/{id}/permissions         Bulk-add permissions
    PUT    /api/authz/roles/{id}/permissions/{pid}   Add one permission
    DELETE /api/authz/roles/{id}/permissions/{pid}   Remove one permission
    GET    /api/authz/roles/{id}/members             Users holding the role
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from careaccess.auth.deps import require_permission
from careaccess.database import get_db
from careaccess.models.enums import ContextType
from careaccess.schemas.assignment import OrganizationRoleOut
from careaccess.schemas.common import PaginatedResponse
from careaccess.schemas.permission import PermissionOut
from careaccess.schemas.role import (
    RoleCreate,
    RoleOut,
    RolePermissionsAssign,
    RolePermissionsAssignResult,
    RoleUpdate,
)
from careaccess.services import admin, assignments

router = APIRouter()


@router.get("/roles", response_model=PaginatedResponse[RoleOut])
async def list_roles(
    context_type: ContextType | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_roles")),
):
    """List roles sorted by hierarchy level then name."""
    items, total = await admin.list_roles(
        db, context_type=context_type, limit=limit, offset=offset
    )
    return PaginatedResponse[RoleOut](
        items=[RoleOut.model_validate(r) for r in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/roles", response_model=RoleOut, status_code=201)
async def create_role(
    body: RoleCreate,
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_roles")),
):
    """Create a role. With base_role_id, the base role's permissions are copied once."""
    return RoleOut.model_validate(await admin.create_role(db, body))


@router.get("/roles/{role_id}", response_model=RoleOut)
async def get_role(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_roles")),
):
    return RoleOut.model_validate(await admin.get_role(db, role_id))


@router.put("/roles/{role_id}", response_model=RoleOut)
async def update_role(
    role_id: str,
    body: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_roles")),
):
    return RoleOut.model_validate(await admin.update_role(db, role_id, body))


@router.delete("/roles/{role_id}", status_code=204)
async def delete_role(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_roles")),
):
    await admin.delete_role(db, role_id)


# ── Role permissions ─────────────────────────────────────────

@router.get("/roles/{role_id}/permissions", response_model=list[PermissionOut])
async def get_role_permissions(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_roles")),
):
    permissions = await admin.get_role_permissions(db, role_id)
    return [PermissionOut.model_validate(p) for p in permissions]


@router.post("/roles/{role_id}/permissions", response_model=RolePermissionsAssignResult)
async def assign_permissions_to_role(
    role_id: str,
    body: RolePermissionsAssign,
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_roles")),
):
    """Idempotent bulk add; unknown ids reject the whole request."""
    result = await admin.assign_permissions_to_role(db, role_id, body.permission_ids)
    return RolePermissionsAssignResult(**result)


@router.put("/roles/{role_id}/permissions/{permission_id}", status_code=204)
async def add_permission_to_role(
    role_id: str,
    permission_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_roles")),
):
    await admin.add_permission_to_role(db, role_id, permission_id)


@router.delete("/roles/{role_id}/permissions/{permission_id}", status_code=204)
async def remove_permission_from_role(
    role_id: str,
    permission_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_roles")),
):
    await admin.remove_permission_from_role(db, role_id, permission_id)


@router.get("/roles/{role_id}/members", response_model=list[OrganizationRoleOut])
async def list_role_members(
    role_id: str,
    organization_id: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_roles")),
):
    await admin.get_role(db, role_id)
    members = await assignments.list_role_members(db, role_id, organization_id)
    return [OrganizationRoleOut.model_validate(m) for m in members]
