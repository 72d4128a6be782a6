"""Per-user authorization router: role assignments, custom grants, resolution.

Endpoints:
    GET    /api/authz/users/{uid}/organization-roles             List assignments
    POST   /api/authz/users/{uid}/organization-roles             Assign role
    DELETE /api/authz/users/{uid}/organization-roles/{role_id}   Remove role
    GET    /api/authz/users/{uid}/custom-permissions             List grants
    POST   /api/authz/users/{uid}/custom-permissions             Grant permission
    DELETE /api/authz/users/{uid}/custom-permissions/{pid}       Revoke permission
    GET    /api/authz/users/{uid}/effective-permissions          Resolve user
    GET    /api/authz/me/permissions                             Resolve caller

Where an organization id is optional, the X-Organization-Id header is used
as the default.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from careaccess.auth.deps import get_current_actor_id, get_organization_id, require_permission
from careaccess.database import get_db
from careaccess.middleware.exceptions import BadRequestError
from careaccess.models.enums import ContextType
from careaccess.schemas.assignment import (
    CustomPermissionGrant,
    CustomPermissionOut,
    EffectivePermissionsOut,
    OrganizationRoleAssign,
    OrganizationRoleOut,
)
from careaccess.schemas.permission import PermissionOut
from careaccess.services import assignments, grants, resolver

router = APIRouter()


# ── Organization roles ───────────────────────────────────────

@router.get("/users/{user_id}/organization-roles", response_model=list[OrganizationRoleOut])
async def list_user_roles(
    user_id: str,
    organization_id: str | None = Query(None),
    header_org: str | None = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_all_users")),
):
    rows = await assignments.list_user_roles(db, user_id, organization_id or header_org)
    return [OrganizationRoleOut.model_validate(r) for r in rows]


@router.post(
    "/users/{user_id}/organization-roles",
    response_model=OrganizationRoleOut,
    status_code=201,
)
async def assign_role(
    user_id: str,
    body: OrganizationRoleAssign,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(require_permission("manage_all_users")),
):
    """Assign a role; a new primary role demotes the previous one."""
    assignment = await assignments.assign_role(
        db,
        user_id=user_id,
        role_id=body.role_id,
        organization_id=body.organization_id,
        assigned_by_id=actor_id,
        is_primary=body.is_primary,
        active_from=body.active_from,
        active_to=body.active_to,
    )
    return OrganizationRoleOut.model_validate(assignment)


@router.delete("/users/{user_id}/organization-roles/{role_id}", status_code=204)
async def remove_role(
    user_id: str,
    role_id: str,
    organization_id: str | None = Query(None),
    header_org: str | None = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_all_users")),
):
    organization_id = organization_id or header_org
    if not organization_id:
        raise BadRequestError("organization_id is required")
    await assignments.remove_role(db, user_id, role_id, organization_id)


# ── Custom permissions ───────────────────────────────────────

@router.get("/users/{user_id}/custom-permissions", response_model=list[CustomPermissionOut])
async def list_user_grants(
    user_id: str,
    context_type: ContextType | None = Query(None),
    context_id: str | None = Query(None),
    include_expired: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_all_users")),
):
    rows = await grants.list_user_grants(
        db, user_id, context_type=context_type, context_id=context_id,
        include_expired=include_expired,
    )
    return [CustomPermissionOut.model_validate(r) for r in rows]


@router.post(
    "/users/{user_id}/custom-permissions",
    response_model=CustomPermissionOut,
    status_code=201,
)
async def grant_custom_permission(
    user_id: str,
    body: CustomPermissionGrant,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(require_permission("manage_all_users")),
):
    """Grant a permission directly; re-granting with a new expiry updates it."""
    grant = await grants.grant_custom_permission(
        db,
        user_id,
        body.permission_id,
        body.context_type,
        body.context_id,
        granted_by_id=actor_id,
        expires_at=body.expires_at,
    )
    return CustomPermissionOut.model_validate(grant)


@router.delete("/users/{user_id}/custom-permissions/{permission_id}", status_code=204)
async def revoke_custom_permission(
    user_id: str,
    permission_id: str,
    context_type: ContextType | None = Query(None),
    context_id: str | None = Query(None),
    header_org: str | None = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_all_users")),
):
    """Revoke a grant. Without context_type, an organization id selects ORGANIZATION."""
    context_id = context_id or header_org
    if context_type is None:
        context_type = ContextType.ORGANIZATION if context_id else ContextType.SYSTEM
    await grants.revoke_custom_permission(
        db, user_id, permission_id, context_type, context_id
    )


# ── Resolution ───────────────────────────────────────────────

async def _resolve(
    db: AsyncSession,
    user_id: str,
    context_type: ContextType | None,
    organization_id: str | None,
    enforce_active_window: bool | None,
) -> list[PermissionOut]:
    permissions = await resolver.resolve_effective_permissions(
        db,
        user_id,
        context_type=context_type,
        organization_id=organization_id,
        enforce_active_window=enforce_active_window,
    )
    return [PermissionOut.model_validate(p) for p in permissions]


@router.get("/users/{user_id}/effective-permissions", response_model=list[PermissionOut])
async def get_effective_permissions(
    user_id: str,
    context_type: ContextType | None = Query(None),
    organization_id: str | None = Query(None),
    enforce_active_window: bool | None = Query(None),
    header_org: str | None = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_all_users")),
):
    """Effective permissions: role grants ∪ custom grants, expanded through implications."""
    return await _resolve(
        db, user_id, context_type, organization_id or header_org, enforce_active_window
    )


@router.get("/me/permissions", response_model=EffectivePermissionsOut)
async def get_my_permissions(
    context_type: ContextType | None = Query(None),
    header_org: str | None = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_current_actor_id),
):
    """Permission ids held by the caller in the current organization context."""
    permission_ids = await resolver.resolve_effective_permission_ids(
        db, actor_id, context_type=context_type, organization_id=header_org
    )
    return EffectivePermissionsOut(
        user_id=actor_id,
        organization_id=header_org,
        context_type=context_type,
        permissions=sorted(permission_ids),
        total=len(permission_ids),
    )
