"""Permission catalog and implication graph router.

Endpoints:
    GET    /api/authz/permissions                              List permissions (paged)
    GET    /api/authz/permissions/categories                   Distinct categories
    POST   /api/authz/permissions                              Create permission
    GET    /api/authz/permissions/{id}                         Get permission
    PUT    /api/authz/permissions/{id}                         Update permission
    DELETE /api/authz/permissions/{id}                         Delete permission
    GET    /api/authz/permission-implications                  List edges
    POST   /api/authz/permission-implications                  Create edge
    DELETE /api/authz/permission-implications/{parent}/{child} Remove edge
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from careaccess.auth.deps import require_permission
from careaccess.database import get_db
from careaccess.models.enums import ContextType
from careaccess.schemas.common import PaginatedResponse
from careaccess.schemas.permission import (
    ImplicationCreate,
    ImplicationOut,
    PermissionCreate,
    PermissionOut,
    PermissionUpdate,
)
from careaccess.services import admin, implications

router = APIRouter()


# ── Permissions ──────────────────────────────────────────────

@router.get("/permissions", response_model=PaginatedResponse[PermissionOut])
async def list_permissions(
    category: str | None = Query(None),
    context_type: ContextType | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_permissions")),
):
    """List permissions sorted by category then name."""
    items, total = await admin.list_permissions(
        db, category=category, context_type=context_type, limit=limit, offset=offset
    )
    return PaginatedResponse[PermissionOut](
        items=[PermissionOut.model_validate(p) for p in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/permissions/categories", response_model=list[str])
async def list_categories(
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_permissions")),
):
    return await admin.list_categories(db)


@router.post("/permissions", response_model=PermissionOut, status_code=201)
async def create_permission(
    body: PermissionCreate,
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_permissions")),
):
    permission = await admin.create_permission(db, body)
    return PermissionOut.model_validate(permission)


@router.get("/permissions/{permission_id}", response_model=PermissionOut)
async def get_permission(
    permission_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_permissions")),
):
    return PermissionOut.model_validate(await admin.get_permission(db, permission_id))


@router.put("/permissions/{permission_id}", response_model=PermissionOut)
async def update_permission(
    permission_id: str,
    body: PermissionUpdate,
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_permissions")),
):
    permission = await admin.update_permission(db, permission_id, body)
    return PermissionOut.model_validate(permission)


@router.delete("/permissions/{permission_id}", status_code=204)
async def delete_permission(
    permission_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_permissions")),
):
    """Delete a permission (refused while referenced or system-owned)."""
    await admin.delete_permission(db, permission_id)


# ── Implication graph ────────────────────────────────────────

@router.get("/permission-implications", response_model=list[ImplicationOut])
async def list_implications(
    parent_id: str | None = Query(None),
    child_id: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_permissions")),
):
    edges = await implications.list_implications(db, parent_id=parent_id, child_id=child_id)
    return [ImplicationOut.model_validate(e) for e in edges]


@router.post("/permission-implications", response_model=ImplicationOut, status_code=201)
async def create_implication(
    body: ImplicationCreate,
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_permissions")),
):
    """Add parent → child; rejected with 409 if it would close a cycle."""
    edge = await implications.create_implication(
        db, body.parent_permission_id, body.child_permission_id
    )
    return ImplicationOut.model_validate(edge)


@router.delete("/permission-implications/{parent_id}/{child_id}", status_code=204)
async def remove_implication(
    parent_id: str,
    child_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: str = Depends(require_permission("manage_permissions")),
):
    await implications.remove_implication(db, parent_id, child_id)
