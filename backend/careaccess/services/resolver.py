"""Permission resolver computing a user's effective permission set.

Algorithm:
  1. Active OrganizationRole rows for the user (optionally one organization,
     optionally dropping rows outside their active window)
  2. RolePermission rows for those roles          → P_role
  3. Non-expired, context-matching custom grants  → P_custom
  4. P_direct    = P_role ∪ P_custom
  5. P_effective = closure of P_direct over the implication graph
  6. Permission rows for P_effective, ordered by category then id

A user with no rows anywhere resolves to the empty set.
"""

import logging
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from careaccess.config import settings
from careaccess.models.enums import ContextType
from careaccess.models.organization_role import OrganizationRole
from careaccess.models.permission import Permission
from careaccess.models.role_permission import RolePermission
from careaccess.models.user_custom_permission import UserCustomPermission
from careaccess.services.implications import expand_closure
from careaccess.utils.cache import (
    effective_key,
    get_cached_permission_ids,
    store_permission_ids,
)

logger = logging.getLogger(__name__)


async def _role_permission_ids(
    db: AsyncSession,
    user_id: str,
    organization_id: str | None,
    enforce_active_window: bool,
    now: datetime,
) -> set[str]:
    query = select(OrganizationRole).where(
        OrganizationRole.user_id == user_id,
        OrganizationRole.is_active == True,  # noqa: E712
    )
    if organization_id:
        query = query.where(OrganizationRole.organization_id == organization_id)
    assignments = (await db.execute(query)).scalars().all()

    if enforce_active_window:
        assignments = [a for a in assignments if a.is_within_window(now)]

    role_ids = {a.role_id for a in assignments}
    if not role_ids:
        return set()

    result = await db.execute(
        select(RolePermission.permission_id).where(RolePermission.role_id.in_(role_ids))
    )
    return set(result.scalars().all())


async def _custom_permission_ids(
    db: AsyncSession,
    user_id: str,
    context_type: ContextType | None,
    organization_id: str | None,
    now: datetime,
) -> set[str]:
    query = select(UserCustomPermission.permission_id).where(
        UserCustomPermission.user_id == user_id,
        or_(
            UserCustomPermission.expires_at.is_(None),
            UserCustomPermission.expires_at > now,
        ),
    )
    if context_type:
        query = query.where(UserCustomPermission.context_type == context_type)
        if context_type == ContextType.ORGANIZATION and organization_id:
            query = query.where(UserCustomPermission.context_id == organization_id)
    result = await db.execute(query)
    return set(result.scalars().all())


async def resolve_effective_permission_ids(
    db: AsyncSession,
    user_id: str,
    *,
    context_type: ContextType | None = None,
    organization_id: str | None = None,
    enforce_active_window: bool | None = None,
) -> set[str]:
    """Steps 1-5: ids of every permission the user effectively holds."""
    if enforce_active_window is None:
        enforce_active_window = settings.enforce_role_active_window

    key = effective_key(
        user_id,
        context_type.value if context_type else None,
        organization_id,
        enforce_active_window,
    )
    cached_ids = await get_cached_permission_ids(key)
    if cached_ids is not None:
        return cached_ids

    now = datetime.utcnow()
    p_role = await _role_permission_ids(
        db, user_id, organization_id, enforce_active_window, now
    )
    p_custom = await _custom_permission_ids(
        db, user_id, context_type, organization_id, now
    )
    p_direct = p_role | p_custom
    p_effective = await expand_closure(db, p_direct)

    logger.debug(
        f"Resolved {user_id}: {len(p_role)} role, {len(p_custom)} custom, "
        f"{len(p_effective)} effective",
        extra={"user_id": user_id, "organization_id": organization_id},
    )

    await store_permission_ids(key, p_effective)
    return p_effective


async def resolve_effective_permissions(
    db: AsyncSession,
    user_id: str,
    *,
    context_type: ContextType | None = None,
    organization_id: str | None = None,
    enforce_active_window: bool | None = None,
) -> list[Permission]:
    """Full Permission records the user holds, ordered by category then id.

    Ids with no Permission row (e.g. removed after being granted) are dropped.
    """
    permission_ids = await resolve_effective_permission_ids(
        db,
        user_id,
        context_type=context_type,
        organization_id=organization_id,
        enforce_active_window=enforce_active_window,
    )
    if not permission_ids:
        return []

    result = await db.execute(
        select(Permission)
        .where(Permission.id.in_(permission_ids))
        .order_by(Permission.category, Permission.id)
    )
    return list(result.scalars().all())


async def has_permission(
    db: AsyncSession,
    user_id: str,
    permission_id: str,
    *,
    context_type: ContextType | None = None,
    organization_id: str | None = None,
) -> bool:
    permission_ids = await resolve_effective_permission_ids(
        db,
        user_id,
        context_type=context_type,
        organization_id=organization_id,
    )
    return permission_id in permission_ids


async def has_organization_access(
    db: AsyncSession, user_id: str, organization_id: str
) -> bool:
    """True if the user holds at least one active role in the organization."""
    result = await db.execute(
        select(OrganizationRole.id)
        .where(
            OrganizationRole.user_id == user_id,
            OrganizationRole.organization_id == organization_id,
            OrganizationRole.is_active == True,  # noqa: E712
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None
