"""Custom permission grants: direct user permissions outside any role.

Re-granting an existing (user, permission, context) with a different
expiry updates the row in place; re-granting with the same expiry is a
conflict. Expired rows are kept and filtered by the resolver.
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from careaccess.middleware.exceptions import BadRequestError, ConflictError, NotFoundError
from careaccess.models.enums import ContextType
from careaccess.models.permission import Permission
from careaccess.models.user_custom_permission import UserCustomPermission
from careaccess.utils.cache import invalidate_effective_permissions

logger = logging.getLogger(__name__)


def _grant_filter(
    user_id: str,
    permission_id: str,
    context_type: ContextType,
    context_id: str | None,
):
    clauses = [
        UserCustomPermission.user_id == user_id,
        UserCustomPermission.permission_id == permission_id,
        UserCustomPermission.context_type == context_type,
    ]
    if context_id is None:
        clauses.append(UserCustomPermission.context_id.is_(None))
    else:
        clauses.append(UserCustomPermission.context_id == context_id)
    return clauses


async def _find_grant(
    db: AsyncSession,
    user_id: str,
    permission_id: str,
    context_type: ContextType,
    context_id: str | None,
) -> UserCustomPermission | None:
    return (
        await db.execute(
            select(UserCustomPermission).where(
                *_grant_filter(user_id, permission_id, context_type, context_id)
            )
        )
    ).scalar_one_or_none()


async def grant_custom_permission(
    db: AsyncSession,
    user_id: str,
    permission_id: str,
    context_type: ContextType,
    context_id: str | None = None,
    *,
    granted_by_id: str,
    expires_at: datetime | None = None,
) -> UserCustomPermission:
    """Grant a permission directly to a user.

    Raises:
        BadRequestError: ORGANIZATION grant without a context_id
        NotFoundError: permission does not exist
        ConflictError: identical grant already present
    """
    if context_type == ContextType.ORGANIZATION and not context_id:
        raise BadRequestError("context_id is required for ORGANIZATION grants")
    if context_type == ContextType.SYSTEM:
        context_id = None

    if await db.get(Permission, permission_id) is None:
        raise NotFoundError("Permission", permission_id)

    existing = await _find_grant(db, user_id, permission_id, context_type, context_id)
    if existing is not None:
        if existing.expires_at == expires_at:
            raise ConflictError(
                f"Permission {permission_id} is already granted to user {user_id}"
            )
        existing.expires_at = expires_at
        await db.flush()
        logger.info(
            f"Custom permission {permission_id} for user {user_id}: expiry updated",
            extra={"granted_by_id": granted_by_id, "expires_at": str(expires_at)},
        )
        await invalidate_effective_permissions(user_id)
        return existing

    grant = UserCustomPermission(
        user_id=user_id,
        permission_id=permission_id,
        context_type=context_type,
        context_id=context_id,
        granted_by_id=granted_by_id,
        expires_at=expires_at,
    )
    db.add(grant)
    await db.flush()

    logger.info(
        f"Custom permission {permission_id} granted to user {user_id}",
        extra={"granted_by_id": granted_by_id, "context_id": context_id},
    )
    await invalidate_effective_permissions(user_id)
    return grant


async def revoke_custom_permission(
    db: AsyncSession,
    user_id: str,
    permission_id: str,
    context_type: ContextType,
    context_id: str | None = None,
) -> None:
    if context_type == ContextType.SYSTEM:
        context_id = None

    grant = await _find_grant(db, user_id, permission_id, context_type, context_id)
    if grant is None:
        raise NotFoundError(
            "Custom permission",
            f"{user_id}/{permission_id}",
            message=f"Custom permission {permission_id} not found for user {user_id}",
        )
    await db.delete(grant)
    await db.flush()

    logger.info(f"Custom permission {permission_id} revoked from user {user_id}")
    await invalidate_effective_permissions(user_id)


async def list_user_grants(
    db: AsyncSession,
    user_id: str,
    context_type: ContextType | None = None,
    context_id: str | None = None,
    include_expired: bool = True,
) -> list[UserCustomPermission]:
    query = select(UserCustomPermission).where(UserCustomPermission.user_id == user_id)
    if context_type:
        query = query.where(UserCustomPermission.context_type == context_type)
    if context_id:
        query = query.where(UserCustomPermission.context_id == context_id)
    result = await db.execute(query.order_by(UserCustomPermission.permission_id))
    grants = list(result.scalars().all())

    if not include_expired:
        now = datetime.utcnow()
        grants = [g for g in grants if g.is_valid(now)]
    return grants
