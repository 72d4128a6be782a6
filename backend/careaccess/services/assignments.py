"""Organization role assignments.

Primary exclusivity: a user has at most one primary role per organization.
Assigning a new primary clears the old one and inserts the new row in the
same transaction. The partial unique index on organization_roles turns a
racing second primary into an IntegrityError; the clear+insert is retried
once inside a SAVEPOINT before surfacing ConflictError.
"""

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from careaccess.middleware.exceptions import BadRequestError, ConflictError, NotFoundError
from careaccess.models.organization_role import OrganizationRole
from careaccess.models.role import Role
from careaccess.utils.cache import invalidate_effective_permissions

logger = logging.getLogger(__name__)

PRIMARY_RETRIES = 1


async def _find_assignment(
    db: AsyncSession, user_id: str, role_id: str, organization_id: str
) -> OrganizationRole | None:
    return (
        await db.execute(
            select(OrganizationRole).where(
                OrganizationRole.user_id == user_id,
                OrganizationRole.role_id == role_id,
                OrganizationRole.organization_id == organization_id,
            )
        )
    ).scalar_one_or_none()


async def _clear_primary(db: AsyncSession, user_id: str, organization_id: str) -> None:
    await db.execute(
        update(OrganizationRole)
        .where(
            OrganizationRole.user_id == user_id,
            OrganizationRole.organization_id == organization_id,
            OrganizationRole.is_primary == True,  # noqa: E712
        )
        .values(is_primary=False)
        .execution_options(synchronize_session="fetch")
    )


async def assign_role(
    db: AsyncSession,
    user_id: str,
    role_id: str,
    organization_id: str,
    assigned_by_id: str | None,
    is_primary: bool = False,
    active_from: datetime | None = None,
    active_to: datetime | None = None,
) -> OrganizationRole:
    """Assign `role_id` to the user within `organization_id`.

    Raises:
        NotFoundError: role does not exist
        BadRequestError: active_from is not before active_to
        ConflictError: the (user, role, organization) triple already exists,
            or a concurrent primary assignment won twice in a row
    """
    if active_from and active_to and active_from >= active_to:
        raise BadRequestError("active_from must be earlier than active_to")

    if await db.get(Role, role_id) is None:
        raise NotFoundError("Role", role_id)

    if await _find_assignment(db, user_id, role_id, organization_id):
        raise ConflictError(
            f"Role {role_id} is already assigned to user {user_id} "
            f"in organization {organization_id}"
        )

    attempt = 0
    while True:
        try:
            async with db.begin_nested():
                if is_primary:
                    await _clear_primary(db, user_id, organization_id)
                assignment = OrganizationRole(
                    user_id=user_id,
                    role_id=role_id,
                    organization_id=organization_id,
                    is_primary=is_primary,
                    is_active=True,
                    active_from=active_from,
                    active_to=active_to,
                    assigned_by_id=assigned_by_id,
                )
                db.add(assignment)
                await db.flush()
            break
        except IntegrityError:
            if attempt >= PRIMARY_RETRIES:
                raise ConflictError(
                    f"Concurrent assignment for user {user_id} "
                    f"in organization {organization_id}; retry the request"
                )
            attempt += 1
            logger.warning(
                f"Primary role race for user {user_id} in {organization_id}, retrying",
                extra={"user_id": user_id, "organization_id": organization_id},
            )

    logger.info(
        f"Role {role_id} assigned to user {user_id} in {organization_id}"
        f"{' (primary)' if is_primary else ''}",
        extra={"assigned_by_id": assigned_by_id},
    )
    await invalidate_effective_permissions(user_id)
    return assignment


async def remove_role(
    db: AsyncSession, user_id: str, role_id: str, organization_id: str
) -> None:
    assignment = await _find_assignment(db, user_id, role_id, organization_id)
    if assignment is None:
        raise NotFoundError(
            "Role assignment",
            f"{user_id}/{role_id}/{organization_id}",
        )
    await db.delete(assignment)
    await db.flush()

    logger.info(f"Role {role_id} removed from user {user_id} in {organization_id}")
    await invalidate_effective_permissions(user_id)


async def list_user_roles(
    db: AsyncSession, user_id: str, organization_id: str | None = None
) -> list[OrganizationRole]:
    query = select(OrganizationRole).where(OrganizationRole.user_id == user_id)
    if organization_id:
        query = query.where(OrganizationRole.organization_id == organization_id)
    query = query.order_by(
        OrganizationRole.organization_id,
        OrganizationRole.is_primary.desc(),
        OrganizationRole.role_id,
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_primary_role(
    db: AsyncSession, user_id: str, organization_id: str
) -> OrganizationRole | None:
    return (
        await db.execute(
            select(OrganizationRole).where(
                OrganizationRole.user_id == user_id,
                OrganizationRole.organization_id == organization_id,
                OrganizationRole.is_primary == True,  # noqa: E712
            )
        )
    ).scalar_one_or_none()


async def list_role_members(
    db: AsyncSession, role_id: str, organization_id: str | None = None
) -> list[OrganizationRole]:
    query = select(OrganizationRole).where(OrganizationRole.role_id == role_id)
    if organization_id:
        query = query.where(OrganizationRole.organization_id == organization_id)
    result = await db.execute(query.order_by(OrganizationRole.assigned_at))
    return list(result.scalars().all())
