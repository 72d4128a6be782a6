"""Store-backed operations on the permission implication graph.

Mutations take a transaction-scoped advisory lock before the
read-check-insert. The lock is held until the request commits, so two
requests cannot each admit half of a cycle. Serialization is guaranteed
only on PostgreSQL; other dialects (the SQLite test store) skip the lock.

Traversal itself lives in services.graph.
"""

import logging

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from careaccess.middleware.exceptions import (
    CircularDependencyError,
    ConflictError,
    NotFoundError,
)
from careaccess.models.permission import Permission
from careaccess.models.permission_implication import PermissionImplication
from careaccess.services import graph
from careaccess.utils.cache import invalidate_effective_permissions

logger = logging.getLogger(__name__)

# Arbitrary constant shared by every worker taking the graph mutation lock
IMPLICATION_LOCK_KEY = 7_231_001


async def _acquire_graph_lock(db: AsyncSession) -> None:
    if db.get_bind().dialect.name == "postgresql":
        await db.execute(
            text("SELECT pg_advisory_xact_lock(:key)"), {"key": IMPLICATION_LOCK_KEY}
        )


async def load_adjacency(db: AsyncSession) -> dict[str, set[str]]:
    """Read the full edge set into an adjacency list."""
    result = await db.execute(
        select(
            PermissionImplication.parent_permission_id,
            PermissionImplication.child_permission_id,
        )
    )
    return graph.build_adjacency(result.all())


async def _get_edge(
    db: AsyncSession, parent_id: str, child_id: str
) -> PermissionImplication | None:
    return (
        await db.execute(
            select(PermissionImplication).where(
                PermissionImplication.parent_permission_id == parent_id,
                PermissionImplication.child_permission_id == child_id,
            )
        )
    ).scalar_one_or_none()


async def create_implication(
    db: AsyncSession, parent_id: str, child_id: str
) -> PermissionImplication:
    """Add parent → child.

    Raises:
        NotFoundError: either permission is missing
        CircularDependencyError: parent == child, or child already reaches parent
        ConflictError: the edge already exists
    """
    await _acquire_graph_lock(db)

    for permission_id in (parent_id, child_id):
        if await db.get(Permission, permission_id) is None:
            raise NotFoundError("Permission", permission_id)

    adjacency = await load_adjacency(db)
    path = graph.would_create_cycle(adjacency, parent_id, child_id)
    if path is not None:
        raise CircularDependencyError(parent_id, child_id, path=path + [child_id])

    if child_id in adjacency.get(parent_id, ()):
        raise ConflictError(
            f"Implication {parent_id} -> {child_id} already exists"
        )

    edge = PermissionImplication(
        parent_permission_id=parent_id,
        child_permission_id=child_id,
    )
    db.add(edge)
    await db.flush()

    logger.info(f"Implication created: {parent_id} -> {child_id}")
    await invalidate_effective_permissions()
    return edge


async def remove_implication(db: AsyncSession, parent_id: str, child_id: str) -> None:
    await _acquire_graph_lock(db)

    edge = await _get_edge(db, parent_id, child_id)
    if edge is None:
        raise NotFoundError(
            "Implication",
            f"{parent_id} -> {child_id}",
        )
    await db.delete(edge)
    await db.flush()

    logger.info(f"Implication removed: {parent_id} -> {child_id}")
    await invalidate_effective_permissions()


async def list_implications(
    db: AsyncSession,
    parent_id: str | None = None,
    child_id: str | None = None,
) -> list[PermissionImplication]:
    query = select(PermissionImplication)
    if parent_id:
        query = query.where(PermissionImplication.parent_permission_id == parent_id)
    if child_id:
        query = query.where(PermissionImplication.child_permission_id == child_id)
    query = query.order_by(
        PermissionImplication.parent_permission_id,
        PermissionImplication.child_permission_id,
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_direct_children(db: AsyncSession, permission_id: str) -> list[str]:
    result = await db.execute(
        select(PermissionImplication.child_permission_id)
        .where(PermissionImplication.parent_permission_id == permission_id)
        .order_by(PermissionImplication.child_permission_id)
    )
    return list(result.scalars().all())


async def expand_closure(db: AsyncSession, seed_ids: set[str]) -> set[str]:
    """Seeds plus every permission they transitively imply."""
    if not seed_ids:
        return set()
    adjacency = await load_adjacency(db)
    return graph.expand_closure(adjacency, seed_ids)


async def find_stored_cycle(db: AsyncSession) -> list[str] | None:
    """Scan the stored edges for a cycle (corrupted or hand-edited data)."""
    return graph.find_cycle(await load_adjacency(db))
