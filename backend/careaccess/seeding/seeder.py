"""Wipe-and-reinsert seeding of the authorization catalog.

Steps run strictly in order, each a full wipe followed by a bulk insert:
  1. permissions
  2. roles
  3. permission implications (no per-edge cycle check)
  4. role permissions, looked up against the rows written by 1-2;
     unknown role or permission ids are skipped with a warning

Everything happens inside the caller's transaction, so a failed run leaves
the previous catalog untouched. Re-running with the same catalog yields the
same row counts. This is a maintenance operation: it must not run
concurrently with itself or with resolution traffic.

User-level rows (organization_roles, user_custom_permissions) are never
touched.
"""

import logging

from pydantic import BaseModel
from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from careaccess.models.permission import Permission
from careaccess.models.permission_implication import PermissionImplication
from careaccess.models.role import Role
from careaccess.models.role_permission import RolePermission
from careaccess.seeding.catalog import SeedCatalog
from careaccess.utils.cache import invalidate_effective_permissions

logger = logging.getLogger(__name__)


class SeedReport(BaseModel):
    catalog_version: str
    permissions: int = 0
    roles: int = 0
    implications: int = 0
    role_permissions: int = 0
    skipped: list[str] = []


class Seeder:
    def __init__(self, db: AsyncSession, catalog: SeedCatalog):
        self.db = db
        self.catalog = catalog

    async def _wipe(self, model) -> None:
        await self.db.execute(
            delete(model).execution_options(synchronize_session="fetch")
        )

    async def _bulk_insert(self, model, rows: list[dict]) -> int:
        if rows:
            await self.db.execute(insert(model), rows)
        return len(rows)

    # ── Steps ────────────────────────────────────────────────

    async def seed_permissions(self) -> int:
        await self._wipe(Permission)
        count = await self._bulk_insert(
            Permission,
            [
                {
                    "id": p.id,
                    "name": p.name,
                    "description": p.description,
                    "category": p.category,
                    "context_type": p.context_type,
                    "is_system": True,
                    "display_names": p.display_names,
                }
                for p in self.catalog.permissions
            ],
        )
        logger.info(f"Seeded {count} permissions")
        return count

    async def seed_roles(self) -> int:
        await self._wipe(Role)
        count = await self._bulk_insert(
            Role,
            [
                {
                    "id": r.id,
                    "name": r.name,
                    "description": r.description,
                    "context_type": r.context_type,
                    "hierarchy_level": r.hierarchy_level,
                    "is_system": True,
                    "is_custom": False,
                    "display_names": r.display_names,
                }
                for r in self.catalog.roles
            ],
        )
        logger.info(f"Seeded {count} roles")
        return count

    async def seed_implications(self) -> int:
        await self._wipe(PermissionImplication)
        edges = list(dict.fromkeys(self.catalog.implications))
        count = await self._bulk_insert(
            PermissionImplication,
            [
                {"parent_permission_id": parent, "child_permission_id": child}
                for parent, child in edges
            ],
        )
        logger.info(f"Seeded {count} permission implications")
        return count

    async def seed_role_permissions(self) -> tuple[int, list[str]]:
        await self._wipe(RolePermission)

        permission_ids = set((await self.db.execute(select(Permission.id))).scalars().all())
        role_ids = set((await self.db.execute(select(Role.id))).scalars().all())

        rows = []
        skipped = []
        for role_id, ids in self.catalog.expand_role_permissions().items():
            if role_id not in role_ids:
                logger.warning(f"Role {role_id} not found, skipping permissions")
                skipped.append(f"role:{role_id}")
                continue
            for permission_id in ids:
                if permission_id not in permission_ids:
                    logger.warning(
                        f"Permission {permission_id} not found, skipping for role {role_id}"
                    )
                    skipped.append(f"permission:{role_id}:{permission_id}")
                    continue
                rows.append({"role_id": role_id, "permission_id": permission_id})

        count = await self._bulk_insert(RolePermission, rows)
        logger.info(f"Seeded {count} role permissions ({len(skipped)} skipped)")
        return count, skipped

    # ── Pipeline ─────────────────────────────────────────────

    async def seed_all(self) -> SeedReport:
        logger.info(f"Seeding authorization catalog version {self.catalog.version}")
        report = SeedReport(catalog_version=self.catalog.version)
        report.permissions = await self.seed_permissions()
        report.roles = await self.seed_roles()
        report.implications = await self.seed_implications()
        report.role_permissions, report.skipped = await self.seed_role_permissions()
        await self.db.flush()

        await invalidate_effective_permissions()
        return report
