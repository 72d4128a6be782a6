"""Catalog seeding router.

    POST /api/authz/seed    Wipe and reseed permissions, roles, implications
                            and role permissions from the configured catalog

Requires `manage_system`, except on an empty database where the first seed
bootstraps the catalog without a token.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from careaccess.auth.deps import ensure_permissions, get_optional_actor_id
from careaccess.database import get_db
from careaccess.middleware.exceptions import PermissionDeniedError
from careaccess.models.permission import Permission
from careaccess.seeding.catalog import SeedCatalog
from careaccess.seeding.seeder import SeedReport, Seeder

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/seed", response_model=SeedReport)
async def seed_catalog(
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_optional_actor_id),
):
    """Reseed the authorization catalog (destructive, maintenance only)."""
    existing = (await db.execute(select(func.count()).select_from(Permission))).scalar() or 0
    if existing:
        if actor_id is None:
            raise PermissionDeniedError("Authentication required to reseed a populated catalog")
        await ensure_permissions(db, actor_id, ("manage_system",))
    else:
        logger.info("Empty catalog, bootstrap seed allowed")

    catalog = SeedCatalog.configured()
    catalog.validate_graph()
    report = await Seeder(db, catalog).seed_all()
    logger.info(
        f"Catalog seeded by {actor_id or 'bootstrap'}: {report.model_dump()}",
    )
    return report
