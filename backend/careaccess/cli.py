"""Management CLI for the authorization catalog.

Usage:
    python -m careaccess.cli seed [--catalog PATH]          # Wipe and reseed the catalog
    python -m careaccess.cli check-graph                    # Report cycles in stored implications
    python -m careaccess.cli resolve USER_ID [--org ORG] [--context SYSTEM|ORGANIZATION]
    python -m careaccess.cli validate-catalog [PATH]        # Check a catalog file offline
"""

import argparse
import asyncio
import logging
import sys

from pydantic import ValidationError

from careaccess.config import settings
from careaccess.database import async_session, engine
from careaccess.middleware.exceptions import CareAccessError
from careaccess.models.enums import ContextType
from careaccess.seeding.catalog import SeedCatalog
from careaccess.seeding.seeder import Seeder
from careaccess.services.implications import find_stored_cycle
from careaccess.services.resolver import resolve_effective_permissions

logger = logging.getLogger("careaccess.cli")


def _load_catalog(path: str | None) -> SeedCatalog:
    return SeedCatalog.from_file(path) if path else SeedCatalog.configured()


async def seed(catalog_path: str | None = None) -> int:
    catalog = _load_catalog(catalog_path)
    catalog.validate_graph()
    async with async_session() as db:
        report = await Seeder(db, catalog).seed_all()
        await db.commit()
    print(f"Seeded catalog {report.catalog_version}:")
    print(f"  permissions       {report.permissions}")
    print(f"  roles             {report.roles}")
    print(f"  implications      {report.implications}")
    print(f"  role permissions  {report.role_permissions}")
    if report.skipped:
        print(f"  skipped           {len(report.skipped)}")
        for entry in report.skipped:
            print(f"    {entry}")
    return 0


async def check_graph() -> int:
    async with async_session() as db:
        cycle = await find_stored_cycle(db)
    if cycle:
        print(f"Cycle found: {' -> '.join(cycle)}")
        return 1
    print("Implication graph is acyclic.")
    return 0


async def resolve(user_id: str, organization_id: str | None, context: str | None) -> int:
    context_type = ContextType(context) if context else None
    async with async_session() as db:
        permissions = await resolve_effective_permissions(
            db, user_id, context_type=context_type, organization_id=organization_id
        )
    for permission in permissions:
        print(f"  {permission.category:<14} {permission.id}")
    print(f"\n{len(permissions)} permission(s)")
    return 0


def validate_catalog(path: str | None) -> int:
    catalog = _load_catalog(path)
    catalog.validate_graph()
    problems = catalog.unknown_references()
    for problem in problems:
        print(f"  {problem}")
    print(
        f"Catalog {catalog.version}: {len(catalog.permissions)} permissions, "
        f"{len(catalog.roles)} roles, {len(catalog.implications)} implications, "
        f"{len(problems)} problem(s)"
    )
    return 1 if problems else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m careaccess.cli")
    sub = parser.add_subparsers(dest="command", required=True)

    p_seed = sub.add_parser("seed", help="wipe and reseed the authorization catalog")
    p_seed.add_argument("--catalog", help="catalog JSON file (default: configured catalog)")

    sub.add_parser("check-graph", help="report cycles in stored implication edges")

    p_resolve = sub.add_parser("resolve", help="print a user's effective permissions")
    p_resolve.add_argument("user_id")
    p_resolve.add_argument("--org", dest="organization_id")
    p_resolve.add_argument("--context", choices=[c.value for c in ContextType])

    p_validate = sub.add_parser("validate-catalog", help="validate a catalog file")
    p_validate.add_argument("path", nargs="?")
    return parser


async def _run_async(coro) -> int:
    try:
        return await coro
    finally:
        await engine.dispose()


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=settings.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")
    args = build_parser().parse_args(argv)

    try:
        if args.command == "seed":
            return asyncio.run(_run_async(seed(args.catalog)))
        if args.command == "check-graph":
            return asyncio.run(_run_async(check_graph()))
        if args.command == "resolve":
            return asyncio.run(
                _run_async(resolve(args.user_id, args.organization_id, args.context))
            )
        if args.command == "validate-catalog":
            return validate_catalog(args.path)
    except CareAccessError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except (ValidationError, ValueError, OSError) as e:
        print(f"Invalid catalog: {e}", file=sys.stderr)
        return 1
    return 2


if __name__ == "__main__":
    sys.exit(main())
