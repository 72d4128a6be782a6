"""Seed catalog: the versioned permission/role/implication data set.

A catalog is plain JSON:

    {
        "version": "2024.1",
        "permissions": [{"id": "view_staff", "category": "staff", ...}],
        "roles": [{"id": "nurse", "hierarchy_level": 3, ...}],
        "implications": [["edit_schedules", "view_schedules"], ...],
        "role_permissions": {"nurse": ["view_staff", ...], "owner": ["*"]}
    }

`name` defaults to the id with underscores as spaces. The wildcard "*"
in role_permissions stands for every catalog permission sharing the
role's context type.
"""

import json
import logging
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

from careaccess.config import settings
from careaccess.middleware.exceptions import CircularDependencyError
from careaccess.models.enums import ContextType
from careaccess.schemas.validators import validate_display_names, validate_identifier
from careaccess.services import graph

logger = logging.getLogger(__name__)

WILDCARD = "*"

DEFAULT_CATALOG_PATH = Path(__file__).parent / "catalogs" / "default.json"


def _humanize(identifier: str) -> str:
    return identifier.replace("_", " ").capitalize()


class CatalogPermission(BaseModel):
    id: str
    name: str = ""
    description: str = ""
    category: str
    context_type: ContextType = ContextType.ORGANIZATION
    display_names: dict[str, str] | None = None

    @field_validator("id")
    @classmethod
    def check_id(cls, v: str) -> str:
        return validate_identifier(v)

    @field_validator("display_names")
    @classmethod
    def check_display_names(cls, v: dict | None) -> dict | None:
        return validate_display_names(v)

    @model_validator(mode="after")
    def default_name(self):
        if not self.name:
            self.name = _humanize(self.id)
        return self


class CatalogRole(BaseModel):
    id: str
    name: str = ""
    description: str = ""
    context_type: ContextType = ContextType.ORGANIZATION
    hierarchy_level: int = Field(..., ge=0)
    display_names: dict[str, str] | None = None

    @field_validator("id")
    @classmethod
    def check_id(cls, v: str) -> str:
        return validate_identifier(v)

    @model_validator(mode="after")
    def default_name(self):
        if not self.name:
            self.name = _humanize(self.id)
        return self


class SeedCatalog(BaseModel):
    version: str
    permissions: list[CatalogPermission]
    roles: list[CatalogRole]
    implications: list[tuple[str, str]] = []
    role_permissions: dict[str, list[str]] = {}

    @model_validator(mode="after")
    def check_unique_ids(self):
        for label, items in (("permission", self.permissions), ("role", self.roles)):
            seen = set()
            for item in items:
                if item.id in seen:
                    raise ValueError(f"Duplicate {label} id in catalog: {item.id}")
                seen.add(item.id)
        return self

    # ── Loading ──────────────────────────────────────────────

    @classmethod
    def from_file(cls, path: str | Path) -> "SeedCatalog":
        with open(path, encoding="utf-8") as f:
            return cls.model_validate(json.load(f))

    @classmethod
    def default(cls) -> "SeedCatalog":
        """The packaged care-home catalog."""
        return cls.from_file(DEFAULT_CATALOG_PATH)

    @classmethod
    def configured(cls) -> "SeedCatalog":
        """`settings.seed_catalog_path` if set, else the packaged default."""
        if settings.seed_catalog_path:
            logger.info(f"Loading seed catalog from {settings.seed_catalog_path}")
            return cls.from_file(settings.seed_catalog_path)
        return cls.default()

    # ── Derived data ─────────────────────────────────────────

    def expand_role_permissions(self) -> dict[str, list[str]]:
        """Role id → permission ids, with the wildcard expanded.

        Unknown ids are passed through; the seeder skips them with a warning.
        """
        role_contexts = {r.id: r.context_type for r in self.roles}
        expanded: dict[str, list[str]] = {}
        for role_id, permission_ids in self.role_permissions.items():
            ids: list[str] = []
            for permission_id in permission_ids:
                if permission_id == WILDCARD:
                    context = role_contexts.get(role_id)
                    ids.extend(
                        p.id for p in self.permissions if p.context_type == context
                    )
                else:
                    ids.append(permission_id)
            # Preserve order, drop repeats
            expanded[role_id] = list(dict.fromkeys(ids))
        return expanded

    def validate_graph(self) -> None:
        """Raise CircularDependencyError if the implication list has a cycle."""
        cycle = graph.find_cycle(graph.build_adjacency(self.implications))
        if cycle:
            raise CircularDependencyError(cycle[-2], cycle[-1], path=cycle)

    def unknown_references(self) -> list[str]:
        """Human-readable list of ids referenced but not defined."""
        permission_ids = {p.id for p in self.permissions}
        role_ids = {r.id for r in self.roles}
        problems = []
        for parent, child in self.implications:
            for permission_id in (parent, child):
                if permission_id not in permission_ids:
                    problems.append(f"implication {parent} -> {child}: unknown permission {permission_id}")
        for role_id, ids in self.role_permissions.items():
            if role_id not in role_ids:
                problems.append(f"role_permissions: unknown role {role_id}")
            for permission_id in ids:
                if permission_id != WILDCARD and permission_id not in permission_ids:
                    problems.append(f"role {role_id}: unknown permission {permission_id}")
        return problems
