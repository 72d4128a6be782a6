"""Pydantic schemas for Role CRUD, cloning and role-permission mapping."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from careaccess.models.enums import ContextType
from careaccess.schemas.validators import (
    reject_null,
    validate_display_names,
    validate_identifier,
)


class RoleCreate(BaseModel):
    id: str = Field(..., max_length=100)
    name: str = Field(..., max_length=200)
    description: str = ""
    context_type: ContextType = ContextType.ORGANIZATION
    hierarchy_level: int = Field(..., ge=0)
    is_system: bool = False
    is_custom: bool = True
    # Clone source: the base role's permissions are copied once on create
    base_role_id: str | None = None
    display_names: dict[str, str] | None = None

    @field_validator("id")
    @classmethod
    def check_id(cls, v: str) -> str:
        return validate_identifier(v)

    @field_validator("display_names")
    @classmethod
    def check_display_names(cls, v: dict | None) -> dict | None:
        return validate_display_names(v)


class RoleUpdate(BaseModel):
    name: str | None = Field(None, max_length=200)
    description: str | None = None
    context_type: ContextType | None = None
    hierarchy_level: int | None = Field(None, ge=0)
    is_custom: bool | None = None
    base_role_id: str | None = None
    display_names: dict[str, str] | None = None

    # Only base_role_id may be cleared explicitly
    @field_validator("name", "description", "context_type", "hierarchy_level", "is_custom")
    @classmethod
    def check_not_null(cls, v):
        return reject_null(v)

    @field_validator("display_names")
    @classmethod
    def check_display_names(cls, v: dict | None) -> dict | None:
        return validate_display_names(v)


class RoleOut(BaseModel):
    id: str
    name: str
    description: str
    context_type: ContextType
    hierarchy_level: int
    is_system: bool
    is_custom: bool
    base_role_id: str | None = None
    display_names: dict[str, str] | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


# ── Role permissions ─────────────────────────────────────────

class RolePermissionsAssign(BaseModel):
    permission_ids: list[str] = Field(..., min_length=1)


class RolePermissionsAssignResult(BaseModel):
    role_id: str
    added: list[str]
    already_assigned: list[str]
