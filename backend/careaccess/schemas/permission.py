"""Pydantic schemas for Permission CRUD and implication edges."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from careaccess.models.enums import ContextType
from careaccess.schemas.validators import (
    reject_null,
    validate_display_names,
    validate_identifier,
)


class PermissionCreate(BaseModel):
    id: str = Field(..., max_length=100)
    name: str = Field(..., max_length=200)
    description: str = ""
    category: str = Field(..., max_length=100)
    context_type: ContextType = ContextType.ORGANIZATION
    is_system: bool = False
    display_names: dict[str, str] | None = None

    @field_validator("id")
    @classmethod
    def check_id(cls, v: str) -> str:
        return validate_identifier(v)

    @field_validator("display_names")
    @classmethod
    def check_display_names(cls, v: dict | None) -> dict | None:
        return validate_display_names(v)


class PermissionUpdate(BaseModel):
    name: str | None = Field(None, max_length=200)
    description: str | None = None
    category: str | None = Field(None, max_length=100)
    context_type: ContextType | None = None
    display_names: dict[str, str] | None = None

    @field_validator("name", "description", "category", "context_type")
    @classmethod
    def check_not_null(cls, v):
        return reject_null(v)

    @field_validator("display_names")
    @classmethod
    def check_display_names(cls, v: dict | None) -> dict | None:
        return validate_display_names(v)


class PermissionOut(BaseModel):
    id: str
    name: str
    description: str
    category: str
    context_type: ContextType
    is_system: bool
    display_names: dict[str, str] | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


# ── Implication edges ────────────────────────────────────────

class ImplicationCreate(BaseModel):
    parent_permission_id: str
    child_permission_id: str


class ImplicationOut(BaseModel):
    parent_permission_id: str
    child_permission_id: str
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
