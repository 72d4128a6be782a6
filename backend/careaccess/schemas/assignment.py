"""Pydantic schemas for organization role assignments and custom grants."""

from datetime import datetime

from pydantic import BaseModel, field_validator, model_validator

from careaccess.models.enums import ContextType
from careaccess.schemas.validators import to_naive_utc


# ── Organization roles ───────────────────────────────────────

class OrganizationRoleAssign(BaseModel):
    role_id: str
    organization_id: str
    is_primary: bool = False
    active_from: datetime | None = None
    active_to: datetime | None = None

    @field_validator("active_from", "active_to")
    @classmethod
    def normalise_window(cls, v: datetime | None) -> datetime | None:
        return to_naive_utc(v)


class OrganizationRoleOut(BaseModel):
    id: str
    user_id: str
    role_id: str
    organization_id: str
    is_primary: bool
    is_active: bool
    active_from: datetime | None = None
    active_to: datetime | None = None
    assigned_by_id: str | None = None
    assigned_at: datetime | None = None

    model_config = {"from_attributes": True}


# ── Custom permission grants ─────────────────────────────────

class CustomPermissionGrant(BaseModel):
    permission_id: str
    context_type: ContextType
    context_id: str | None = None
    expires_at: datetime | None = None

    @field_validator("expires_at")
    @classmethod
    def normalise_expiry(cls, v: datetime | None) -> datetime | None:
        return to_naive_utc(v)

    @model_validator(mode="after")
    def check_context(self):
        if self.context_type == ContextType.ORGANIZATION and not self.context_id:
            raise ValueError("context_id is required for ORGANIZATION grants")
        return self


class CustomPermissionOut(BaseModel):
    id: str
    user_id: str
    permission_id: str
    context_type: ContextType
    context_id: str | None = None
    granted_by_id: str
    granted_at: datetime | None = None
    expires_at: datetime | None = None

    model_config = {"from_attributes": True}


# ── Resolution ───────────────────────────────────────────────

class EffectivePermissionsOut(BaseModel):
    user_id: str
    organization_id: str | None = None
    context_type: ContextType | None = None
    permissions: list[str]
    total: int
