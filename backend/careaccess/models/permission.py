"""Permission: an atomic capability identifier (e.g. `view_schedules`).

Rows are created by seeding or admin CRUD. Deletion is refused while any
RolePermission, UserCustomPermission or PermissionImplication row still
references the id (checked in services.admin, not by the database).
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from careaccess.database import Base
from careaccess.models.enums import ContextType


class Permission(Base):
    __tablename__ = "permissions"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    context_type: Mapped[ContextType] = mapped_column(
        SAEnum(ContextType), default=ContextType.ORGANIZATION, index=True
    )
    # Protects seeded rows from admin deletion
    is_system: Mapped[bool] = mapped_column(Boolean, default=True)

    # Optional per-organization-category labels: {"care_home": "View residents"}
    display_names: Mapped[dict | None] = mapped_column(JSON, default=None)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def display_name_for(self, organization_category: str | None) -> str:
        if organization_category and self.display_names:
            return self.display_names.get(organization_category, self.name)
        return self.name
