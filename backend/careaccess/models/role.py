"""Role: a named bundle of directly-granted permissions.

hierarchy_level: lower = more authority.
  0  system administrator
  1  organization owner
  2+ progressively less privileged

base_role_id is a back-reference to the role this one was cloned from.
Cloning copies the base role's permissions once (snapshot); later changes
to the base role do not propagate.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from careaccess.database import Base
from careaccess.models.enums import ContextType


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    context_type: Mapped[ContextType] = mapped_column(
        SAEnum(ContextType), default=ContextType.ORGANIZATION, index=True
    )
    is_system: Mapped[bool] = mapped_column(Boolean, default=True)
    is_custom: Mapped[bool] = mapped_column(Boolean, default=False)
    hierarchy_level: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    base_role_id: Mapped[str | None] = mapped_column(String(100), index=True)

    display_names: Mapped[dict | None] = mapped_column(JSON, default=None)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
