"""UserCustomPermission: a direct grant that bypasses roles.

context_type SYSTEM grants apply system-wide (context_id is NULL);
ORGANIZATION grants are scoped to context_id. NULLs are distinct in a
unique constraint, so SYSTEM grants get their own partial unique index.

Expired rows (expires_at in the past) are kept and filtered at read time.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum as SAEnum, Index, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from careaccess.database import Base
from careaccess.models.enums import ContextType


class UserCustomPermission(Base):
    __tablename__ = "user_custom_permissions"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "permission_id", "context_type", "context_id",
            name="uq_user_custom_permissions_grant",
        ),
        Index(
            "uq_user_custom_permissions_system_grant",
            "user_id",
            "permission_id",
            unique=True,
            postgresql_where=text("context_id IS NULL"),
            sqlite_where=text("context_id IS NULL"),
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    permission_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    context_type: Mapped[ContextType] = mapped_column(SAEnum(ContextType), nullable=False)
    context_id: Mapped[str | None] = mapped_column(String(36), index=True)

    granted_by_id: Mapped[str] = mapped_column(String(36), nullable=False)
    granted_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime)

    def is_valid(self, at: datetime) -> bool:
        return self.expires_at is None or self.expires_at > at
