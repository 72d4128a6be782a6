"""PermissionImplication: directed edge parent → child.

Holding the parent permission grants the child. The edge set must stay
acyclic; services.implications rejects any edge that would close a cycle.
"""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from careaccess.database import Base


class PermissionImplication(Base):
    __tablename__ = "permission_implications"

    parent_permission_id: Mapped[str] = mapped_column(
        String(100), primary_key=True, index=True
    )
    child_permission_id: Mapped[str] = mapped_column(
        String(100), primary_key=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
