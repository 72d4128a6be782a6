"""OrganizationRole: a role assigned to a user within one organization.

Invariants (enforced by constraints below and services.assignments):
  - (user_id, role_id, organization_id) is unique
  - at most one row per (user_id, organization_id) has is_primary = true

active_from / active_to are advisory: rows are never auto-expired. The
resolver only honours the window when asked to.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from careaccess.database import Base


class OrganizationRole(Base):
    __tablename__ = "organization_roles"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "role_id", "organization_id", name="uq_organization_roles_assignment"
        ),
        Index(
            "uq_organization_roles_one_primary",
            "user_id",
            "organization_id",
            unique=True,
            postgresql_where=text("is_primary"),
            sqlite_where=text("is_primary"),
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    role_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    # ── Optional active window ────────────────────────────────
    active_from: Mapped[datetime | None] = mapped_column(DateTime)
    active_to: Mapped[datetime | None] = mapped_column(DateTime)

    # ── Audit ─────────────────────────────────────────────────
    assigned_by_id: Mapped[str | None] = mapped_column(String(36))
    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def is_within_window(self, at: datetime) -> bool:
        if self.active_from is not None and self.active_from > at:
            return False
        if self.active_to is not None and self.active_to <= at:
            return False
        return True
