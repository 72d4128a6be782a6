from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from careaccess.database import Base


class RolePermission(Base):
    """A permission granted directly to a role. The pair is the key."""

    __tablename__ = "role_permissions"

    role_id: Mapped[str] = mapped_column(String(100), primary_key=True, index=True)
    permission_id: Mapped[str] = mapped_column(
        String(100), primary_key=True, index=True
    )
