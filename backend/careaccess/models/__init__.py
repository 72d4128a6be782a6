"""Aggregate model imports for Alembic auto-detection."""

from careaccess.models.enums import ContextType  # noqa: F401

# Catalog
from careaccess.models.permission import Permission  # noqa: F401
from careaccess.models.role import Role  # noqa: F401
from careaccess.models.permission_implication import PermissionImplication  # noqa: F401
from careaccess.models.role_permission import RolePermission  # noqa: F401

# Assignments
from careaccess.models.organization_role import OrganizationRole  # noqa: F401
from careaccess.models.user_custom_permission import UserCustomPermission  # noqa: F401
