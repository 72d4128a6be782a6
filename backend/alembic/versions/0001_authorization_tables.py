"""Authorization tables: catalog, implications, assignments, grants.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-18

Run with:
    alembic upgrade head
    python -m careaccess.cli seed
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Shared by three tables; created once in upgrade()
context_type = postgresql.ENUM("SYSTEM", "ORGANIZATION", name="contexttype", create_type=False)


def upgrade() -> None:
    context_type.create(op.get_bind(), checkfirst=True)

    # ── Catalog ──────────────────────────────────────────────

    op.create_table(
        "permissions",
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("context_type", context_type),
        sa.Column("is_system", sa.Boolean(), server_default=sa.true()),
        sa.Column("display_names", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_permissions_category", "permissions", ["category"])
    op.create_index("ix_permissions_context_type", "permissions", ["context_type"])

    op.create_table(
        "roles",
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("context_type", context_type),
        sa.Column("is_system", sa.Boolean(), server_default=sa.true()),
        sa.Column("is_custom", sa.Boolean(), server_default=sa.false()),
        sa.Column("hierarchy_level", sa.Integer(), nullable=False),
        sa.Column("base_role_id", sa.String(100), nullable=True),
        sa.Column("display_names", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_roles_context_type", "roles", ["context_type"])
    op.create_index("ix_roles_hierarchy_level", "roles", ["hierarchy_level"])
    op.create_index("ix_roles_base_role_id", "roles", ["base_role_id"])

    op.create_table(
        "permission_implications",
        sa.Column("parent_permission_id", sa.String(100), primary_key=True),
        sa.Column("child_permission_id", sa.String(100), primary_key=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_permission_implications_parent_permission_id",
        "permission_implications", ["parent_permission_id"],
    )
    op.create_index(
        "ix_permission_implications_child_permission_id",
        "permission_implications", ["child_permission_id"],
    )

    op.create_table(
        "role_permissions",
        sa.Column("role_id", sa.String(100), primary_key=True),
        sa.Column("permission_id", sa.String(100), primary_key=True),
    )
    op.create_index("ix_role_permissions_role_id", "role_permissions", ["role_id"])
    op.create_index("ix_role_permissions_permission_id", "role_permissions", ["permission_id"])

    # ── User assignments ─────────────────────────────────────

    op.create_table(
        "organization_roles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("role_id", sa.String(100), nullable=False),
        sa.Column("organization_id", sa.String(36), nullable=False),
        sa.Column("is_primary", sa.Boolean(), server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("active_from", sa.DateTime(), nullable=True),
        sa.Column("active_to", sa.DateTime(), nullable=True),
        sa.Column("assigned_by_id", sa.String(36), nullable=True),
        sa.Column("assigned_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "user_id", "role_id", "organization_id",
            name="uq_organization_roles_assignment",
        ),
    )
    op.create_index("ix_organization_roles_user_id", "organization_roles", ["user_id"])
    op.create_index("ix_organization_roles_role_id", "organization_roles", ["role_id"])
    op.create_index(
        "ix_organization_roles_organization_id", "organization_roles", ["organization_id"]
    )
    op.create_index("ix_organization_roles_is_active", "organization_roles", ["is_active"])
    # At most one primary role per (user, organization)
    op.create_index(
        "uq_organization_roles_one_primary",
        "organization_roles",
        ["user_id", "organization_id"],
        unique=True,
        postgresql_where=sa.text("is_primary"),
    )

    op.create_table(
        "user_custom_permissions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("permission_id", sa.String(100), nullable=False),
        sa.Column("context_type", context_type, nullable=False),
        sa.Column("context_id", sa.String(36), nullable=True),
        sa.Column("granted_by_id", sa.String(36), nullable=False),
        sa.Column("granted_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint(
            "user_id", "permission_id", "context_type", "context_id",
            name="uq_user_custom_permissions_grant",
        ),
    )
    op.create_index(
        "ix_user_custom_permissions_user_id", "user_custom_permissions", ["user_id"]
    )
    op.create_index(
        "ix_user_custom_permissions_permission_id", "user_custom_permissions", ["permission_id"]
    )
    op.create_index(
        "ix_user_custom_permissions_context_id", "user_custom_permissions", ["context_id"]
    )
    # context_id is NULL for SYSTEM grants and NULLs never collide above
    op.create_index(
        "uq_user_custom_permissions_system_grant",
        "user_custom_permissions",
        ["user_id", "permission_id"],
        unique=True,
        postgresql_where=sa.text("context_id IS NULL"),
    )


def downgrade() -> None:
    op.drop_table("user_custom_permissions")
    op.drop_table("organization_roles")
    op.drop_table("role_permissions")
    op.drop_table("permission_implications")
    op.drop_table("roles")
    op.drop_table("permissions")
    context_type.drop(op.get_bind(), checkfirst=True)
