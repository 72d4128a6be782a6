"""Tests for effective permission resolution."""

from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from careaccess.models import OrganizationRole, UserCustomPermission
from careaccess.models.enums import ContextType
from careaccess.services import resolver
from careaccess.services.assignments import assign_role
from careaccess.services.grants import grant_custom_permission
from careaccess.services.implications import create_implication
from conftest import add_permissions, add_role

ORG_A = "org-a"
ORG_B = "org-b"
USER = "user-1"


@pytest_asyncio.fixture
async def schedule_catalog(db_session):
    """edit_schedules -> view_schedules, and two roles over them."""
    await add_permissions(
        db_session, "edit_schedules", "view_schedules", "view_residents", "approve_leave",
    )
    await create_implication(db_session, "edit_schedules", "view_schedules")
    await add_role(db_session, "scheduler", "edit_schedules")
    await add_role(db_session, "reception", "view_residents")


@pytest.mark.asyncio
class TestResolveEffectivePermissions:
    """Role grants and custom grants, expanded through implications."""

    async def test_unknown_user_resolves_to_empty(self, db_session, schedule_catalog):
        assert await resolver.resolve_effective_permission_ids(db_session, "nobody") == set()
        assert await resolver.resolve_effective_permissions(db_session, "nobody") == []

    async def test_role_permissions_are_expanded(self, db_session, schedule_catalog):
        await assign_role(db_session, USER, "scheduler", ORG_A, assigned_by_id=None)

        ids = await resolver.resolve_effective_permission_ids(db_session, USER)

        assert ids == {"edit_schedules", "view_schedules"}

    async def test_custom_grant_adds_permission(self, db_session, schedule_catalog):
        await assign_role(db_session, USER, "reception", ORG_A, assigned_by_id=None)
        await grant_custom_permission(
            db_session, USER, "edit_schedules", ContextType.ORGANIZATION, ORG_A,
            granted_by_id="admin",
        )

        permissions = await resolver.resolve_effective_permissions(
            db_session, USER, context_type=ContextType.ORGANIZATION, organization_id=ORG_A
        )

        assert [p.id for p in permissions] == [
            "edit_schedules", "view_residents", "view_schedules",
        ]

    async def test_implied_and_granted_permission_appears_once(self, db_session, schedule_catalog):
        await add_role(db_session, "manager", "view_schedules")
        await assign_role(db_session, USER, "manager", ORG_A, assigned_by_id=None)
        await grant_custom_permission(
            db_session, USER, "edit_schedules", ContextType.ORGANIZATION, ORG_A,
            granted_by_id="admin",
        )

        permissions = await resolver.resolve_effective_permissions(db_session, USER)

        assert [p.id for p in permissions] == ["edit_schedules", "view_schedules"]

    async def test_expired_grant_is_ignored(self, db_session, schedule_catalog):
        await grant_custom_permission(
            db_session, USER, "approve_leave", ContextType.ORGANIZATION, ORG_A,
            granted_by_id="admin",
            expires_at=datetime.utcnow() - timedelta(hours=1),
        )

        assert await resolver.resolve_effective_permission_ids(db_session, USER) == set()

    async def test_future_expiry_is_honoured(self, db_session, schedule_catalog):
        await grant_custom_permission(
            db_session, USER, "approve_leave", ContextType.ORGANIZATION, ORG_A,
            granted_by_id="admin",
            expires_at=datetime.utcnow() + timedelta(days=1),
        )

        assert await resolver.resolve_effective_permission_ids(db_session, USER) == {
            "approve_leave"
        }

    async def test_organization_filter(self, db_session, schedule_catalog):
        await assign_role(db_session, USER, "scheduler", ORG_A, assigned_by_id=None)
        await assign_role(db_session, USER, "reception", ORG_B, assigned_by_id=None)

        in_a = await resolver.resolve_effective_permission_ids(
            db_session, USER, organization_id=ORG_A
        )
        in_b = await resolver.resolve_effective_permission_ids(
            db_session, USER, organization_id=ORG_B
        )
        everywhere = await resolver.resolve_effective_permission_ids(db_session, USER)

        assert in_a == {"edit_schedules", "view_schedules"}
        assert in_b == {"view_residents"}
        assert everywhere == in_a | in_b

    async def test_custom_grant_scoped_to_its_organization(self, db_session, schedule_catalog):
        await grant_custom_permission(
            db_session, USER, "approve_leave", ContextType.ORGANIZATION, ORG_A,
            granted_by_id="admin",
        )

        in_b = await resolver.resolve_effective_permission_ids(
            db_session, USER, context_type=ContextType.ORGANIZATION, organization_id=ORG_B
        )
        system = await resolver.resolve_effective_permission_ids(
            db_session, USER, context_type=ContextType.SYSTEM
        )

        assert in_b == set()
        assert system == set()

    async def test_inactive_assignment_is_ignored(self, db_session, schedule_catalog):
        assignment = await assign_role(db_session, USER, "scheduler", ORG_A, assigned_by_id=None)
        assignment.is_active = False
        await db_session.flush()

        assert await resolver.resolve_effective_permission_ids(db_session, USER) == set()
        assert not await resolver.has_organization_access(db_session, USER, ORG_A)

    async def test_active_window_only_when_enforced(self, db_session, schedule_catalog):
        await assign_role(
            db_session, USER, "scheduler", ORG_A, assigned_by_id=None,
            active_from=datetime.utcnow() + timedelta(days=7),
        )

        advisory = await resolver.resolve_effective_permission_ids(
            db_session, USER, enforce_active_window=False
        )
        enforced = await resolver.resolve_effective_permission_ids(
            db_session, USER, enforce_active_window=True
        )

        assert advisory == {"edit_schedules", "view_schedules"}
        assert enforced == set()

    async def test_ids_without_permission_rows_are_dropped(self, db_session, schedule_catalog):
        db_session.add(
            UserCustomPermission(
                user_id=USER,
                permission_id="retired_permission",
                context_type=ContextType.SYSTEM,
                granted_by_id="admin",
            )
        )
        await db_session.flush()

        ids = await resolver.resolve_effective_permission_ids(db_session, USER)
        permissions = await resolver.resolve_effective_permissions(db_session, USER)

        assert ids == {"retired_permission"}
        assert permissions == []


@pytest.mark.asyncio
class TestChecks:
    async def test_has_permission_through_implication(self, db_session, schedule_catalog):
        await assign_role(db_session, USER, "scheduler", ORG_A, assigned_by_id=None)

        assert await resolver.has_permission(
            db_session, USER, "view_schedules", organization_id=ORG_A
        )
        assert not await resolver.has_permission(
            db_session, USER, "view_residents", organization_id=ORG_A
        )

    async def test_has_organization_access(self, db_session, schedule_catalog):
        db_session.add(
            OrganizationRole(user_id=USER, role_id="reception", organization_id=ORG_A)
        )
        await db_session.flush()

        assert await resolver.has_organization_access(db_session, USER, ORG_A)
        assert not await resolver.has_organization_access(db_session, USER, ORG_B)


@pytest.mark.asyncio
class TestSeededCatalog:
    """Resolution over the packaged care-home catalog."""

    async def test_system_admin_reaches_implied_permissions(self, db_session, seeded):
        await assign_role(db_session, USER, "system_admin", "platform", assigned_by_id=None)

        ids = await resolver.resolve_effective_permission_ids(
            db_session, USER, context_type=ContextType.SYSTEM
        )

        assert {"manage_system", "manage_roles", "view_all_organizations"} <= ids

    async def test_owner_gets_organization_permissions_only(self, db_session, seeded):
        await assign_role(db_session, USER, "owner", ORG_A, assigned_by_id=None)

        ids = await resolver.resolve_effective_permission_ids(
            db_session, USER, organization_id=ORG_A
        )

        assert "view_residents" in ids
        assert "manage_system" not in ids

    async def test_carer_cannot_edit_schedules(self, db_session, seeded):
        await assign_role(db_session, USER, "carer", ORG_A, assigned_by_id=None)

        assert await resolver.has_permission(
            db_session, USER, "view_schedules", organization_id=ORG_A
        )
        assert not await resolver.has_permission(
            db_session, USER, "edit_schedules", organization_id=ORG_A
        )
