"""Tests for organization role assignment and primary-role exclusivity."""

from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from careaccess.middleware.exceptions import BadRequestError, ConflictError, NotFoundError
from careaccess.models import OrganizationRole
from careaccess.services import assignments
from conftest import add_role

ORG = "org-a"
USER = "user-1"


@pytest_asyncio.fixture
async def roles(db_session):
    await add_role(db_session, "nurse", hierarchy_level=3)
    await add_role(db_session, "carer", hierarchy_level=5)
    await add_role(db_session, "manager", hierarchy_level=3)


def racing_clear(monkeypatch, races):
    """Re-promote the carer row right after every clear, for the first `races` clears."""
    real_clear = assignments._clear_primary
    calls = []

    async def clear(db, user_id, organization_id):
        calls.append(organization_id)
        await real_clear(db, user_id, organization_id)
        if len(calls) <= races:
            await db.execute(
                update(OrganizationRole)
                .where(
                    OrganizationRole.user_id == user_id,
                    OrganizationRole.organization_id == organization_id,
                    OrganizationRole.role_id == "carer",
                )
                .values(is_primary=True)
                .execution_options(synchronize_session="fetch")
            )

    monkeypatch.setattr(assignments, "_clear_primary", clear)
    return calls


async def count_primaries(db, user_id, organization_id):
    return (
        await db.execute(
            select(func.count()).select_from(OrganizationRole).where(
                OrganizationRole.user_id == user_id,
                OrganizationRole.organization_id == organization_id,
                OrganizationRole.is_primary == True,  # noqa: E712
            )
        )
    ).scalar_one()


@pytest.mark.asyncio
class TestAssignRole:
    async def test_assign(self, db_session, roles):
        assignment = await assignments.assign_role(
            db_session, USER, "nurse", ORG, assigned_by_id="admin"
        )

        assert assignment.id
        assert assignment.is_active is True
        assert assignment.is_primary is False
        assert assignment.assigned_by_id == "admin"

    async def test_unknown_role(self, db_session, roles):
        with pytest.raises(NotFoundError):
            await assignments.assign_role(db_session, USER, "ghost", ORG, assigned_by_id=None)

    async def test_duplicate_assignment(self, db_session, roles):
        await assignments.assign_role(db_session, USER, "nurse", ORG, assigned_by_id=None)

        with pytest.raises(ConflictError):
            await assignments.assign_role(db_session, USER, "nurse", ORG, assigned_by_id=None)

    async def test_same_role_in_another_organization(self, db_session, roles):
        await assignments.assign_role(db_session, USER, "nurse", ORG, assigned_by_id=None)
        await assignments.assign_role(db_session, USER, "nurse", "org-b", assigned_by_id=None)

        assert len(await assignments.list_user_roles(db_session, USER)) == 2

    async def test_invalid_window(self, db_session, roles):
        now = datetime.utcnow()
        with pytest.raises(BadRequestError):
            await assignments.assign_role(
                db_session, USER, "nurse", ORG, assigned_by_id=None,
                active_from=now, active_to=now - timedelta(days=1),
            )


@pytest.mark.asyncio
class TestPrimaryRole:
    """At most one primary role per user and organization."""

    async def test_new_primary_demotes_previous(self, db_session, roles):
        first = await assignments.assign_role(
            db_session, USER, "carer", ORG, assigned_by_id=None, is_primary=True
        )
        second = await assignments.assign_role(
            db_session, USER, "nurse", ORG, assigned_by_id=None, is_primary=True
        )

        await db_session.refresh(first)
        assert first.is_primary is False
        assert second.is_primary is True
        primary = await assignments.get_primary_role(db_session, USER, ORG)
        assert primary.role_id == "nurse"

    async def test_non_primary_keeps_existing_primary(self, db_session, roles):
        await assignments.assign_role(
            db_session, USER, "carer", ORG, assigned_by_id=None, is_primary=True
        )
        await assignments.assign_role(db_session, USER, "nurse", ORG, assigned_by_id=None)

        primary = await assignments.get_primary_role(db_session, USER, ORG)
        assert primary.role_id == "carer"

    async def test_primaries_in_different_organizations(self, db_session, roles):
        await assignments.assign_role(
            db_session, USER, "carer", ORG, assigned_by_id=None, is_primary=True
        )
        await assignments.assign_role(
            db_session, USER, "manager", "org-b", assigned_by_id=None, is_primary=True
        )

        assert (await assignments.get_primary_role(db_session, USER, ORG)).role_id == "carer"
        assert (await assignments.get_primary_role(db_session, USER, "org-b")).role_id == "manager"

    async def test_database_rejects_second_primary(self, db_session, roles):
        db_session.add(OrganizationRole(
            user_id=USER, role_id="carer", organization_id=ORG, is_primary=True,
        ))
        await db_session.flush()

        with pytest.raises(IntegrityError):
            async with db_session.begin_nested():
                db_session.add(OrganizationRole(
                    user_id=USER, role_id="nurse", organization_id=ORG, is_primary=True,
                ))
                await db_session.flush()

    async def test_primary_race_is_retried(self, db_session, roles, monkeypatch):
        await assignments.assign_role(
            db_session, USER, "carer", ORG, assigned_by_id=None, is_primary=True
        )
        calls = racing_clear(monkeypatch, races=1)

        assignment = await assignments.assign_role(
            db_session, USER, "nurse", ORG, assigned_by_id=None, is_primary=True
        )

        assert len(calls) == 2
        assert assignment.is_primary is True
        assert await count_primaries(db_session, USER, ORG) == 1
        assert (await assignments.get_primary_role(db_session, USER, ORG)).role_id == "nurse"

    async def test_repeated_primary_race_conflicts(self, db_session, roles, monkeypatch):
        await assignments.assign_role(
            db_session, USER, "carer", ORG, assigned_by_id=None, is_primary=True
        )
        calls = racing_clear(monkeypatch, races=2)

        with pytest.raises(ConflictError):
            await assignments.assign_role(
                db_session, USER, "nurse", ORG, assigned_by_id=None, is_primary=True
            )

        assert len(calls) == assignments.PRIMARY_RETRIES + 1
        assert await count_primaries(db_session, USER, ORG) == 1
        assert (await assignments.get_primary_role(db_session, USER, ORG)).role_id == "carer"
        roles_held = await assignments.list_user_roles(db_session, USER, ORG)
        assert [a.role_id for a in roles_held] == ["carer"]

    async def test_no_primary(self, db_session, roles):
        await assignments.assign_role(db_session, USER, "nurse", ORG, assigned_by_id=None)

        assert await assignments.get_primary_role(db_session, USER, ORG) is None


@pytest.mark.asyncio
class TestRemoveAndList:
    async def test_remove(self, db_session, roles):
        await assignments.assign_role(db_session, USER, "nurse", ORG, assigned_by_id=None)

        await assignments.remove_role(db_session, USER, "nurse", ORG)

        assert await assignments.list_user_roles(db_session, USER) == []

    async def test_remove_missing(self, db_session, roles):
        with pytest.raises(NotFoundError):
            await assignments.remove_role(db_session, USER, "nurse", ORG)

    async def test_list_primary_first(self, db_session, roles):
        await assignments.assign_role(db_session, USER, "carer", ORG, assigned_by_id=None)
        await assignments.assign_role(
            db_session, USER, "nurse", ORG, assigned_by_id=None, is_primary=True
        )
        await assignments.assign_role(db_session, USER, "manager", "org-b", assigned_by_id=None)

        rows = await assignments.list_user_roles(db_session, USER, ORG)

        assert [r.role_id for r in rows] == ["nurse", "carer"]

    async def test_list_role_members(self, db_session, roles):
        await assignments.assign_role(db_session, "user-1", "nurse", ORG, assigned_by_id=None)
        await assignments.assign_role(db_session, "user-2", "nurse", "org-b", assigned_by_id=None)

        everywhere = await assignments.list_role_members(db_session, "nurse")
        in_org = await assignments.list_role_members(db_session, "nurse", ORG)

        assert {m.user_id for m in everywhere} == {"user-1", "user-2"}
        assert [m.user_id for m in in_org] == ["user-1"]
