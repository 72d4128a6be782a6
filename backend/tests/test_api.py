"""End-to-end tests for the HTTP surface."""

import pytest

from careaccess.services.assignments import assign_role
from conftest import PLATFORM_ORG, make_token

API = "/api/authz"


def _bearer(user_id: str) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.mark.integration
@pytest.mark.asyncio
class TestAuthentication:
    async def test_missing_token(self, client, seeded):
        response = await client.get(f"{API}/roles")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "HTTP_401"

    async def test_refresh_token_rejected(self, client, admin_user):
        response = await client.get(
            f"{API}/roles",
            headers={"Authorization": f"Bearer {make_token(admin_user, 'refresh')}"},
        )

        assert response.status_code == 401

    async def test_garbage_token_rejected(self, client, seeded):
        response = await client.get(
            f"{API}/roles", headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401

    async def test_organization_owner_cannot_manage_roles(self, client, db_session, seeded):
        await assign_role(db_session, "owner-1", "owner", "org-a", assigned_by_id=None)

        response = await client.get(f"{API}/roles", headers=_bearer("owner-1"))

        assert response.status_code == 403
        body = response.json()
        assert body["error"]["code"] == "PERMISSION_DENIED"
        assert "manage_roles" in body["error"]["message"]

    async def test_invalid_organization_header(self, client, auth_headers):
        response = await client.get(
            f"{API}/me/permissions",
            headers={**auth_headers, "X-Organization-Id": "bad org!"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_ORGANIZATION"


@pytest.mark.integration
@pytest.mark.asyncio
class TestCatalogEndpoints:
    async def test_list_permissions_paged(self, client, auth_headers):
        response = await client.get(
            f"{API}/permissions", params={"limit": 10, "offset": 0}, headers=auth_headers
        )

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 143
        assert len(body["items"]) == 10
        assert body["limit"] == 10

    async def test_permission_crud(self, client, auth_headers):
        created = await client.post(
            f"{API}/permissions",
            json={"id": "view_rota", "name": "View rota", "category": "scheduling"},
            headers=auth_headers,
        )
        assert created.status_code == 201

        updated = await client.put(
            f"{API}/permissions/view_rota",
            json={"description": "Weekly rota"},
            headers=auth_headers,
        )
        assert updated.json()["description"] == "Weekly rota"

        deleted = await client.delete(f"{API}/permissions/view_rota", headers=auth_headers)
        assert deleted.status_code == 204

        missing = await client.get(f"{API}/permissions/view_rota", headers=auth_headers)
        assert missing.status_code == 404
        assert missing.json()["error"]["code"] == "NOT_FOUND"

    async def test_invalid_permission_id(self, client, auth_headers):
        response = await client.post(
            f"{API}/permissions",
            json={"id": "View Rota", "name": "View rota", "category": "scheduling"},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_null_role_name_rejected(self, client, auth_headers):
        response = await client.put(
            f"{API}/roles/nurse", json={"name": None}, headers=auth_headers
        )

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]["errors"][0]["field"] == "body.name"

        unchanged = await client.get(f"{API}/roles/nurse", headers=auth_headers)
        assert unchanged.json()["name"]

    async def test_delete_referenced_permission(self, client, auth_headers):
        response = await client.delete(
            f"{API}/permissions/view_schedules", headers=auth_headers
        )

        assert response.status_code == 409
        details = response.json()["error"]["details"]
        assert details["role_permissions"] > 0

    async def test_cycle_rejected(self, client, auth_headers):
        response = await client.post(
            f"{API}/permission-implications",
            json={"parent_permission_id": "view_schedules", "child_permission_id": "edit_schedules"},
            headers=auth_headers,
        )

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "CIRCULAR_DEPENDENCY"
        assert error["details"]["path"][0] == "edit_schedules"

    async def test_clone_role(self, client, auth_headers):
        created = await client.post(
            f"{API}/roles",
            json={
                "id": "night_nurse",
                "name": "Night nurse",
                "hierarchy_level": 3,
                "base_role_id": "nurse",
            },
            headers=auth_headers,
        )
        assert created.status_code == 201

        clone = await client.get(f"{API}/roles/night_nurse/permissions", headers=auth_headers)
        base = await client.get(f"{API}/roles/nurse/permissions", headers=auth_headers)
        assert {p["id"] for p in clone.json()} == {p["id"] for p in base.json()}

    async def test_bulk_assign_role_permissions(self, client, auth_headers):
        response = await client.post(
            f"{API}/roles/carer/permissions",
            json={"permission_ids": ["view_schedules", "edit_schedules"]},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json() == {
            "role_id": "carer",
            "added": ["edit_schedules"],
            "already_assigned": ["view_schedules"],
        }

    async def test_add_and_remove_single_permission(self, client, auth_headers):
        added = await client.put(
            f"{API}/roles/carer/permissions/edit_schedules", headers=auth_headers
        )
        duplicate = await client.put(
            f"{API}/roles/carer/permissions/edit_schedules", headers=auth_headers
        )
        removed = await client.delete(
            f"{API}/roles/carer/permissions/edit_schedules", headers=auth_headers
        )

        assert added.status_code == 204
        assert duplicate.status_code == 409
        assert removed.status_code == 204

    async def test_delete_system_role(self, client, auth_headers):
        response = await client.delete(f"{API}/roles/carer", headers=auth_headers)

        assert response.status_code == 400

    async def test_role_members(self, client, auth_headers, admin_user):
        response = await client.get(f"{API}/roles/system_admin/members", headers=auth_headers)

        assert [m["user_id"] for m in response.json()] == [admin_user]


@pytest.mark.integration
@pytest.mark.asyncio
class TestUserEndpoints:
    async def test_assign_and_resolve(self, client, auth_headers):
        assigned = await client.post(
            f"{API}/users/user-1/organization-roles",
            json={"role_id": "carer", "organization_id": "org-a", "is_primary": True},
            headers=auth_headers,
        )
        assert assigned.status_code == 201
        assert assigned.json()["is_primary"] is True

        resolved = await client.get(
            f"{API}/users/user-1/effective-permissions",
            headers={**auth_headers, "X-Organization-Id": "org-a"},
        )
        ids = {p["id"] for p in resolved.json()}
        assert "view_schedules" in ids
        assert "edit_schedules" not in ids

    async def test_remove_role_requires_organization(self, client, auth_headers):
        response = await client.delete(
            f"{API}/users/user-1/organization-roles/carer", headers=auth_headers
        )

        assert response.status_code == 400

    async def test_grant_and_revoke(self, client, auth_headers):
        granted = await client.post(
            f"{API}/users/user-1/custom-permissions",
            json={
                "permission_id": "edit_schedules",
                "context_type": "ORGANIZATION",
                "context_id": "org-a",
            },
            headers=auth_headers,
        )
        assert granted.status_code == 201

        listed = await client.get(f"{API}/users/user-1/custom-permissions", headers=auth_headers)
        assert [g["permission_id"] for g in listed.json()] == ["edit_schedules"]

        revoked = await client.delete(
            f"{API}/users/user-1/custom-permissions/edit_schedules",
            params={"context_id": "org-a"},
            headers=auth_headers,
        )
        assert revoked.status_code == 204

    async def test_organization_grant_without_context(self, client, auth_headers):
        response = await client.post(
            f"{API}/users/user-1/custom-permissions",
            json={"permission_id": "edit_schedules", "context_type": "ORGANIZATION"},
            headers=auth_headers,
        )

        assert response.status_code == 422

    async def test_my_permissions(self, client, db_session, seeded):
        await assign_role(db_session, "carer-1", "carer", "org-a", assigned_by_id=None)

        response = await client.get(
            f"{API}/me/permissions",
            headers={**_bearer("carer-1"), "X-Organization-Id": "org-a"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["user_id"] == "carer-1"
        assert body["organization_id"] == "org-a"
        assert body["total"] == len(body["permissions"])
        assert "view_schedules" in body["permissions"]

    async def test_my_permissions_in_other_organization(self, client, db_session, seeded):
        await assign_role(db_session, "carer-1", "carer", "org-a", assigned_by_id=None)

        response = await client.get(
            f"{API}/me/permissions",
            headers={**_bearer("carer-1"), "X-Organization-Id": "org-b"},
        )

        assert response.json()["permissions"] == []


@pytest.mark.integration
@pytest.mark.asyncio
class TestSeedEndpoint:
    async def test_bootstrap_seed_on_empty_database(self, client):
        response = await client.post(f"{API}/seed")

        assert response.status_code == 200
        body = response.json()
        assert body["permissions"] == 143
        assert body["roles"] == 13

    async def test_reseed_requires_token(self, client, seeded):
        response = await client.post(f"{API}/seed")

        assert response.status_code == 403

    async def test_reseed_requires_manage_system(self, client, db_session, seeded):
        await assign_role(db_session, "owner-1", "owner", "org-a", assigned_by_id=None)

        response = await client.post(f"{API}/seed", headers=_bearer("owner-1"))

        assert response.status_code == 403

    async def test_reseed_as_admin(self, client, auth_headers):
        response = await client.post(f"{API}/seed", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["skipped"] == []


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
