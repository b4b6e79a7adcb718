"""
Tests for custom roles: CRUD, assignment, and permission checks through
``require_permission``.
"""

from __future__ import annotations

import pytest
from fastapi import Depends, FastAPI
from httpx import ASGITransport, AsyncClient

from app.core.access import AuthContext, require_permission
from app.core.database import get_session
from app.core.errors import register_error_handlers

from conftest import bearer

SITE_LEAD = {
    "name": "Site Lead",
    "description": "Runs a job site",
    "permissions": [{"resource": "jobs", "actions": ["view", "edit"]}],
}


def _roles(owner, suffix: str = "") -> str:
    return f"/api/v1/orgs/{owner['user']['organizationId']}/roles{suffix}"


class TestRoleCrud:
    async def test_create_and_list(self, client, owner):
        resp = await client.post(_roles(owner), json=SITE_LEAD, headers=bearer(owner["token"]))
        assert resp.status_code == 201
        role = resp.json()
        assert role["name"] == "Site Lead"
        assert role["isSystemRole"] is False
        assert role["companyId"] == owner["user"]["companyId"]

        listed = await client.get(_roles(owner), headers=bearer(owner["token"]))
        assert listed.json()["count"] == 1
        assert listed.json()["data"][0]["permissions"] == SITE_LEAD["permissions"]

    async def test_duplicate_name(self, client, owner):
        await client.post(_roles(owner), json=SITE_LEAD, headers=bearer(owner["token"]))
        resp = await client.post(_roles(owner), json=SITE_LEAD, headers=bearer(owner["token"]))
        assert resp.status_code == 409
        assert resp.json()["error"]["message"] == "Role with this name already exists"

    async def test_same_name_in_another_org(self, client, api, owner):
        other = await api.register(email="boss@example.com", company="Other Co")
        assert (await client.post(_roles(owner), json=SITE_LEAD, headers=bearer(owner["token"]))).status_code == 201
        assert (await client.post(_roles(other), json=SITE_LEAD, headers=bearer(other["token"]))).status_code == 201

    async def test_reserved_name(self, client, owner):
        resp = await client.post(
            _roles(owner), json={"name": "Company Owner"}, headers=bearer(owner["token"])
        )
        assert resp.status_code == 400

    async def test_role_from_other_org_not_visible(self, client, api, owner):
        other = await api.register(email="boss@example.com", company="Other Co")
        created = await client.post(_roles(other), json=SITE_LEAD, headers=bearer(other["token"]))
        role_id = created.json()["id"]
        resp = await client.get(_roles(owner, f"/{role_id}"), headers=bearer(owner["token"]))
        assert resp.status_code == 404

    async def test_update_and_deactivate(self, client, owner):
        created = await client.post(_roles(owner), json=SITE_LEAD, headers=bearer(owner["token"]))
        role_id = created.json()["id"]

        resp = await client.patch(
            _roles(owner, f"/{role_id}"),
            json={"permissions": [{"resource": "jobs", "actions": ["manage"]}], "isActive": False},
            headers=bearer(owner["token"]),
        )
        assert resp.status_code == 200
        assert resp.json()["isActive"] is False

        listed = await client.get(_roles(owner), headers=bearer(owner["token"]))
        assert listed.json()["count"] == 0
        listed = await client.get(
            _roles(owner), params={"include_inactive": True}, headers=bearer(owner["token"])
        )
        assert listed.json()["count"] == 1

    async def test_delete_unused(self, client, owner):
        created = await client.post(_roles(owner), json=SITE_LEAD, headers=bearer(owner["token"]))
        role_id = created.json()["id"]
        resp = await client.delete(_roles(owner, f"/{role_id}"), headers=bearer(owner["token"]))
        assert resp.status_code == 204
        resp = await client.get(_roles(owner, f"/{role_id}"), headers=bearer(owner["token"]))
        assert resp.status_code == 404

    async def test_delete_in_use(self, client, api, owner):
        created = await client.post(_roles(owner), json=SITE_LEAD, headers=bearer(owner["token"]))
        await api.onboard_member(owner["token"], "lead@example.com", "Site Lead")
        resp = await client.delete(
            _roles(owner, f"/{created.json()['id']}"), headers=bearer(owner["token"])
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == (
            "Cannot delete role. 1 user(s) are assigned to this role."
        )

    async def test_staff_cannot_create(self, client, api, owner):
        staff = await api.onboard_member(owner["token"], "staff@example.com")
        resp = await client.post(_roles(owner), json=SITE_LEAD, headers=bearer(staff["token"]))
        assert resp.status_code == 403


class TestCustomRoleAssignment:
    async def test_invite_with_custom_role(self, client, api, owner):
        await client.post(_roles(owner), json=SITE_LEAD, headers=bearer(owner["token"]))
        lead = await api.onboard_member(owner["token"], "lead@example.com", "Site Lead")
        assert lead["user"]["role"] == "Site Lead"

    async def test_inactive_custom_role_not_assignable(self, client, api, owner):
        created = await client.post(_roles(owner), json=SITE_LEAD, headers=bearer(owner["token"]))
        await client.patch(
            _roles(owner, f"/{created.json()['id']}"),
            json={"isActive": False},
            headers=bearer(owner["token"]),
        )
        resp = await api.invite(owner["token"], "lead@example.com", "Site Lead")
        assert resp.status_code == 400


# ---------------------------------------------------------------------------
# require_permission on a scratch route
# ---------------------------------------------------------------------------

@pytest.fixture
async def jobs_client(session_factory, fake_redis):
    """A tiny app with one permission-guarded route, sharing the test database."""
    scratch = FastAPI()
    register_error_handlers(scratch)

    @scratch.get("/orgs/{orgId}/jobs")
    async def list_jobs(ctx: AuthContext = Depends(require_permission("jobs", "view"))):
        return {"role": ctx.role.name}

    @scratch.delete("/orgs/{orgId}/jobs")
    async def delete_jobs(ctx: AuthContext = Depends(require_permission("jobs", "delete"))):
        return {"role": ctx.role.name}

    async def _get_session():
        async with session_factory() as s:
            yield s
            await s.commit()

    scratch.dependency_overrides[get_session] = _get_session
    async with AsyncClient(transport=ASGITransport(app=scratch), base_url="http://test") as ac:
        yield ac


class TestRequirePermission:
    async def test_custom_role_permissions_enforced(self, client, api, owner, jobs_client):
        await client.post(_roles(owner), json=SITE_LEAD, headers=bearer(owner["token"]))
        lead = await api.onboard_member(owner["token"], "lead@example.com", "Site Lead")
        path = f"/orgs/{owner['user']['organizationId']}/jobs"

        resp = await jobs_client.get(path, headers=bearer(lead["token"]))
        assert resp.status_code == 200
        assert resp.json() == {"role": "Site Lead"}

        resp = await jobs_client.delete(path, headers=bearer(lead["token"]))
        assert resp.status_code == 403

    async def test_fixed_role_matrix_enforced(self, client, api, owner, jobs_client):
        client_member = await api.onboard_member(owner["token"], "client@example.com", "Client")
        path = f"/orgs/{owner['user']['organizationId']}/jobs"
        assert (await jobs_client.get(path, headers=bearer(client_member["token"]))).status_code == 200
        assert (await jobs_client.delete(path, headers=bearer(client_member["token"]))).status_code == 403
        assert (await jobs_client.delete(path, headers=bearer(owner["token"]))).status_code == 200
