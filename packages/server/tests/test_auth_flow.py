"""
End-to-end tests for the authentication and invitation workflows.

Covers:
- Owner registration and login by (organization ID, email, password)
- Invite -> accept, including single use and expiry of the invite token
- Password reset and organization-ID recovery
- Organization switching, logout, member removal
- Self-service profile and password changes
"""

from __future__ import annotations

import json
import re
import uuid
from datetime import timedelta

from sqlalchemy import update
from sqlmodel import select
from structlog.testing import capture_logs

from app.models.base import utcnow
from app.models.membership import Membership
from app.models.user import User

from conftest import DEFAULT_PASSWORD, bearer


# ---------------------------------------------------------------------------
# Registration & login
# ---------------------------------------------------------------------------

class TestRegistration:
    async def test_register_creates_owner_and_company(self, api):
        body = await api.register()
        user = body["user"]
        assert body["success"] is True
        assert body["token"]
        assert user["role"] == "Company Owner"
        assert re.match(r"^[A-Z0-9]{8}$", user["organizationId"])
        assert user["companyId"]
        assert user["email"] == "owner@example.com"
        assert user["onboardingCompleted"] is False

    async def test_same_email_can_register_twice(self, api):
        first = await api.register()
        second = await api.register(company="Second Co")
        assert first["user"]["organizationId"] != second["user"]["organizationId"]
        assert first["user"]["id"] != second["user"]["id"]

    async def test_short_password_rejected(self, client):
        resp = await client.post(
            "/auth/register",
            json={
                "email": "owner@example.com",
                "password": "123",
                "firstName": "O",
                "lastName": "W",
                "companyName": "Acme",
            },
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == {
            "code": "VALIDATION_ERROR",
            "message": "Password must be at least 6 characters",
            "status": 400,
        }

    async def test_malformed_body_uses_error_envelope(self, client):
        resp = await client.post("/auth/register", json={"email": "not-an-email"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


class TestLogin:
    async def test_login(self, api, owner):
        org_id = owner["user"]["organizationId"]
        resp = await api.login(org_id, "owner@example.com")
        assert resp.status_code == 200
        data = resp.json()
        assert data["user"]["role"] == "Company Owner"
        assert data["user"]["organizationId"] == org_id

    async def test_login_identifier_and_email_are_case_insensitive(self, api, owner):
        org_id = owner["user"]["organizationId"]
        resp = await api.login(org_id.lower(), "OWNER@Example.com")
        assert resp.status_code == 200

    async def test_unknown_organization(self, api, owner):
        resp = await api.login("ZZZZ9999", "owner@example.com")
        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "Invalid organization ID"

    async def test_wrong_password(self, api, owner):
        resp = await api.login(owner["user"]["organizationId"], "owner@example.com", "wrong-pass")
        assert resp.status_code == 401
        assert resp.json()["error"] == {
            "code": "INVALID_CREDENTIALS",
            "message": "Invalid credentials",
            "status": 401,
        }

    async def test_unknown_email(self, api, owner):
        resp = await api.login(owner["user"]["organizationId"], "nobody@example.com")
        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "Invalid credentials"

    async def test_member_of_another_org(self, api, owner):
        await api.register(email="other@example.com", company="Other Co")
        resp = await api.login(owner["user"]["organizationId"], "other@example.com")
        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "You are not a member of this organization"

    async def test_same_email_resolves_per_organization(self, api):
        first = await api.register(password="first-pass")
        second = await api.register(password="second-pass", company="Second Co")

        resp = await api.login(first["user"]["organizationId"], "owner@example.com", "first-pass")
        assert resp.status_code == 200
        assert resp.json()["user"]["id"] == first["user"]["id"]

        resp = await api.login(second["user"]["organizationId"], "owner@example.com", "first-pass")
        assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

class TestInvitations:
    async def test_invite_sends_link_and_creates_pending_member(self, client, api, owner, email_sender):
        resp = await api.invite(owner["token"], "staff@example.com", "Staff")
        assert resp.status_code == 201
        data = resp.json()
        assert data["message"] == "Invitation sent successfully"
        assert data["emailSent"] is True
        assert data["user"]["role"] == "Staff"

        mail = email_sender.to("staff@example.com")[-1]
        assert owner["user"]["organizationId"] in mail.html
        token = email_sender.last_invite_token("staff@example.com")

        info = await client.get(f"/auth/invite/{token}")
        assert info.status_code == 200
        assert info.json()["organizationId"] == owner["user"]["organizationId"]
        assert info.json()["companyName"] == "Acme Builders"
        assert info.json()["role"] == "Staff"

    async def test_login_before_accepting_is_blocked(self, api, owner):
        await api.invite(owner["token"], "staff@example.com")
        resp = await api.login(owner["user"]["organizationId"], "staff@example.com")
        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == (
            "Please accept your invitation first. Check your email for the invite link."
        )
        assert resp.json()["error"]["code"] == "INVITATION_PENDING"

    async def test_accept_then_login(self, api, owner, email_sender):
        await api.invite(owner["token"], "staff@example.com")
        token = email_sender.last_invite_token("staff@example.com")

        resp = await api.accept(token, password="staff-pass")
        assert resp.status_code == 200
        user = resp.json()["user"]
        assert user["role"] == "Staff"
        assert user["firstName"] == "Ivy"
        assert user["organizationId"] == owner["user"]["organizationId"]

        resp = await api.login(owner["user"]["organizationId"], "staff@example.com", "staff-pass")
        assert resp.status_code == 200

    async def test_invite_token_is_single_use(self, client, api, owner, email_sender):
        await api.invite(owner["token"], "staff@example.com")
        token = email_sender.last_invite_token("staff@example.com")

        assert (await api.accept(token)).status_code == 200
        replay = await api.accept(token, password="another-pass")
        assert replay.status_code == 400
        assert replay.json()["error"]["code"] == "INVALID_OR_EXPIRED_TOKEN"
        assert (await client.get(f"/auth/invite/{token}")).status_code == 400

    async def test_expired_invite_rejected(self, api, owner, email_sender, session_factory):
        await api.invite(owner["token"], "staff@example.com")
        token = email_sender.last_invite_token("staff@example.com")

        async with session_factory() as s:
            await s.execute(
                update(User)
                .where(User.invite_token == token)
                .values(invite_token_expires_at=utcnow() - timedelta(minutes=1))
            )
            await s.commit()

        resp = await api.accept(token)
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Invalid or expired invitation token"

    async def test_duplicate_invite_rejected(self, api, owner):
        assert (await api.invite(owner["token"], "staff@example.com")).status_code == 201
        resp = await api.invite(owner["token"], "staff@example.com")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "ALREADY_MEMBER"

    async def test_invalid_role_rejected(self, api, owner):
        resp = await api.invite(owner["token"], "staff@example.com", "Wizard")
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == (
            "Invalid role. Role must be a system role or a custom role in your company."
        )

    async def test_staff_cannot_invite(self, api, owner):
        staff = await api.onboard_member(owner["token"], "staff@example.com")
        resp = await api.invite(staff["token"], "friend@example.com")
        assert resp.status_code == 403

    async def test_failed_email_keeps_invitation(self, client, api, owner, email_sender):
        email_sender.fail = True
        resp = await api.invite(owner["token"], "staff@example.com")
        assert resp.status_code == 201
        assert resp.json()["emailSent"] is False
        assert resp.json()["warning"]

        email_sender.fail = False
        user_id = resp.json()["user"]["id"]
        resent = await client.post(f"/auth/resend-invite/{user_id}", headers=bearer(owner["token"]))
        assert resent.status_code == 200
        assert resent.json()["emailSent"] is True

        token = email_sender.last_invite_token("staff@example.com")
        assert (await api.accept(token)).status_code == 200

    async def test_resend_only_for_pending(self, client, api, owner):
        staff = await api.onboard_member(owner["token"], "staff@example.com")
        resp = await client.post(
            f"/auth/resend-invite/{staff['user']['id']}", headers=bearer(owner["token"])
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Only pending invitations can be resent"

    async def test_existing_user_invited_to_second_org(self, api, owner, email_sender):
        other = await api.register(email="boss@example.com", company="Other Co")
        other_org = other["user"]["organizationId"]
        await api.onboard_member(owner["token"], "staff@example.com")

        resp = await api.invite(other["token"], "staff@example.com", "Client")
        assert resp.status_code == 201

        resp = await api.login(other_org, "staff@example.com")
        assert resp.json()["error"]["code"] == "INVITATION_PENDING"

        resp = await api.accept(email_sender.last_invite_token("staff@example.com"))
        assert resp.status_code == 200
        assert resp.json()["user"]["role"] == "Client"

        resp = await api.login(owner["user"]["organizationId"], "staff@example.com")
        assert resp.status_code == 200

    async def test_pending_invite_elsewhere_blocks_login(self, api, owner):
        other = await api.register(email="boss@example.com", company="Other Co")
        await api.invite(other["token"], "owner@example.com", "Staff")

        # Right password for an active membership, but an invitation is open
        resp = await api.login(owner["user"]["organizationId"], "owner@example.com")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "INVITATION_PENDING"

    async def test_owner_role_cannot_be_invited(self, api, owner):
        manager = await api.onboard_member(owner["token"], "ops@example.com", "Operations Manager")
        for token in (manager["token"], owner["token"]):
            resp = await api.invite(token, "second@example.com", "Company Owner")
            assert resp.status_code == 400
            assert resp.json()["error"]["message"] == (
                "Ownership can only change through an ownership transfer"
            )

    async def test_invite_from_another_org_supersedes_pending(self, api, owner, email_sender):
        other = await api.register(email="boss@example.com", company="Other Co")
        await api.invite(owner["token"], "staff@example.com")
        first_token = email_sender.last_invite_token("staff@example.com")

        with capture_logs() as logs:
            resp = await api.invite(other["token"], "staff@example.com", "Client")
        assert resp.status_code == 201
        superseded = [e for e in logs if e["event"] == "invite.superseded"]
        assert len(superseded) == 1
        assert superseded[0]["log_level"] == "warning"

        assert (await api.accept(first_token)).status_code == 400
        resp = await api.accept(email_sender.last_invite_token("staff@example.com"))
        assert resp.json()["user"]["organizationId"] == other["user"]["organizationId"]

    async def test_invite_broadcasts_event(self, api, owner, fake_redis):
        await api.invite(owner["token"], "staff@example.com")
        events = [json.loads(message)["type"] for _, message in fake_redis.published]
        assert "member.invited" in events
        channel = fake_redis.published[-1][0]
        assert channel == f"cayco:events:org:{owner['user']['companyId']}"


# ---------------------------------------------------------------------------
# Recovery
# ---------------------------------------------------------------------------

class TestPasswordReset:
    async def test_reset_flow(self, client, api, owner, email_sender):
        org_id = owner["user"]["organizationId"]
        resp = await client.post(
            "/auth/forgot-password", json={"email": "owner@example.com", "organizationId": org_id}
        )
        assert resp.status_code == 200
        token = email_sender.last_reset_token("owner@example.com")

        resp = await client.post("/auth/reset-password", json={"token": token, "password": "new-pass"})
        assert resp.status_code == 200
        assert resp.json()["message"] == "Password reset successful"
        assert resp.json()["token"]

        assert (await api.login(org_id, "owner@example.com")).status_code == 401
        assert (await api.login(org_id, "owner@example.com", "new-pass")).status_code == 200

        replay = await client.post("/auth/reset-password", json={"token": token, "password": "again-1"})
        assert replay.status_code == 400
        assert replay.json()["error"]["message"] == "Invalid or expired reset token"

    async def test_unknown_email_gets_same_answer(self, client, owner, email_sender):
        known = await client.post(
            "/auth/forgot-password",
            json={"email": "owner@example.com", "organizationId": owner["user"]["organizationId"]},
        )
        unknown = await client.post(
            "/auth/forgot-password",
            json={"email": "ghost@example.com", "organizationId": owner["user"]["organizationId"]},
        )
        assert known.json() == unknown.json()
        assert email_sender.to("ghost@example.com") == []

    async def test_expired_reset_token(self, client, owner, email_sender, session_factory):
        await client.post(
            "/auth/forgot-password",
            json={"email": "owner@example.com", "organizationId": owner["user"]["organizationId"]},
        )
        token = email_sender.last_reset_token("owner@example.com")
        async with session_factory() as s:
            await s.execute(
                update(User).values(reset_token_expires_at=utcnow() - timedelta(seconds=1))
            )
            await s.commit()

        resp = await client.post("/auth/reset-password", json={"token": token, "password": "new-pass"})
        assert resp.status_code == 400


class TestForgotOrganizationId:
    async def test_sends_every_organization(self, client, api, email_sender):
        first = await api.register()
        second = await api.register(company="Second Co")

        resp = await client.post(
            "/auth/forgot-organization-id",
            json={"email": "owner@example.com", "password": DEFAULT_PASSWORD},
        )
        assert resp.status_code == 200
        assert resp.json()["message"] == "Organization IDs have been sent to your email"

        html = email_sender.to("owner@example.com")[-1].html
        assert first["user"]["organizationId"] in html
        assert second["user"]["organizationId"] in html

    async def test_wrong_password(self, client, owner):
        resp = await client.post(
            "/auth/forgot-organization-id",
            json={"email": "owner@example.com", "password": "wrong-pass"},
        )
        assert resp.status_code == 401

    async def test_email_failure_is_reported(self, client, owner, email_sender):
        email_sender.fail = True
        resp = await client.post(
            "/auth/forgot-organization-id",
            json={"email": "owner@example.com", "password": DEFAULT_PASSWORD},
        )
        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "EXTERNAL_DEPENDENCY_FAILURE"


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

class TestSessions:
    async def test_me(self, client, owner):
        resp = await client.get("/auth/me", headers=bearer(owner["token"]))
        assert resp.status_code == 200
        assert resp.json()["user"]["id"] == owner["user"]["id"]

    async def test_logout_revokes_token(self, client, owner, fake_redis):
        resp = await client.post("/auth/logout", headers=bearer(owner["token"]))
        assert resp.status_code == 200
        assert resp.json()["message"] == "Logged out"

        resp = await client.get("/auth/me", headers=bearer(owner["token"]))
        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "Session has been revoked"

    async def test_switch_organization(self, client, api, owner, email_sender):
        other = await api.register(email="boss@example.com", company="Other Co")
        await api.invite(other["token"], "owner@example.com", "Estimator")
        accepted = await api.accept(email_sender.last_invite_token("owner@example.com"))
        token = accepted.json()["token"]
        user_id = accepted.json()["user"]["id"]

        # The invite went to the existing owner record
        assert user_id == owner["user"]["id"]

        resp = await client.post(
            "/auth/switch-organization",
            json={"organizationId": owner["user"]["organizationId"]},
            headers=bearer(token),
        )
        assert resp.status_code == 200
        assert resp.json()["user"]["role"] == "Company Owner"

        me = await client.get("/auth/me", headers=bearer(token))
        assert me.json()["user"]["organizationId"] == owner["user"]["organizationId"]

    async def test_switch_to_foreign_org(self, client, api, owner):
        other = await api.register(email="boss@example.com", company="Other Co")
        resp = await client.post(
            "/auth/switch-organization",
            json={"organizationId": other["user"]["organizationId"]},
            headers=bearer(owner["token"]),
        )
        assert resp.status_code == 403


class TestProfile:
    async def test_update_profile(self, client, owner, session_factory):
        resp = await client.put(
            "/auth/profile",
            json={"firstName": "Olivia", "phone": "555-0100"},
            headers=bearer(owner["token"]),
        )
        assert resp.status_code == 200
        assert resp.json() == {
            "id": owner["user"]["id"],
            "email": "owner@example.com",
            "firstName": "Olivia",
            "lastName": "Owner",
            "phone": "555-0100",
        }

        async with session_factory() as s:
            result = await s.execute(
                select(Membership).where(Membership.user_id == uuid.UUID(owner["user"]["id"]))
            )
            assert [m.first_name for m in result.scalars()] == ["Olivia"]

    async def test_update_profile_requires_session(self, client):
        resp = await client.put("/auth/profile", json={"firstName": "X"})
        assert resp.status_code == 401

    async def test_change_password(self, client, api, owner):
        org_id = owner["user"]["organizationId"]
        resp = await client.put(
            "/auth/profile/password",
            json={"currentPassword": DEFAULT_PASSWORD, "newPassword": "brand-new-pass"},
            headers=bearer(owner["token"]),
        )
        assert resp.status_code == 200
        assert resp.json()["message"] == "Password updated successfully"

        assert (await api.login(org_id, "owner@example.com")).status_code == 401
        assert (await api.login(org_id, "owner@example.com", "brand-new-pass")).status_code == 200

    async def test_change_password_wrong_current(self, client, api, owner):
        resp = await client.put(
            "/auth/profile/password",
            json={"currentPassword": "not-it", "newPassword": "brand-new-pass"},
            headers=bearer(owner["token"]),
        )
        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "Current password is incorrect"
        resp = await api.login(owner["user"]["organizationId"], "owner@example.com")
        assert resp.status_code == 200

    async def test_change_password_too_short(self, client, owner):
        resp = await client.put(
            "/auth/profile/password",
            json={"currentPassword": DEFAULT_PASSWORD, "newPassword": "abc"},
            headers=bearer(owner["token"]),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Password must be at least 6 characters"


class TestDeleteUser:
    async def test_remove_member(self, client, api, owner):
        staff = await api.onboard_member(owner["token"], "staff@example.com")
        resp = await client.delete(f"/auth/user/{staff['user']['id']}", headers=bearer(owner["token"]))
        assert resp.status_code == 200
        assert resp.json()["message"] == "User removed from organization successfully"

        resp = await api.login(owner["user"]["organizationId"], "staff@example.com")
        assert resp.status_code == 401

    async def test_cannot_remove_owner(self, client, api, owner):
        manager = await api.onboard_member(owner["token"], "ops@example.com", "Operations Manager")
        resp = await client.delete(f"/auth/user/{owner['user']['id']}", headers=bearer(manager["token"]))
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Cannot delete company owner"

    async def test_cannot_remove_self(self, client, owner):
        resp = await client.delete(f"/auth/user/{owner['user']['id']}", headers=bearer(owner["token"]))
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "You cannot delete yourself"
