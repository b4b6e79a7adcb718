"""
Shared test fixtures.

- Per-test SQLite database (aiosqlite) with the real session dependency overridden
- In-memory Redis stand-in patched into every module that talks to Redis
- Recording email sender injected through the dependency system
"""

from __future__ import annotations

import os

# Must be set before anything imports app.core.config
os.environ["CAYCO_ENVIRONMENT"] = "test"
os.environ["CAYCO_SECRET_KEY"] = "test-secret-key-0123456789abcdef0123456789abcdef"
os.environ["CAYCO_BCRYPT_ROUNDS"] = "4"
os.environ["CAYCO_DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["CAYCO_EMAIL_BACKEND"] = "console"
os.environ["CAYCO_LOG_FORMAT"] = "console"
os.environ["CAYCO_FRONTEND_URL"] = "http://frontend.test"

import re
from dataclasses import dataclass
from typing import Optional
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.database import build_engine, build_session_factory, get_session, init_db
from app.core.email import EmailResult, get_email_sender
from app.main import app

INVITE_LINK = re.compile(r"/invite/([0-9a-f]{64})")
RESET_LINK = re.compile(r"/reset-password/([0-9a-f]{64})")

DEFAULT_PASSWORD = "secret123"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeRedis:
    """Just enough of redis.asyncio.Redis for revocation and publishing."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.published: list[tuple[str, str]] = []

    async def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    async def exists(self, *keys):
        return sum(1 for k in keys if k in self.store)

    async def get(self, key):
        return self.store.get(key)

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 0

    async def ping(self):
        return True

    async def aclose(self):
        return None


@dataclass
class SentEmail:
    to: str
    subject: str
    html: str


class RecordingEmailSender:
    def __init__(self):
        self.sent: list[SentEmail] = []
        self.fail = False

    async def send(self, to: str, subject: str, html: str) -> EmailResult:
        self.sent.append(SentEmail(to=to, subject=subject, html=html))
        if self.fail:
            return EmailResult(success=False, error="provider unavailable")
        return EmailResult(success=True, message_id=f"test-{len(self.sent)}")

    def to(self, address: str) -> list[SentEmail]:
        return [m for m in self.sent if m.to == address]

    def last_invite_token(self, address: str) -> str:
        return INVITE_LINK.findall(self.to(address)[-1].html)[-1]

    def last_reset_token(self, address: str) -> str:
        return RESET_LINK.findall(self.to(address)[-1].html)[-1]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_redis():
    fake = FakeRedis()

    async def _get_redis():
        return fake

    with patch("app.core.auth.get_redis", _get_redis), \
            patch("app.core.events.get_redis", _get_redis), \
            patch("app.core.redis.get_redis", _get_redis):
        yield fake


@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'cayco-test.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
async def client(session_factory, fake_redis, email_sender):
    async def _get_session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_email_sender] = lambda: email_sender
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# API driver
# ---------------------------------------------------------------------------

def bearer(token: str, org_id: Optional[str] = None) -> dict:
    headers = {"Authorization": f"Bearer {token}"}
    if org_id:
        headers["X-Organization-Id"] = org_id
    return headers


class Api:
    """Thin wrapper over the HTTP surface for multi-step scenarios."""

    def __init__(self, client: AsyncClient, email: RecordingEmailSender):
        self.client = client
        self.email = email

    async def register(
        self,
        email: str = "owner@example.com",
        password: str = DEFAULT_PASSWORD,
        company: str = "Acme Builders",
        first: str = "Olive",
        last: str = "Owner",
    ) -> dict:
        resp = await self.client.post(
            "/auth/register",
            json={
                "email": email,
                "password": password,
                "firstName": first,
                "lastName": last,
                "companyName": company,
            },
        )
        assert resp.status_code == 201, resp.text
        return resp.json()

    async def login(self, org_id: str, email: str, password: str = DEFAULT_PASSWORD):
        return await self.client.post(
            "/auth/login",
            json={"organizationId": org_id, "email": email, "password": password},
        )

    async def invite(self, token: str, email: str, role: str = "Staff", org_id: Optional[str] = None):
        return await self.client.post(
            "/auth/invite",
            json={"email": email, "role": role},
            headers=bearer(token, org_id),
        )

    async def accept(
        self,
        invite_token: str,
        password: str = DEFAULT_PASSWORD,
        first: str = "Ivy",
        last: str = "Invitee",
    ):
        return await self.client.post(
            "/auth/accept-invite",
            json={
                "token": invite_token,
                "password": password,
                "firstName": first,
                "lastName": last,
            },
        )

    async def onboard_member(
        self, owner_token: str, email: str, role: str = "Staff", org_id: Optional[str] = None
    ) -> dict:
        """Invite + accept; returns the accept-invite response body."""
        resp = await self.invite(owner_token, email, role, org_id)
        assert resp.status_code == 201, resp.text
        resp = await self.accept(self.email.last_invite_token(email))
        assert resp.status_code == 200, resp.text
        return resp.json()


@pytest.fixture
def api(client, email_sender):
    return Api(client, email_sender)


@pytest.fixture
async def owner(api):
    """A registered owner: {"token", "user"} with user.organizationId set."""
    return await api.register()
