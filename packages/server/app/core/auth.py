"""
Credentials and tokens.

- Password hashing (bcrypt, cost from settings)
- Session JWTs carrying the user id only; role and organization are
  re-derived from the membership on every request
- Redis revocation list for logged-out sessions
- Single-use secrets for invitations (stored as issued, 7 days) and
  password resets (stored as SHA-256, 10 minutes)
"""

from __future__ import annotations

import hashlib
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

import bcrypt
import jwt
import structlog

from app.core.config import get_settings
from app.core.redis import get_redis
from app.models.base import utcnow

log = structlog.get_logger()
settings = get_settings()

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt with the configured cost factor."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=settings.bcrypt_rounds)).decode()


def verify_password(password: str, hashed: str | None) -> bool:
    """Verify a password against a bcrypt hash. Malformed hashes never match."""
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        return False


def generate_temporary_password() -> str:
    """Random throwaway password for invited users who have not accepted yet."""
    return secrets.token_hex(20)


# ---------------------------------------------------------------------------
# Session JWT
# ---------------------------------------------------------------------------

def create_session_token(
    user_id: uuid.UUID,
    *,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed session token. Returns (token, jti)."""
    jti = str(uuid.uuid4())
    now = utcnow()
    exp = now + (expires_delta or timedelta(days=settings.session_expire_days))
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": exp,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_session_token(token: str) -> dict:
    """Decode and verify a session token. Raises jwt.PyJWTError on failure."""
    return jwt.decode(
        token,
        settings.secret_key,
        algorithms=[settings.jwt_algorithm],
        options={"require": ["sub", "exp", "jti"]},
    )


# ---------------------------------------------------------------------------
# Session revocation (Redis)
# ---------------------------------------------------------------------------

async def revoke_session(jti: str, ttl_seconds: int) -> None:
    """Add a session id to the revocation list until it would expire anyway."""
    redis = await get_redis()
    await redis.setex(f"session:revoked:{jti}", max(ttl_seconds, 1), "1")


async def is_session_revoked(jti: str) -> bool:
    redis = await get_redis()
    return await redis.exists(f"session:revoked:{jti}") > 0


# ---------------------------------------------------------------------------
# Single-use tokens
# ---------------------------------------------------------------------------

class TokenPurpose(str, Enum):
    INVITE = "invite"
    RESET = "reset"


@dataclass(frozen=True)
class SingleUseToken:
    plaintext: str  # sent to the user, never logged
    stored: str  # what goes in the database
    expires_at: datetime


def hash_token(plaintext: str) -> str:
    """One-way form of a reset token."""
    return hashlib.sha256(plaintext.encode()).hexdigest()


def issue_single_use_token(
    purpose: TokenPurpose, *, now: datetime | None = None
) -> SingleUseToken:
    now = now or utcnow()
    plaintext = secrets.token_hex(32)
    if purpose == TokenPurpose.RESET:
        return SingleUseToken(
            plaintext=plaintext,
            stored=hash_token(plaintext),
            expires_at=now + timedelta(minutes=settings.reset_token_expire_minutes),
        )
    return SingleUseToken(
        plaintext=plaintext,
        stored=plaintext,
        expires_at=now + timedelta(days=settings.invite_token_expire_days),
    )


def stored_form(purpose: TokenPurpose, candidate: str) -> str:
    """What a presented token must equal in the database to be valid."""
    return hash_token(candidate) if purpose == TokenPurpose.RESET else candidate
