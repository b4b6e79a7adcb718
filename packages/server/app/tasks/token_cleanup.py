"""
ARQ background task: clear invite and reset tokens that have expired.

Expired tokens are already unusable; this keeps the token columns (and their
indexes) small. Memberships are never touched here: a pending membership
with a lapsed invite stays pending until it is resent or revoked.

Run with ``arq app.tasks.token_cleanup.WorkerSettings``.
"""

from __future__ import annotations

from arq import cron
from arq.connections import RedisSettings
import structlog
from sqlalchemy import update

from app.core.config import get_settings
from app.core.database import get_session_context
from app.models.base import utcnow
from app.models.user import User

log = structlog.get_logger()
settings = get_settings()


async def clear_expired_tokens(ctx: dict) -> dict[str, int]:
    """Null out expired single-use tokens.

    Returns the number of users cleared per token kind.
    """
    now = utcnow()

    async with get_session_context() as session:
        invites = await session.execute(
            update(User)
            .where(User.invite_token.is_not(None), User.invite_token_expires_at <= now)
            .values(invite_token=None, invite_token_expires_at=None)
            .execution_options(synchronize_session=False)
        )
        resets = await session.execute(
            update(User)
            .where(User.reset_token_hash.is_not(None), User.reset_token_expires_at <= now)
            .values(reset_token_hash=None, reset_token_expires_at=None)
            .execution_options(synchronize_session=False)
        )

    cleared = {"invite": invites.rowcount, "reset": resets.rowcount}
    if any(cleared.values()):
        log.info("token_cleanup.batch_cleared", **cleared)
    return cleared


# ARQ worker settings
class WorkerSettings:
    """ARQ worker configuration."""

    functions = [clear_expired_tokens]
    cron_jobs = [
        # Every hour, on the hour
        cron(clear_expired_tokens, minute={0}),
    ]
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
