"""
Broadcast sink: fire-and-forget pub/sub notifications over Redis.

Membership and organization changes are announced on a per-organization
topic so that realtime clients can refresh. Delivery is best effort: a
failed publish is logged and never fails the request that caused it.
"""

from __future__ import annotations

import json
import uuid
from typing import Any

import redis.asyncio as redis
import structlog

from app.core.redis import get_redis
from app.models.base import utcnow

log = structlog.get_logger()

REDIS_PUBSUB_PREFIX = "cayco:events:"


def org_topic(organization_id: uuid.UUID) -> str:
    return f"org:{organization_id}"


async def broadcast(topic: str, event: str, payload: dict[str, Any] | None = None) -> bool:
    """Publish ``event`` on ``topic``. Returns whether the publish went through."""
    message = json.dumps(
        {
            "type": event,
            "topic": topic,
            "payload": payload or {},
            "timestamp": utcnow().isoformat(),
        },
        default=str,
    )
    try:
        client = await get_redis()
        await client.publish(f"{REDIS_PUBSUB_PREFIX}{topic}", message)
    except (redis.RedisError, OSError) as exc:
        log.warning("broadcast.failed", topic=topic, event_type=event, error=str(exc))
        return False
    return True
