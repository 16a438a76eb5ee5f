"""Best-effort Redis pub/sub broadcast of committed ledger events."""

from __future__ import annotations

import json
from typing import Any

import structlog

logger = structlog.get_logger()

BALANCE_CHANNEL = "pubsub:balance_changed"
ROUND_RESULT_CHANNEL = "pubsub:round_result"


async def publish_event(redis: object | None, channel: str, payload: dict[str, Any]) -> None:
    """Publish ``payload`` as JSON. Never raises; skipped when Redis is not configured."""
    if redis is None:
        return
    try:
        await redis.publish(channel, json.dumps(payload, default=str))  # type: ignore[attr-defined]
    except Exception:
        logger.warning("pubsub_publish_failed", channel=channel, exc_info=True)
