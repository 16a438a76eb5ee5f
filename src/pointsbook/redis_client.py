"""Optional Redis client used for event broadcast.

The ledger never reads from Redis. When ``PB_REDIS_URL`` is empty the client
stays unset and publishers skip silently.
"""

import redis.asyncio as redis

_client: redis.Redis | None = None


async def init_redis(url: str) -> None:
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
        socket_timeout=2.0,
        health_check_interval=30,
    )


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_optional_redis() -> redis.Redis | None:
    """FastAPI dependency: the client, or None when broadcast is disabled."""
    return _client
