"""Redis client for the outbound notification channel.

Balances, holds and offer state never touch Redis; they live in PostgreSQL.
Short socket timeouts keep a slow broker from stalling a request whose
transaction has already committed.
"""

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from config.settings import settings

_client: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Return the shared client, creating it on first use."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = aioredis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
            socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        )
    return _client


async def ping_redis() -> bool:
    """Startup connectivity check; an unreachable broker only degrades notifications."""
    try:
        client = await get_redis()
        return bool(await client.ping())
    except (RedisError, OSError):
        return False


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None
