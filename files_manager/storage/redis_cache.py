from __future__ import annotations

from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from files_manager.logging import get_logger
from files_manager.storage.errors import BackendUnavailable

logger = get_logger(__name__)


class RedisCache:
    """Thin Redis wrapper for expiring key/value bindings."""

    def __init__(self, redis_url: str, *, socket_timeout: float = 5.0):
        self.redis_url = redis_url
        # The pool connects lazily; construction never blocks on the server
        self.client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    async def is_alive(self) -> bool:
        try:
            return bool(await self.client.ping())
        except (RedisError, OSError) as exc:
            logger.debug("redis_ping_failed", error=str(exc))
            return False

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.client.get(key)
        except (RedisError, OSError) as exc:
            logger.error("redis_get_failed", error=str(exc))
            raise BackendUnavailable("redis", "get failed") from exc

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Store ``value`` under ``key``; ``ttl_seconds`` maps to ``SET ... EX``."""
        try:
            await self.client.set(key, str(value), ex=ttl_seconds)
        except (RedisError, OSError) as exc:
            logger.error("redis_set_failed", error=str(exc))
            raise BackendUnavailable("redis", "set failed") from exc

    async def delete(self, key: str) -> int:
        try:
            return int(await self.client.delete(key))
        except (RedisError, OSError) as exc:
            logger.error("redis_delete_failed", error=str(exc))
            raise BackendUnavailable("redis", "delete failed") from exc

    async def close(self) -> None:
        """Close Redis connection pool. Call when shutting down or resetting runtime."""
        await self.client.aclose()
        await self.client.connection_pool.disconnect()
