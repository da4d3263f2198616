"""
Redis client for shared, TTL-bound key/value state.

Inkpost uses it as the distributed backend for lockout records, so every
instance behind a load balancer sees the same failure counters.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from redis.asyncio.lock import Lock

from app.core.config import get_settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Thin async wrapper around redis.asyncio with degrade-to-None semantics."""

    def __init__(self) -> None:
        settings = get_settings()
        self._client: Optional[redis.Redis] = None
        self._host = settings.redis_host
        self._port = settings.redis_port
        self._db = settings.redis_db
        self._password = settings.redis_password

    async def connect(self) -> None:
        """Open the pool and ping once. On failure the client stays disconnected."""
        try:
            self._client = redis.Redis(
                host=self._host,
                port=self._port,
                db=self._db,
                password=self._password or None,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await self._client.ping()
            logger.info(f"Redis connection established at {self._host}:{self._port}/{self._db}")
        except Exception as e:
            logger.error(f"Redis unreachable at {self._host}:{self._port}: {e}")
            self._client = None

    async def close(self) -> None:
        """Release the connection pool on shutdown."""
        if self._client:
            await self._client.aclose()

    async def is_connected(self) -> bool:
        """Live ping; used to decide between the Redis and in-memory lockout stores."""
        if not self._client:
            return False
        try:
            await self._client.ping()
            return True
        except Exception:
            return False

    # ─────────────────────────────────────────────
    # Key/Value Operations
    # ─────────────────────────────────────────────

    async def get(self, key: str) -> Optional[str]:
        """Raw string value, or None when missing or Redis is unreachable."""
        if not self._client:
            return None

        try:
            return await self._client.get(key)
        except Exception as e:
            logger.error(f"Redis GET {key} failed: {e}")
            return None

    async def set(
        self, key: str, value: str, expire: Optional[int] = None
    ) -> bool:
        """Store a value; `expire` is a TTL in seconds."""
        if not self._client:
            return False

        try:
            return bool(await self._client.set(key, value, ex=expire))
        except Exception as e:
            logger.error(f"Redis SET {key} failed: {e}")
            return False

    async def delete(self, key: str) -> bool:
        """Delete a key. Returns True if something was removed."""
        if not self._client:
            return False

        try:
            return bool(await self._client.delete(key))
        except Exception as e:
            logger.error(f"Redis DEL {key} failed: {e}")
            return False

    # ─────────────────────────────────────────────
    # Distributed Locks
    # ─────────────────────────────────────────────

    def lock(self, name: str, timeout: float = 5.0, blocking_timeout: float = 5.0) -> Lock:
        """
        A Redis-backed lock usable as `async with client.lock(name):`.
        `timeout` bounds how long a crashed holder can keep it.
        """
        if not self._client:
            raise RuntimeError("Redis client is not connected.")
        return self._client.lock(name, timeout=timeout, blocking_timeout=blocking_timeout)
