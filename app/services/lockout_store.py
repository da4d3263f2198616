"""
services/lockout_store.py

Key/value storage for lockout records, with TTL and per-key locking.

Two interchangeable backends:
- InMemoryLockoutStore: a dict plus per-key asyncio locks. Single process
  only; state is lost on restart.
- RedisLockoutStore: JSON values in Redis with native TTL and a Redis lock
  per key, shared by every instance.

The lockout tracker only ever talks to the LockoutStore interface.
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, Optional, Tuple

from redis.exceptions import LockError

from app.core.exceptions import InternalError
from app.integrations.redis_client import RedisClient

logger = logging.getLogger(__name__)


class LockoutStore(ABC):
    @abstractmethod
    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def set(self, key: str, value: Dict[str, Any], ttl_seconds: int) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def lock(self, key: str):
        """Async context manager holding an exclusive lock on `key`."""


class InMemoryLockoutStore(LockoutStore):
    """
    Expired entries are dropped when their key is read, and in bulk by a
    sweep that runs on `set` at most once per `sweep_interval` seconds, so
    records for identities that never return do not accumulate.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, sweep_interval: float = 60.0) -> None:
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval
        self._data: Dict[str, Tuple[Dict[str, Any], float]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_refs: Dict[str, int] = {}

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._data[key]
            return None
        return dict(value)

    async def set(self, key: str, value: Dict[str, Any], ttl_seconds: int) -> None:
        now = self._clock()
        if now >= self._next_sweep:
            self.sweep(now)
        self._data[key] = (dict(value), now + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def sweep(self, now: Optional[float] = None) -> int:
        """Drops every expired entry. Returns how many were removed."""
        now = self._clock() if now is None else now
        expired = [key for key, (_, expires_at) in self._data.items() if now >= expires_at]
        for key in expired:
            del self._data[key]
        self._next_sweep = now + self._sweep_interval
        if expired:
            logger.debug(f"Swept {len(expired)} expired lockout records")
        return len(expired)

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        # Reference-counted so the lock object outlives every waiter on it.
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_refs[key] = self._lock_refs.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_refs[key] -= 1
            if self._lock_refs[key] == 0:
                del self._lock_refs[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._data)


class RedisLockoutStore(LockoutStore):
    def __init__(
        self,
        client: RedisClient,
        lock_timeout: float = 10.0,
        blocking_timeout: float = 30.0,
    ) -> None:
        self._client = client
        self._lock_timeout = lock_timeout
        self._blocking_timeout = blocking_timeout

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        raw = await self._client.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding unreadable lockout record at {key}")
            await self._client.delete(key)
            return None

    async def set(self, key: str, value: Dict[str, Any], ttl_seconds: int) -> None:
        await self._client.set(key, json.dumps(value), expire=max(int(ttl_seconds), 1))

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        lock = self._client.lock(
            f"{key}:lock", timeout=self._lock_timeout, blocking_timeout=self._blocking_timeout
        )
        if not await lock.acquire():
            logger.error(f"Timed out waiting for lockout lock on {key}")
            raise InternalError("Lockout tracking is temporarily unavailable.")
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # Held past lock_timeout; Redis already let it go.
                logger.warning(f"Lockout lock on {key} expired before release: {e}")


async def build_lockout_store(backend: str, redis_client: Optional[RedisClient]) -> LockoutStore:
    """
    Picks the configured backend. A Redis backend that cannot be reached
    degrades to the in-memory store.
    """
    if backend == "redis":
        if redis_client and await redis_client.is_connected():
            logger.info("Lockout tracking backed by Redis.")
            return RedisLockoutStore(redis_client)
        logger.warning(
            "Lockout store configured for Redis but Redis is unavailable. "
            "Falling back to in-memory tracking; counters will not be shared across instances."
        )
    return InMemoryLockoutStore()
