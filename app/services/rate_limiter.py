"""
services/rate_limiter.py

Brute-force lockout tracking, keyed by client identity (IP address).

Each tracker owns one scope ("login", "admin-login", "register") with its
own policy. A record holds the failure count and the time of the first
failure in the current window:

    no record ──fail──▶ {count: 1, started: now}
    record    ──fail──▶ count + 1 (capped at max_attempts), started unchanged
    record    ──success──▶ deleted
    record    ──read after window elapsed──▶ deleted

An identity is locked out while count >= max_attempts and the window has not
elapsed. The tracker never raises; callers turn a lockout into a 429.

Every read-modify-write runs under the store's per-key lock so concurrent
failures for the same identity cannot lose updates. Authentication holds
that lock across a whole attempt (see LockoutTracker.attempt): rate check,
credential check and the resulting record update happen as one unit.
"""

import logging
import math
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import AsyncIterator, Callable, Optional

from app.services.lockout_store import LockoutStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockoutPolicy:
    max_attempts: int
    window: timedelta

    @property
    def window_seconds(self) -> float:
        return self.window.total_seconds()


@dataclass
class LockoutRecord:
    failed_count: int
    window_started_at: float

    def to_dict(self) -> dict:
        return {"failed_count": self.failed_count, "window_started_at": self.window_started_at}

    @classmethod
    def from_dict(cls, data: dict) -> "LockoutRecord":
        return cls(
            failed_count=int(data["failed_count"]),
            window_started_at=float(data["window_started_at"]),
        )


class LockoutAttempt:
    """
    One identity's lockout record, held under the store lock for the duration
    of an attempt. Obtained from LockoutTracker.attempt().
    """

    def __init__(self, tracker: "LockoutTracker", identity: str, key: str) -> None:
        self._tracker = tracker
        self.identity = identity
        self._key = key

    @property
    def scope(self) -> str:
        return self._tracker.scope

    async def remaining_lockout_minutes(self) -> Optional[int]:
        return await self._tracker._remaining(self._key)

    async def record_failure(self) -> None:
        await self._tracker._fail(self._key, self.identity)

    async def record_success(self) -> None:
        await self._tracker._store.delete(self._key)


class LockoutTracker:
    def __init__(
        self,
        scope: str,
        policy: LockoutPolicy,
        store: LockoutStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.scope = scope
        self.policy = policy
        self._store = store
        self._clock = clock

    def _key(self, identity: str) -> str:
        return f"lockout:{self.scope}:{identity}"

    async def _load_active(self, key: str, now: float) -> Optional[LockoutRecord]:
        """Current record for `key`, pruning it if its window has elapsed. Caller holds the lock."""
        raw = await self._store.get(key)
        if raw is None:
            return None
        try:
            record = LockoutRecord.from_dict(raw)
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Dropping malformed lockout record {key}")
            await self._store.delete(key)
            return None
        if now - record.window_started_at >= self.policy.window_seconds:
            await self._store.delete(key)
            return None
        return record

    async def _remaining(self, key: str) -> Optional[int]:
        now = self._clock()
        record = await self._load_active(key, now)
        if record is None or record.failed_count < self.policy.max_attempts:
            return None
        remaining = self.policy.window_seconds - (now - record.window_started_at)
        return max(1, math.ceil(remaining / 60))

    async def _fail(self, key: str, identity: str) -> None:
        now = self._clock()
        record = await self._load_active(key, now)
        if record is None:
            record = LockoutRecord(failed_count=1, window_started_at=now)
        elif record.failed_count < self.policy.max_attempts:
            record.failed_count += 1

        ttl = self.policy.window_seconds - (now - record.window_started_at)
        await self._store.set(key, record.to_dict(), ttl_seconds=max(1, math.ceil(ttl)))

        if record.failed_count >= self.policy.max_attempts:
            logger.warning(
                f"Lockout engaged | scope: {self.scope} | identity: {identity} | "
                f"failures: {record.failed_count}/{self.policy.max_attempts}"
            )

    @asynccontextmanager
    async def attempt(self, identity: str) -> AsyncIterator[LockoutAttempt]:
        """
        Holds the per-identity lock from the rate check until the outcome is
        recorded, so concurrent attempts from one identity run one at a time:

            async with tracker.attempt(ip) as attempt:
                if await attempt.remaining_lockout_minutes() is not None: ...
                ...
                await attempt.record_failure()
        """
        key = self._key(identity)
        async with self._store.lock(key):
            yield LockoutAttempt(self, identity, key)

    async def remaining_lockout_minutes(self, identity: str) -> Optional[int]:
        """
        Minutes until the lockout on `identity` lifts, rounded up, or None
        when the identity is not locked out.
        """
        async with self.attempt(identity) as attempt:
            return await attempt.remaining_lockout_minutes()

    async def is_locked_out(self, identity: str) -> bool:
        return await self.remaining_lockout_minutes(identity) is not None

    async def record_failure(self, identity: str) -> None:
        async with self.attempt(identity) as attempt:
            await attempt.record_failure()

    async def record_success(self, identity: str) -> None:
        async with self.attempt(identity) as attempt:
            await attempt.record_success()

    async def get_record(self, identity: str) -> Optional[LockoutRecord]:
        """Active record for `identity`, if any. Prunes an expired one."""
        key = self._key(identity)
        async with self._store.lock(key):
            return await self._load_active(key, self._clock())
