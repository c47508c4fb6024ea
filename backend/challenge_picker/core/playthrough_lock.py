"""Per-playthrough mutual exclusion.

Every mutation of a playthrough (picks, toggles, lifecycle transitions,
counter changes and the dashboard's reconcile write-back) runs while holding
the playthrough's lock, so two concurrent picks can never both see the same
free slot. Different playthroughs never share a lock.

Two backends: Redis (multi-process deployments) and an in-process
``asyncio.Lock`` registry (single worker, tests).
"""

import asyncio
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
import structlog
from redis.exceptions import LockError

from challenge_picker.config import settings
from challenge_picker.db.redis import get_redis_client
from challenge_picker.errors import ConcurrentModification

log = structlog.get_logger(__name__)


class RedisPlaythroughLocks:
    """Distributed locks via redis-py's ``Lock`` (SET NX with a TTL)."""

    def __init__(self, redis: aioredis.Redis, timeout: float, blocking_timeout: float):
        self.redis = redis
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout

    def _lock_key(self, playthrough_id: str) -> str:
        return f"playthrough:lock:{playthrough_id}"

    @asynccontextmanager
    async def hold(self, playthrough_id: str):
        lock = self.redis.lock(
            self._lock_key(playthrough_id),
            timeout=self.timeout,
            blocking_timeout=self.blocking_timeout,
        )
        try:
            acquired = await lock.acquire()
        except LockError as exc:
            raise ConcurrentModification() from exc
        if not acquired:
            raise ConcurrentModification()
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # TTL ran out while we were still working
                log.warning("playthrough_lock_expired", playthrough_id=playthrough_id)


class LocalPlaythroughLocks:
    """In-process locks, one ``asyncio.Lock`` per playthrough id."""

    def __init__(self, blocking_timeout: float):
        self.blocking_timeout = blocking_timeout
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}  # tasks holding or waiting, per playthrough

    @asynccontextmanager
    async def hold(self, playthrough_id: str):
        lock = self._locks.setdefault(playthrough_id, asyncio.Lock())
        self._users[playthrough_id] = self._users.get(playthrough_id, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.blocking_timeout)
            except asyncio.TimeoutError as exc:
                raise ConcurrentModification() from exc
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[playthrough_id] -= 1
            if self._users[playthrough_id] == 0:
                del self._users[playthrough_id]
                del self._locks[playthrough_id]


_locks: RedisPlaythroughLocks | LocalPlaythroughLocks | None = None


def get_playthrough_locks() -> RedisPlaythroughLocks | LocalPlaythroughLocks:
    """FastAPI dependency: the lock registry selected by ``LOCK_BACKEND``."""
    global _locks
    if _locks is None:
        if settings.LOCK_BACKEND == "local":
            _locks = LocalPlaythroughLocks(settings.LOCK_BLOCKING_TIMEOUT_SECONDS)
        else:
            _locks = RedisPlaythroughLocks(
                get_redis_client(),
                timeout=settings.LOCK_TIMEOUT_SECONDS,
                blocking_timeout=settings.LOCK_BLOCKING_TIMEOUT_SECONDS,
            )
    return _locks
