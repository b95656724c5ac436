import fnmatch
import time
from typing import Callable, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from app.core.config import settings

# Seconds between sweeps of expired in-memory entries on write.
INMEMORY_SWEEP_INTERVAL = 30.0


class CacheBackendError(Exception):
    """The key-value store could not complete an operation."""


class Cache:
    """Shared key-value store with expiry.

    Backed by Redis (``CACHE_TYPE=redis``) or by a per-process dict
    (``CACHE_TYPE=inmemory``) for local development and tests. Values are raw
    bytes; serialization belongs to the callers. Redis failures are re-raised
    as :class:`CacheBackendError` so callers handle a single error type.
    """

    def __init__(
        self,
        cache_type: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._redis = None
        # key -> (value, expires_at on the clock's timeline or None)
        self._inmemory: dict[str, tuple[bytes, Optional[float]]] = {}
        self._next_sweep = 0.0
        self.cache_type = (cache_type or settings.CACHE_TYPE).lower()
        self._clock = clock

    async def init_redis(self):
        if self.cache_type == "redis" and settings.REDIS_URL:
            self._redis = aioredis.from_url(
                settings.REDIS_URL,
                socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
                socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT,
            )

    def _client(self):
        if self._redis is None:
            raise CacheBackendError("Redis client is not initialised")
        return self._redis

    @property
    def is_redis(self) -> bool:
        return self.cache_type == "redis"

    async def get(self, key: str) -> Optional[bytes]:
        if self.is_redis:
            try:
                return await self._client().get(key)
            except RedisError as exc:
                raise CacheBackendError(f"GET {key} failed: {exc}") from exc

        entry = self._inmemory.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            self._inmemory.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: bytes, expire: float):
        """Store ``value`` under ``key`` for ``expire`` seconds."""
        if self.is_redis:
            try:
                await self._client().set(key, value, px=int(expire * 1000))
            except RedisError as exc:
                raise CacheBackendError(f"SET {key} failed: {exc}") from exc
            return

        now = self._clock()
        if now >= self._next_sweep:
            self._purge_expired(now)
            self._next_sweep = now + INMEMORY_SWEEP_INTERVAL
        self._inmemory[key] = (value, now + expire if expire else None)

    def _purge_expired(self, now: float) -> None:
        expired = [
            key
            for key, (_, expires_at) in self._inmemory.items()
            if expires_at is not None and expires_at <= now
        ]
        for key in expired:
            del self._inmemory[key]

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        if self.is_redis:
            try:
                return await self._client().delete(*keys)
            except RedisError as exc:
                raise CacheBackendError(f"DEL failed: {exc}") from exc

        return sum(1 for key in keys if self._inmemory.pop(key, None) is not None)

    async def scan(
        self, cursor: int = 0, match: str = "*", count: int = 100
    ) -> tuple[int, list[str]]:
        """One SCAN step. A returned cursor of 0 means the iteration is complete."""
        if self.is_redis:
            try:
                next_cursor, keys = await self._client().scan(
                    cursor=cursor, match=match, count=count
                )
            except RedisError as exc:
                raise CacheBackendError(f"SCAN {match} failed: {exc}") from exc
            return int(next_cursor), [
                k.decode() if isinstance(k, bytes) else k for k in keys
            ]

        # The local dict is small enough to be walked in a single step.
        self._purge_expired(self._clock())
        keys = [key for key in self._inmemory if fnmatch.fnmatchcase(key, match)]
        return 0, keys

    async def delete_pattern(self, pattern: str, count: Optional[int] = None) -> int:
        """Delete every key matching ``pattern`` with a SCAN/DEL loop."""
        count = count or settings.CACHE_SCAN_COUNT
        deleted = 0
        cursor = 0
        while True:
            cursor, keys = await self.scan(cursor=cursor, match=pattern, count=count)
            if keys:
                deleted += await self.delete(*keys)
            if cursor == 0:
                break
        return deleted

    async def ping(self) -> bool:
        if not self.is_redis:
            return True
        try:
            return bool(await self._client().ping())
        except (RedisError, CacheBackendError):
            return False

    def clear(self):
        """Drop every in-memory entry (no-op for Redis)."""
        self._inmemory.clear()

    async def close(self):
        if self._redis:
            await self._redis.aclose()
            self._redis = None


cache = Cache()
