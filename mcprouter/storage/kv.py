"""Short-lived key-value storage with TTL expiry.

Backs WebAuthn challenges, email verification tokens and login sessions.
Values are JSON documents; expired entries are indistinguishable from
missing ones.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from mcprouter.exceptions import StorageError

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = structlog.get_logger(__name__)

JSONValue = dict[str, Any]


class KeyValueStore(Protocol):
    async def set(self, key: str, value: JSONValue, ttl_seconds: int) -> None: ...

    async def get(self, key: str) -> JSONValue | None: ...

    async def delete(self, key: str) -> None: ...

    async def pop(self, key: str) -> JSONValue | None:
        """Atomically return the value and delete it."""
        ...

    async def ping(self) -> bool: ...


class InMemoryKeyValueStore:
    """Process-local store honoring TTL through an injectable clock.

    Expired entries are lazily cleaned on ``set`` and on access.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._store: dict[str, tuple[str, float]] = {}  # key -> (json, expires_at)

    async def set(self, key: str, value: JSONValue, ttl_seconds: int) -> None:
        self._cleanup()
        self._store[key] = (json.dumps(value), self._clock() + ttl_seconds)

    async def get(self, key: str) -> JSONValue | None:
        entry = self._live_entry(key)
        return json.loads(entry) if entry is not None else None

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def pop(self, key: str) -> JSONValue | None:
        entry = self._live_entry(key)
        self._store.pop(key, None)
        return json.loads(entry) if entry is not None else None

    async def ping(self) -> bool:
        return True

    def _live_entry(self, key: str) -> str | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        raw, expires_at = entry
        if self._clock() >= expires_at:
            del self._store[key]
            return None
        return raw

    def _cleanup(self) -> None:
        """Remove expired entries."""
        now = self._clock()
        expired = [k for k, (_, exp) in self._store.items() if now >= exp]
        for k in expired:
            del self._store[k]


class RedisKeyValueStore:
    """Redis-backed store; expiry is enforced by Redis itself."""

    def __init__(self, client: Redis, prefix: str = "mcprouter:") -> None:
        self._redis = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "mcprouter:") -> RedisKeyValueStore:
        from redis.asyncio import from_url

        return cls(from_url(url, encoding="utf-8", decode_responses=True), prefix=prefix)

    async def set(self, key: str, value: JSONValue, ttl_seconds: int) -> None:
        from redis.exceptions import RedisError

        try:
            await self._redis.set(self._key(key), json.dumps(value), ex=ttl_seconds)
        except RedisError as exc:
            logger.error("kv_set_failed", error=str(exc))
            raise StorageError("Ephemeral store unavailable") from exc

    async def get(self, key: str) -> JSONValue | None:
        from redis.exceptions import RedisError

        try:
            raw = await self._redis.get(self._key(key))
        except RedisError as exc:
            logger.error("kv_get_failed", error=str(exc))
            raise StorageError("Ephemeral store unavailable") from exc
        return json.loads(raw) if raw is not None else None

    async def delete(self, key: str) -> None:
        from redis.exceptions import RedisError

        try:
            await self._redis.delete(self._key(key))
        except RedisError as exc:
            logger.error("kv_delete_failed", error=str(exc))
            raise StorageError("Ephemeral store unavailable") from exc

    async def pop(self, key: str) -> JSONValue | None:
        from redis.exceptions import RedisError

        try:
            raw = await self._redis.getdel(self._key(key))
        except RedisError as exc:
            logger.error("kv_pop_failed", error=str(exc))
            raise StorageError("Ephemeral store unavailable") from exc
        return json.loads(raw) if raw is not None else None

    async def ping(self) -> bool:
        from redis.exceptions import RedisError

        try:
            return bool(await self._redis.ping())
        except RedisError as exc:
            logger.warning("kv_ping_failed", error=str(exc))
            return False

    async def close(self) -> None:
        await self._redis.aclose()

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"
