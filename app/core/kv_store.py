from __future__ import annotations

# key-value store with per-key TTL, backed by redis or process memory
import json
import logging
import time
from threading import Lock
from typing import Any, Callable, Dict, Optional, Tuple

from redis.asyncio import ConnectionPool, Redis
from redis.asyncio.connection import Connection, SSLConnection
from redis.exceptions import RedisError

from app.core.config import settings
from app.core.errors import InfrastructureUnavailable

logger = logging.getLogger(__name__)


def cache_key(*parts: str) -> str:
    """Build a namespaced key, e.g. relay-agent:refresh-token:0xabc"""
    return ":".join([settings.CACHE_PREFIX, *parts])


def _dumps(value: Any) -> bytes:
    return json.dumps(value, default=str).encode("utf-8")


def _loads(data: Optional[bytes]) -> Optional[Any]:
    if data is None or data == b"":
        return None
    try:
        return json.loads(data)
    except json.JSONDecodeError:
        logger.warning("dropping undecodable kv value")
        return None


class KeyValueStore:
    """Interface shared by the redis and memory stores. Values are JSON documents."""

    async def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        raise NotImplementedError

    async def delete(self, key: str) -> bool:
        raise NotImplementedError

    async def getdel(self, key: str) -> Optional[Any]:
        """Atomically read and remove a key. Only one concurrent caller sees the value."""
        raise NotImplementedError

    async def exists(self, key: str) -> bool:
        raise NotImplementedError

    async def incr(self, key: str, ttl_seconds: int) -> int:
        """Increment a counter; the TTL starts with the first increment."""
        raise NotImplementedError

    async def close(self) -> None:
        return None


class RedisKeyValueStore(KeyValueStore):
    def __init__(self, pool: Optional[ConnectionPool] = None):
        if pool is None:
            pool = ConnectionPool(
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                password=settings.REDIS_PASSWORD,
                socket_connect_timeout=2,
                socket_timeout=5,
                retry_on_timeout=False,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                connection_class=SSLConnection if settings.REDIS_SSL else Connection,
            )
        self.pool = pool
        self.client = Redis(connection_pool=self.pool)

    async def _call(self, op: str, key: str, coro_factory: Callable[[], Any]) -> Any:
        try:
            return await coro_factory()
        except RedisError as exc:
            logger.exception("redis %s failed for key %s", op, key)
            raise InfrastructureUnavailable() from exc

    async def get(self, key: str) -> Optional[Any]:
        return _loads(await self._call("get", key, lambda: self.client.get(key)))

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        data = _dumps(value)
        ex = ttl_seconds if ttl_seconds is not None and ttl_seconds > 0 else None
        await self._call("set", key, lambda: self.client.set(key, data, ex=ex))

    async def delete(self, key: str) -> bool:
        return bool(await self._call("delete", key, lambda: self.client.delete(key)))

    async def getdel(self, key: str) -> Optional[Any]:
        return _loads(await self._call("getdel", key, lambda: self.client.getdel(key)))

    async def exists(self, key: str) -> bool:
        return bool(await self._call("exists", key, lambda: self.client.exists(key)))

    async def incr(self, key: str, ttl_seconds: int) -> int:
        async def window_incr():
            # MULTI: the window key is created with its TTL, INCR keeps it
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.set(key, 0, ex=ttl_seconds, nx=True)
                pipe.incr(key)
                return await pipe.execute()

        _, count = await self._call("incr", key, window_incr)
        return int(count)

    async def close(self) -> None:
        await self.client.aclose()
        await self.pool.disconnect()


class MemoryKeyValueStore(KeyValueStore):
    """Single-process store used when REDIS_HOST is not configured, and in tests."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self.memory: Dict[str, Tuple[bytes, Optional[float]]] = {}
        self._memory_lock = Lock()

    def _get_memory(self, key: str) -> Optional[bytes]:
        """Get from memory, removing expired entries. Caller holds the lock."""
        cached = self.memory.get(key)
        if cached is None:
            return None
        value, expires_at = cached
        if expires_at is not None and expires_at <= self.clock():
            self.memory.pop(key, None)
            return None
        return value

    async def get(self, key: str) -> Optional[Any]:
        with self._memory_lock:
            return _loads(self._get_memory(key))

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        expires_at = None if not ttl_seconds or ttl_seconds <= 0 else self.clock() + ttl_seconds
        with self._memory_lock:
            self.memory[key] = (_dumps(value), expires_at)

    async def delete(self, key: str) -> bool:
        with self._memory_lock:
            present = self._get_memory(key) is not None
            self.memory.pop(key, None)
            return present

    async def getdel(self, key: str) -> Optional[Any]:
        with self._memory_lock:
            data = self._get_memory(key)
            self.memory.pop(key, None)
            return _loads(data)

    async def exists(self, key: str) -> bool:
        with self._memory_lock:
            return self._get_memory(key) is not None

    async def incr(self, key: str, ttl_seconds: int) -> int:
        with self._memory_lock:
            data = self._get_memory(key)
            if data is None:
                count = 1
                expires_at = self.clock() + ttl_seconds
            else:
                count = int(json.loads(data)) + 1
                expires_at = self.memory[key][1]
            self.memory[key] = (_dumps(count), expires_at)
            return count


_store: Optional[KeyValueStore] = None


def get_kv_store() -> KeyValueStore:
    """Process-wide store: redis when REDIS_HOST is set, memory otherwise."""
    global _store
    if _store is None:
        if settings.REDIS_HOST is None or settings.REDIS_HOST.strip() == "":
            logger.warning("REDIS_HOST not configured, using in-memory key-value store")
            _store = MemoryKeyValueStore()
        else:
            _store = RedisKeyValueStore()
    return _store
