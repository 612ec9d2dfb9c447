from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Protocol

import redis
import redis.asyncio as aioredis

from authgate.core.config import settings
from authgate.core.errors import LockUnavailableError

_LOG = logging.getLogger("authgate.key_locks")


class KeyLocks(Protocol):
    def hold(self, key: str) -> "AsyncIterator[None]":
        ...


class InMemoryKeyLocks:
    """One ``asyncio.Lock`` per key, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] <= 0:
                self._holders.pop(key, None)
                self._locks.pop(key, None)

    def active_keys(self) -> list[str]:
        return sorted(self._locks)


class RedisKeyLocks:
    def __init__(self, client: aioredis.Redis, *, timeout_seconds: int):
        self.client = client
        self.timeout_seconds = max(int(timeout_seconds), 1)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self.client.lock(
            f"authgate:lock:{key}",
            timeout=self.timeout_seconds,
            blocking_timeout=self.timeout_seconds,
        )
        try:
            acquired = await lock.acquire()
        except redis.RedisError as exc:
            _LOG.error("redis lock failed key=%s error=%s", key, exc)
            raise LockUnavailableError("Verification service is busy, try again later") from exc
        if not acquired:
            _LOG.warning("redis lock wait exceeded key=%s timeout=%ss", key, self.timeout_seconds)
            raise LockUnavailableError("Verification service is busy, try again later")
        try:
            yield
        finally:
            try:
                await lock.release()
            except redis.exceptions.LockError as exc:
                # The lock expired while held; the next holder already owns the key.
                _LOG.warning("redis lock lost before release key=%s error=%s", key, exc)


_cached_locks: KeyLocks | None = None


def _build_key_locks() -> KeyLocks:
    backend = str(settings.OTP_LOCK_BACKEND or "memory").strip().lower()
    if backend != "redis":
        return InMemoryKeyLocks()
    try:
        probe = redis.Redis.from_url(
            settings.REDIS_URL,
            socket_timeout=0.4,
            socket_connect_timeout=0.4,
        )
        probe.ping()
        probe.close()
    except redis.RedisError:
        _LOG.warning("Redis lock backend unavailable; fallback to in-process locks")
        return InMemoryKeyLocks()
    client = aioredis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
    return RedisKeyLocks(client, timeout_seconds=settings.OTP_LOCK_TIMEOUT_SECONDS)


def get_key_locks() -> KeyLocks:
    global _cached_locks
    if _cached_locks is None:
        _cached_locks = _build_key_locks()
    return _cached_locks


def reset_key_locks_for_tests() -> None:
    global _cached_locks
    _cached_locks = None
