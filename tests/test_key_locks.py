import asyncio
import os
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

import redis

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from authgate.core.config import settings
from authgate.core.errors import LockUnavailableError
from authgate.schemas.auth import Channel, OtpContext
from authgate.services import key_locks
from authgate.services.key_locks import InMemoryKeyLocks, RedisKeyLocks
from authgate.services.otp_engine import OtpEngine
from authgate.services.otp_store import InMemoryOtpStore


class InMemoryKeyLocksTests(unittest.IsolatedAsyncioTestCase):
    async def test_same_key_is_serialized(self):
        locks = InMemoryKeyLocks()
        events = []

        async def worker(name):
            async with locks.hold("otp:EMAIL:a@test.com"):
                events.append(f"{name}:in")
                await asyncio.sleep(0.01)
                events.append(f"{name}:out")

        await asyncio.gather(worker("a"), worker("b"))
        self.assertEqual(events, ["a:in", "a:out", "b:in", "b:out"])

    async def test_different_keys_do_not_block_each_other(self):
        locks = InMemoryKeyLocks()
        entered = asyncio.Event()

        async def holder():
            async with locks.hold("key-1"):
                await asyncio.wait_for(entered.wait(), timeout=1)

        async def other():
            async with locks.hold("key-2"):
                entered.set()

        await asyncio.gather(holder(), other())

    async def test_released_keys_are_dropped(self):
        locks = InMemoryKeyLocks()
        async with locks.hold("key-1"):
            self.assertEqual(locks.active_keys(), ["key-1"])
        self.assertEqual(locks.active_keys(), [])


def _fake_redis(acquire):
    lock = MagicMock()
    lock.acquire = acquire
    lock.release = AsyncMock()
    client = MagicMock()
    client.lock.return_value = lock
    return client, lock


class RedisKeyLocksTests(unittest.IsolatedAsyncioTestCase):
    async def test_acquire_and_release(self):
        client, lock = _fake_redis(AsyncMock(return_value=True))
        locks = RedisKeyLocks(client, timeout_seconds=5)
        async with locks.hold("otp:EMAIL:a@test.com"):
            lock.release.assert_not_awaited()
        client.lock.assert_called_once_with("authgate:lock:otp:EMAIL:a@test.com", timeout=5, blocking_timeout=5)
        lock.release.assert_awaited_once()

    async def test_wait_exceeded_is_service_unavailable(self):
        client, lock = _fake_redis(AsyncMock(return_value=False))
        locks = RedisKeyLocks(client, timeout_seconds=1)
        with self.assertLogs("authgate.key_locks", level="WARNING"):
            with self.assertRaises(LockUnavailableError) as ctx:
                async with locks.hold("otp:EMAIL:a@test.com"):
                    self.fail("lock body must not run")
        self.assertEqual(ctx.exception.status_code, 503)
        lock.release.assert_not_awaited()

    async def test_redis_failure_is_service_unavailable(self):
        client, _ = _fake_redis(AsyncMock(side_effect=redis.ConnectionError("down")))
        locks = RedisKeyLocks(client, timeout_seconds=1)
        with self.assertLogs("authgate.key_locks", level="ERROR"):
            with self.assertRaises(LockUnavailableError):
                async with locks.hold("otp:EMAIL:a@test.com"):
                    pass

    async def test_expired_lock_on_release_is_logged(self):
        client, lock = _fake_redis(AsyncMock(return_value=True))
        lock.release.side_effect = redis.exceptions.LockNotOwnedError("expired")
        locks = RedisKeyLocks(client, timeout_seconds=1)
        with self.assertLogs("authgate.key_locks", level="WARNING") as logs:
            async with locks.hold("otp:EMAIL:a@test.com"):
                pass
        self.assertIn("lost before release", logs.output[0])

    async def test_send_fails_cleanly_when_lock_is_unavailable(self):
        client, _ = _fake_redis(AsyncMock(return_value=False))
        store = InMemoryOtpStore(RedisKeyLocks(client, timeout_seconds=1))
        engine = OtpEngine(store, AsyncMock(), production=False)
        with self.assertLogs("authgate.key_locks", level="WARNING"):
            with self.assertRaises(LockUnavailableError):
                await engine.send("a@test.com", Channel.EMAIL, OtpContext.REGISTER)
        self.assertIsNone(await store.find("a@test.com", Channel.EMAIL))


class KeyLocksBackendTests(unittest.TestCase):
    def setUp(self):
        self._backend = settings.OTP_LOCK_BACKEND
        key_locks.reset_key_locks_for_tests()

    def tearDown(self):
        settings.OTP_LOCK_BACKEND = self._backend
        key_locks.reset_key_locks_for_tests()

    def test_memory_backend_by_default(self):
        settings.OTP_LOCK_BACKEND = "memory"
        self.assertIsInstance(key_locks.get_key_locks(), InMemoryKeyLocks)
        self.assertIs(key_locks.get_key_locks(), key_locks.get_key_locks())

    def test_redis_backend_falls_back_when_unreachable(self):
        settings.OTP_LOCK_BACKEND = "redis"
        with patch("authgate.services.key_locks.redis.Redis.from_url") as from_url:
            from_url.return_value.ping.side_effect = redis.ConnectionError("down")
            locks = key_locks.get_key_locks()
        self.assertIsInstance(locks, InMemoryKeyLocks)

    def test_redis_backend_when_reachable(self):
        settings.OTP_LOCK_BACKEND = "redis"
        with patch("authgate.services.key_locks.redis.Redis.from_url") as from_url:
            from_url.return_value.ping.return_value = True
            locks = key_locks.get_key_locks()
        self.assertIsInstance(locks, RedisKeyLocks)
        self.assertEqual(locks.timeout_seconds, settings.OTP_LOCK_TIMEOUT_SECONDS)


if __name__ == "__main__":
    unittest.main()
