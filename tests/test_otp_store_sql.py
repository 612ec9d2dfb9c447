import os
import shutil
import tempfile
import unittest
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine, delete
from sqlalchemy.orm import sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from authgate.core.errors import OtpBlockedError, OtpNotFoundError
from authgate.models.otp_record import OtpRecord
from authgate.schemas.auth import Channel, OtpContext
from authgate.services.otp_engine import OtpConfig, OtpEngine
from authgate.services.otp_store import OtpRecordState, SqlOtpStore


class NullGateway:
    async def send_email(self, target, subject, template_name, template_data):
        return None

    async def send_sms(self, target, code, expiration_label):
        return None


class SqlOtpStoreTests(unittest.IsolatedAsyncioTestCase):
    @classmethod
    def setUpClass(cls):
        cls.tmpdir = tempfile.mkdtemp(prefix="authgate-otp-")
        cls.engine = create_engine(
            f"sqlite+pysqlite:///{os.path.join(cls.tmpdir, 'otp.db')}",
            connect_args={"check_same_thread": False},
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autocommit=False, autoflush=False)
        OtpRecord.__table__.create(bind=cls.engine)

    @classmethod
    def tearDownClass(cls):
        cls.engine.dispose()
        shutil.rmtree(cls.tmpdir, ignore_errors=True)

    def setUp(self):
        with self.SessionLocal() as db:
            db.execute(delete(OtpRecord))
            db.commit()
        self.store = SqlOtpStore(self.SessionLocal)

    def _state(self, target="user@test.com", code_hash="hash-1"):
        return OtpRecordState(
            channel=Channel.EMAIL,
            target=target,
            code_hash=code_hash,
            last_sent_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )

    async def test_create_and_find_normalizes_email(self):
        created = await self.store.create(self._state(target="User@Test.com"))
        self.assertEqual(created.target, "user@test.com")

        found = await self.store.find(" USER@test.com", Channel.EMAIL)
        self.assertIsNotNone(found)
        self.assertEqual(found.code_hash, "hash-1")
        self.assertEqual(found.attempt, 0)
        self.assertIsNone(await self.store.find("user@test.com", Channel.MOBILE))

    async def test_second_create_returns_existing_record(self):
        await self.store.create(self._state(code_hash="hash-1"))
        again = await self.store.create(self._state(code_hash="hash-2"))
        self.assertEqual(again.code_hash, "hash-1")

    async def test_update_applies_patch(self):
        await self.store.create(self._state())
        updated = await self.store.update("user@test.com", Channel.EMAIL, {"attempt": 2, "blocked": True})
        self.assertEqual(updated.attempt, 2)
        self.assertTrue(updated.blocked)

    async def test_update_rejects_unknown_fields(self):
        await self.store.create(self._state())
        with self.assertRaises(ValueError):
            await self.store.update("user@test.com", Channel.EMAIL, {"target": "x@test.com"})

    async def test_update_missing_record_raises(self):
        with self.assertRaises(OtpNotFoundError):
            await self.store.update("none@test.com", Channel.EMAIL, {"attempt": 1})

    async def test_engine_round_trip_on_sql_store(self):
        clock_now = [datetime.now(timezone.utc)]
        config = OtpConfig(
            length=6,
            max_attempt=3,
            max_retries=2,
            timeout=timedelta(seconds=60),
            block_timeout=timedelta(hours=1),
            default_code="123456",
        )
        engine = OtpEngine(self.store, NullGateway(), config, clock=lambda: clock_now[0], production=False)

        await engine.send("+15550002", Channel.MOBILE, OtpContext.REGISTER)
        first = await engine.verify("111111", "+15550002", Channel.MOBILE)
        self.assertFalse(first.status)
        second = await engine.verify("222222", "+15550002", Channel.MOBILE)
        self.assertEqual(second.retries, 2)
        with self.assertRaises(OtpBlockedError):
            await engine.verify("123456", "+15550002", Channel.MOBILE)

    async def test_engine_attempt_ceiling_on_sql_store(self):
        clock_now = [datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)]
        config = OtpConfig(
            length=6,
            max_attempt=2,
            max_retries=3,
            timeout=timedelta(seconds=60),
            block_timeout=timedelta(hours=1),
            default_code="123456",
        )
        engine = OtpEngine(self.store, NullGateway(), config, clock=lambda: clock_now[0], production=False)

        def advance(seconds):
            clock_now[0] = clock_now[0] + timedelta(seconds=seconds)

        await engine.send("ceiling@test.com", Channel.EMAIL, OtpContext.REGISTER)
        for expected in (1, 2):
            advance(61)
            sent = await engine.send("ceiling@test.com", Channel.EMAIL, OtpContext.REGISTER)
            self.assertEqual(sent.attempt, expected)

        advance(61)
        with self.assertRaises(OtpBlockedError):
            await engine.send("ceiling@test.com", Channel.EMAIL, OtpContext.REGISTER)
        stored = await self.store.find("ceiling@test.com", Channel.EMAIL)
        self.assertTrue(stored.blocked)
        self.assertEqual(stored.attempt, 2)

        advance(3600)
        reopened = await engine.send("ceiling@test.com", Channel.EMAIL, OtpContext.REGISTER)
        self.assertEqual(reopened.attempt, 1)
        stored = await self.store.find("ceiling@test.com", Channel.EMAIL)
        self.assertFalse(stored.blocked)


if __name__ == "__main__":
    unittest.main()
