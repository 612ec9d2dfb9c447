import asyncio
import os
import time
import unittest
from datetime import timedelta
from unittest.mock import AsyncMock, patch

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from authgate.schemas.auth import Channel, OtpContext
from authgate.services.dispatch import DeliveryGateway
from authgate.services.email_service import EmailDeliveryError
from authgate.services.mail_templates import REGISTER_VERIFICATION_CODE
from authgate.services.otp_engine import OtpConfig, OtpEngine
from authgate.services.otp_store import InMemoryOtpStore
from authgate.services.sms_service import SmsDeliveryError


class DeliveryGatewayTests(unittest.IsolatedAsyncioTestCase):
    async def test_non_production_suppresses_delivery(self):
        gateway = DeliveryGateway(production=False)
        with (
            patch("authgate.services.dispatch.send_email_message") as send_email,
            patch("authgate.services.dispatch.send_sms_message", new=AsyncMock()) as send_sms,
        ):
            await gateway.send_email("a@test.com", "Subject", REGISTER_VERIFICATION_CODE, {"code": "1"})
            await gateway.send_sms("+15550001", "1", "1 minute")
            self.assertEqual(gateway.pending_count(), 0)
            await gateway.drain()
        send_email.assert_not_called()
        send_sms.assert_not_awaited()

    async def test_production_renders_and_sends_email(self):
        gateway = DeliveryGateway(production=True)
        with patch("authgate.services.dispatch.send_email_message") as send_email:
            await gateway.send_email(
                "a@test.com",
                "Sign up verification code",
                REGISTER_VERIFICATION_CODE,
                {"username": "Ann", "code": "987654", "expiration_time": "1 minute"},
            )
            await gateway.drain()
        send_email.assert_called_once()
        kwargs = send_email.call_args.kwargs
        self.assertEqual(kwargs["email"], "a@test.com")
        self.assertEqual(kwargs["subject"], "Sign up verification code")
        self.assertIn("987654", kwargs["body"])

    async def test_production_sends_sms_with_code(self):
        gateway = DeliveryGateway(production=True)
        with patch("authgate.services.dispatch.send_sms_message", new=AsyncMock()) as send_sms:
            await gateway.send_sms("+15550001", "987654", "1 minute")
            await gateway.drain()
        send_sms.assert_awaited_once()
        self.assertEqual(send_sms.call_args.kwargs["phone"], "+15550001")
        self.assertIn("987654", send_sms.call_args.kwargs["message"])

    async def test_delivery_errors_are_logged_not_raised(self):
        gateway = DeliveryGateway(production=True)
        with (
            patch("authgate.services.dispatch.send_email_message", side_effect=EmailDeliveryError("smtp down")),
            patch(
                "authgate.services.dispatch.send_sms_message",
                new=AsyncMock(side_effect=SmsDeliveryError("sms down")),
            ),
            self.assertLogs("authgate.dispatch", level="ERROR") as logs,
        ):
            await gateway.send_email("a@test.com", "Subject", REGISTER_VERIFICATION_CODE, {"code": "1"})
            await gateway.send_sms("+15550001", "1", "1 minute")
            await gateway.drain()
        self.assertEqual(len(logs.output), 2)
        joined = "\n".join(logs.output)
        self.assertIn("smtp down", joined)
        self.assertIn("sms down", joined)

    async def test_unknown_template_is_logged(self):
        gateway = DeliveryGateway(production=True)
        with (
            patch("authgate.services.dispatch.send_email_message") as send_email,
            self.assertLogs("authgate.dispatch", level="ERROR"),
        ):
            await gateway.send_email("a@test.com", "Subject", "missing-template", {})
            await gateway.drain()
        send_email.assert_not_called()

    async def test_unexpected_failure_in_task_is_logged(self):
        gateway = DeliveryGateway(production=True)
        with (
            patch("authgate.services.dispatch.send_sms_message", new=AsyncMock(side_effect=RuntimeError("boom"))),
            self.assertLogs("authgate.dispatch", level="ERROR") as logs,
        ):
            await gateway.send_sms("+15550001", "1", "1 minute")
            await gateway.drain()
        self.assertIn("delivery task crashed", logs.output[0])
        self.assertIn("boom", logs.output[0])
        self.assertEqual(gateway.pending_count(), 0)

    async def test_send_returns_before_slow_provider_finishes(self):
        gateway = DeliveryGateway(production=True)
        config = OtpConfig(
            length=6,
            max_attempt=3,
            max_retries=3,
            timeout=timedelta(seconds=60),
            block_timeout=timedelta(hours=1),
            default_code="123456",
        )
        engine = OtpEngine(InMemoryOtpStore(), gateway, config, production=True)

        def slow_provider(**kwargs):
            time.sleep(1)

        with patch("authgate.services.dispatch.send_email_message", side_effect=slow_provider) as send_email:
            started = time.monotonic()
            result = await engine.send("slow@test.com", Channel.EMAIL, OtpContext.REGISTER)
            elapsed = time.monotonic() - started
            self.assertLess(elapsed, 0.5)
            self.assertEqual(result.attempt, 0)
            self.assertEqual(gateway.pending_count(), 1)

            await gateway.drain()
        send_email.assert_called_once()
        self.assertEqual(send_email.call_args.kwargs["email"], "slow@test.com")
        self.assertEqual(gateway.pending_count(), 0)

    async def test_drain_waits_for_every_scheduled_delivery(self):
        gateway = DeliveryGateway(production=True)
        delivered = []

        async def slow_sms(*, phone, message):
            await asyncio.sleep(0.05)
            delivered.append(phone)

        with patch("authgate.services.dispatch.send_sms_message", new=slow_sms):
            for index in range(3):
                await gateway.send_sms(f"+1555000{index}", "1", "1 minute")
            self.assertEqual(delivered, [])
            await gateway.drain()
        self.assertEqual(sorted(delivered), ["+15550000", "+15550001", "+15550002"])


if __name__ == "__main__":
    unittest.main()
