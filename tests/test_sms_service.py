import os
import unittest
from unittest.mock import AsyncMock, patch

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from authgate.core.config import settings
from authgate.services.sms_service import SmsDeliveryError, build_otp_message, send_sms_message


class SmsServiceTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._settings_backup = {
            "SMS_PROVIDER": settings.SMS_PROVIDER,
            "SMSAERO_EMAIL": settings.SMSAERO_EMAIL,
            "SMSAERO_API_KEY": settings.SMSAERO_API_KEY,
            "OTP_SMS_TEMPLATE": settings.OTP_SMS_TEMPLATE,
        }

    def tearDown(self):
        for key, value in self._settings_backup.items():
            setattr(settings, key, value)

    async def test_mock_provider_logs_message(self):
        settings.SMS_PROVIDER = "dummy"
        with self.assertLogs("authgate.sms", level="WARNING") as logs:
            payload = await send_sms_message(phone="+79990000000", message="code 111111")
        self.assertEqual(payload.get("provider"), "mock_sms")
        self.assertTrue(payload.get("mocked"))
        self.assertIn("111111", logs.output[0])

    async def test_unknown_provider_raises(self):
        settings.SMS_PROVIDER = "unknown"
        with self.assertRaises(SmsDeliveryError):
            await send_sms_message(phone="+79990000000", message="code")

    async def test_smsaero_receives_digits_only_phone(self):
        settings.SMS_PROVIDER = "smsaero"
        with patch("authgate.services.sms_service._send_sms_aero", new=AsyncMock(return_value={"provider": "smsaero"})) as send_real:
            payload = await send_sms_message(phone="+7 (999) 000-00-00", message="code")
        send_real.assert_awaited_once_with(phone=79990000000, message="code")
        self.assertEqual(payload.get("provider"), "smsaero")

    async def test_smsaero_rejects_phone_without_digits(self):
        settings.SMS_PROVIDER = "smsaero"
        with self.assertRaises(SmsDeliveryError):
            await send_sms_message(phone="not-a-phone", message="code")


class OtpMessageTests(unittest.TestCase):
    def setUp(self):
        self._template = settings.OTP_SMS_TEMPLATE

    def tearDown(self):
        settings.OTP_SMS_TEMPLATE = self._template

    def test_template_is_formatted(self):
        settings.OTP_SMS_TEMPLATE = "Code {code}, valid {expiration}"
        self.assertEqual(build_otp_message(code="123456", expiration="1 minute"), "Code 123456, valid 1 minute")

    def test_broken_template_falls_back(self):
        settings.OTP_SMS_TEMPLATE = "Code {unknown}"
        self.assertEqual(build_otp_message(code="123456", expiration="1 minute"), "Your verification code is 123456")


if __name__ == "__main__":
    unittest.main()
