from __future__ import annotations

import logging
from typing import Any

from authgate.core.config import settings

logger = logging.getLogger("authgate.sms")

MOCK_PROVIDERS = {"", "dummy", "mock", "console"}


class SmsDeliveryError(Exception):
    pass


def sms_provider() -> str:
    return str(settings.SMS_PROVIDER or "dummy").strip().lower()


def _normalize_phone_to_int(phone: str) -> int:
    digits = "".join(ch for ch in str(phone or "") if ch.isdigit())
    if not digits:
        raise SmsDeliveryError("Invalid phone number")
    return int(digits)


def build_otp_message(*, code: str, expiration: str) -> str:
    template = str(settings.OTP_SMS_TEMPLATE or "").strip() or "Your verification code is {code}"
    try:
        return template.format(code=code, expiration=expiration)
    except (KeyError, IndexError, ValueError):
        return f"Your verification code is {code}"


async def _send_sms_aero(*, phone: int, message: str) -> dict[str, Any]:
    try:
        import smsaero
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise SmsDeliveryError("smsaero-api-async is not installed") from exc

    email = str(settings.SMSAERO_EMAIL or "").strip()
    api_key = str(settings.SMSAERO_API_KEY or "").strip()
    if not email or not api_key:
        raise SmsDeliveryError("SMSAERO_EMAIL and/or SMSAERO_API_KEY are not configured")

    api = smsaero.SmsAero(email, api_key)
    try:
        result = await api.send_sms(phone, message)
    except Exception as exc:  # pragma: no cover - network/runtime branch
        raise SmsDeliveryError(f"SMS Aero delivery failed: {exc}") from exc
    finally:
        await api.close_session()
    return {"provider": "smsaero", "status": "accepted", "sent": True, "response": result}


async def send_sms_message(*, phone: str, message: str) -> dict[str, Any]:
    provider = sms_provider()
    if provider in MOCK_PROVIDERS:
        logger.warning("[SMS MOCK] phone=%s message=%s", phone, message)
        return {"provider": "mock_sms", "status": "accepted", "sent": False, "mocked": True}
    if provider in {"smsaero", "sms_aero"}:
        return await _send_sms_aero(phone=_normalize_phone_to_int(phone), message=message)
    raise SmsDeliveryError(f"Unknown SMS_PROVIDER: {provider}")
