"""One-time verification code lifecycle.

A single record per (channel, target) tracks the active code together with
two counters: ``attempt`` counts resend cycles and ``retries`` counts wrong
codes against the current one. Reaching either ceiling blocks the record;
a block lifts on the next ``send`` once ``block_timeout`` has passed since
the last dispatch. ``timeout`` is both the resend cooldown and the validity
window of a code.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

from starlette.concurrency import run_in_threadpool

from authgate.core.config import settings
from authgate.core.errors import (
    InvalidRequestError,
    OtpBlockedError,
    OtpExpiredError,
    OtpNotFoundError,
    OtpResendTooSoonError,
)
from authgate.core.security import hash_otp_code, verify_otp_code
from authgate.models.common import utcnow
from authgate.schemas.auth import Channel, OtpContext, SendCodeResult, VerifyCodeResult
from authgate.services.dispatch import DispatchGateway
from authgate.services.durations import duration_to_human
from authgate.services.mail_templates import REGISTER_VERIFICATION_CODE, RESET_PASSWORD_VERIFICATION_CODE
from authgate.services.otp_store import OtpRecordState, OtpRecordStore, normalize_target

logger = logging.getLogger(__name__)

_MAIL_BY_CONTEXT = {
    OtpContext.REGISTER: ("Sign up verification code", REGISTER_VERIFICATION_CODE),
    OtpContext.RESET_PASSWORD: ("Reset password verification code", RESET_PASSWORD_VERIFICATION_CODE),
}


@dataclass(frozen=True)
class OtpOverrides:
    length: int | None = None
    max_attempt: int | None = None
    max_retries: int | None = None
    timeout: timedelta | None = None
    block_timeout: timedelta | None = None


@dataclass(frozen=True)
class OtpConfig:
    length: int
    max_attempt: int
    max_retries: int
    timeout: timedelta
    block_timeout: timedelta
    default_code: str

    @classmethod
    def from_settings(cls) -> "OtpConfig":
        return cls(
            length=int(settings.OTP_CODE_LENGTH),
            max_attempt=int(settings.OTP_MAX_ATTEMPT),
            max_retries=int(settings.OTP_MAX_RETRIES),
            timeout=timedelta(seconds=int(settings.OTP_RESEND_TIMEOUT_SECONDS)),
            block_timeout=timedelta(seconds=int(settings.OTP_BLOCK_TIMEOUT_SECONDS)),
            default_code=str(settings.OTP_DEFAULT_CODE),
        )

    def merge(self, overrides: OtpOverrides | None) -> "OtpConfig":
        if overrides is None:
            return self
        return replace(
            self,
            length=overrides.length or self.length,
            max_attempt=overrides.max_attempt or self.max_attempt,
            max_retries=overrides.max_retries or self.max_retries,
            timeout=overrides.timeout or self.timeout,
            block_timeout=overrides.block_timeout or self.block_timeout,
        )


def generate_code(length: int, *, production: bool, default_code: str) -> str:
    if not production:
        return default_code
    length = max(int(length), 1)
    return f"{secrets.randbelow(10**length):0{length}d}"


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class OtpEngine:
    def __init__(
        self,
        store: OtpRecordStore,
        gateway: DispatchGateway,
        config: OtpConfig | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
        production: bool | None = None,
    ):
        self.store = store
        self.gateway = gateway
        self.config = config or OtpConfig.from_settings()
        self.clock = clock
        self._production = production

    def _is_production(self) -> bool:
        if self._production is not None:
            return self._production
        return settings.is_production_app()

    def _elapsed(self, since: datetime) -> timedelta:
        # A timestamp ahead of the local clock counts as "just sent".
        return max(_as_utc(self.clock()) - _as_utc(since), timedelta(0))

    def _is_timeout(self, since: datetime, timeout: timedelta) -> bool:
        return self._elapsed(since) > timeout

    @staticmethod
    def _blocked_error(target: str, block_timeout: timedelta) -> OtpBlockedError:
        duration = duration_to_human(block_timeout, max_unit="hour")
        return OtpBlockedError(
            f"{target} temporary blocked for {duration}, due to max wrong attempts or failed retries"
        )

    async def send(
        self,
        target: str,
        channel: Channel,
        context: OtpContext,
        transport_params: Mapping[str, Any] | None = None,
        overrides: OtpOverrides | None = None,
    ) -> SendCodeResult:
        config = self.config.merge(overrides)
        normalized = normalize_target(target, channel)
        if not normalized:
            raise InvalidRequestError(f"Missing {channel.value.lower()} target")

        code = generate_code(config.length, production=self._is_production(), default_code=config.default_code)
        code_hash = await run_in_threadpool(hash_otp_code, code)

        async with self.store.lock(channel, normalized):
            record = await self.store.find(normalized, channel)
            now = self.clock()
            if record is None:
                record = await self.store.create(
                    OtpRecordState(channel=channel, target=normalized, code_hash=code_hash, last_sent_at=now)
                )
                if record.code_hash != code_hash:
                    raise OtpResendTooSoonError(
                        f"Resend verification code on {target} not allowed with in {duration_to_human(config.timeout)}"
                    )
            else:
                block_elapsed = self._is_timeout(record.last_sent_at, config.block_timeout)
                if record.blocked and not block_elapsed:
                    raise self._blocked_error(target, config.block_timeout)

                if not self._is_timeout(record.last_sent_at, config.timeout) and not record.last_code_verified:
                    raise OtpResendTooSoonError(
                        f"Resend verification code on {target} not allowed with in {duration_to_human(config.timeout)}"
                    )

                attempt = 0 if block_elapsed or record.last_code_verified else record.attempt
                if attempt >= config.max_attempt:
                    await self.store.update(normalized, channel, {"blocked": True})
                    logger.warning("otp send blocked channel=%s target=%s attempt=%s", channel.value, normalized, attempt)
                    raise self._blocked_error(target, config.block_timeout)

                record = await self.store.update(
                    normalized,
                    channel,
                    {
                        "code_hash": code_hash,
                        "last_sent_at": now,
                        "attempt": attempt + 1,
                        "retries": 0,
                        "blocked": False,
                        "last_code_verified": False,
                    },
                )

        await self._dispatch(
            target=normalized,
            channel=channel,
            context=context,
            code=code,
            timeout=config.timeout,
            transport_params=transport_params,
        )
        logger.info("otp sent channel=%s target=%s attempt=%s", channel.value, normalized, record.attempt)
        return SendCodeResult(
            sent_at=_as_utc(record.last_sent_at),
            timeout=int(config.timeout.total_seconds()),
            attempt=record.attempt,
            max_attempt=config.max_attempt,
        )

    def _verifiable(self, record: OtpRecordState | None, target: str, config: OtpConfig) -> OtpRecordState:
        if record is None:
            raise OtpNotFoundError(f"No verification code sent on {target}")
        if record.blocked:
            raise self._blocked_error(target, config.block_timeout)
        if self._is_timeout(record.last_sent_at, config.timeout):
            raise OtpExpiredError(f"Verification code for {target} expired, Try resend")
        return record

    async def verify(
        self,
        code: str,
        target: str,
        channel: Channel,
        overrides: OtpOverrides | None = None,
    ) -> VerifyCodeResult:
        config = self.config.merge(overrides)
        normalized = normalize_target(target, channel)

        async with self.store.lock(channel, normalized):
            record = self._verifiable(await self.store.find(normalized, channel), target, config)
            issued_hash = record.code_hash

        # Hash comparison runs outside the lock; the outcome is applied to a fresh read.
        matched = await run_in_threadpool(verify_otp_code, str(code or "").strip(), issued_hash)

        async with self.store.lock(channel, normalized):
            record = self._verifiable(await self.store.find(normalized, channel), target, config)
            # A code replaced by a newer send in the meantime no longer counts.
            matched = matched and record.code_hash == issued_hash
            if matched:
                record = await self.store.update(normalized, channel, {"last_code_verified": True})
            else:
                retries = record.retries + 1
                record = await self.store.update(
                    normalized,
                    channel,
                    {"retries": retries, "blocked": retries >= config.max_retries},
                )
                if record.blocked:
                    logger.warning("otp verify blocked channel=%s target=%s retries=%s", channel.value, normalized, retries)

        return VerifyCodeResult(status=matched, retries=record.retries, max_retries=config.max_retries)

    async def _dispatch(
        self,
        *,
        target: str,
        channel: Channel,
        context: OtpContext,
        code: str,
        timeout: timedelta,
        transport_params: Mapping[str, Any] | None,
    ) -> None:
        expiration = duration_to_human(timeout)
        if channel == Channel.MOBILE:
            await self.gateway.send_sms(target, code, expiration)
            return
        subject, template_name = _MAIL_BY_CONTEXT[context]
        username = str((transport_params or {}).get("username") or "User")
        await self.gateway.send_email(
            target,
            subject,
            template_name,
            {"username": username, "code": code, "expiration_time": expiration},
        )
