"""Best-effort delivery of verification codes.

``send_email`` and ``send_sms`` only schedule delivery on the running event
loop and return at once, so a slow or unreachable provider never holds up
a ``send``. Provider failures are logged and dropped. Outside production
delivery mode both methods are no-ops. ``drain`` waits for scheduled
deliveries and is awaited on application shutdown.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Protocol

from starlette.concurrency import run_in_threadpool

from authgate.core.config import settings
from authgate.services.email_service import EmailDeliveryError, send_email_message
from authgate.services.mail_templates import UnknownTemplateError, render_template
from authgate.services.sms_service import SmsDeliveryError, build_otp_message, send_sms_message

logger = logging.getLogger("authgate.dispatch")


class DispatchGateway(Protocol):
    async def send_email(self, target: str, subject: str, template_name: str, template_data: dict[str, Any]) -> None:
        ...

    async def send_sms(self, target: str, code: str, expiration_label: str) -> None:
        ...


class DeliveryGateway:
    def __init__(self, *, production: bool | None = None):
        self._production = production
        self._pending: set[asyncio.Task] = set()

    def delivery_enabled(self) -> bool:
        if self._production is not None:
            return self._production
        return settings.is_production_app()

    def pending_count(self) -> int:
        return len(self._pending)

    def _spawn(self, coro: Coroutine[Any, Any, None], label: str) -> None:
        task = asyncio.create_task(coro, name=f"authgate-delivery:{label}")
        self._pending.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning("delivery task cancelled name=%s", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error("delivery task crashed name=%s error=%s", task.get_name(), exc, exc_info=exc)

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver_email(self, target: str, subject: str, template_name: str, template_data: dict[str, Any]) -> None:
        try:
            body = render_template(template_name, template_data)
            await run_in_threadpool(send_email_message, email=target, subject=subject, body=body)
        except (EmailDeliveryError, UnknownTemplateError) as exc:
            logger.error("email delivery failed target=%s template=%s error=%s", target, template_name, exc)

    async def _deliver_sms(self, target: str, code: str, expiration_label: str) -> None:
        try:
            await send_sms_message(phone=target, message=build_otp_message(code=code, expiration=expiration_label))
        except SmsDeliveryError as exc:
            logger.error("sms delivery failed target=%s error=%s", target, exc)

    async def send_email(self, target: str, subject: str, template_name: str, template_data: dict[str, Any]) -> None:
        if not self.delivery_enabled():
            logger.debug("email delivery suppressed target=%s template=%s", target, template_name)
            return
        self._spawn(self._deliver_email(target, subject, template_name, dict(template_data)), f"email:{target}")

    async def send_sms(self, target: str, code: str, expiration_label: str) -> None:
        if not self.delivery_enabled():
            logger.debug("sms delivery suppressed target=%s", target)
            return
        self._spawn(self._deliver_sms(target, code, expiration_label), f"sms:{target}")
