from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Protocol

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from authgate.core.errors import OtpNotFoundError
from authgate.models.common import utcnow
from authgate.models.otp_record import OtpRecord
from authgate.schemas.auth import Channel
from authgate.services.key_locks import InMemoryKeyLocks, KeyLocks

_LOG = logging.getLogger("authgate.otp_store")

PATCHABLE_FIELDS = frozenset({"code_hash", "last_sent_at", "attempt", "retries", "blocked", "last_code_verified"})


@dataclass(frozen=True)
class OtpRecordState:
    channel: Channel
    target: str
    code_hash: str
    last_sent_at: datetime
    attempt: int = 0
    retries: int = 0
    blocked: bool = False
    last_code_verified: bool = False


def normalize_target(target: str | None, channel: Channel) -> str:
    value = str(target or "").strip()
    if channel == Channel.EMAIL:
        return value.lower()
    return value


def _check_patch(patch: dict[str, Any]) -> None:
    unknown = set(patch) - PATCHABLE_FIELDS
    if unknown:
        raise ValueError(f"Unsupported OTP record fields: {', '.join(sorted(unknown))}")


class OtpRecordStore(Protocol):
    async def find(self, target: str, channel: Channel) -> OtpRecordState | None:
        ...

    async def create(self, record: OtpRecordState) -> OtpRecordState:
        ...

    async def update(self, target: str, channel: Channel, patch: dict[str, Any]) -> OtpRecordState:
        ...

    def lock(self, channel: Channel, target: str) -> "AsyncIterator[None]":
        ...


class _LockingMixin:
    locks: KeyLocks

    @asynccontextmanager
    async def lock(self, channel: Channel, target: str) -> AsyncIterator[None]:
        async with self.locks.hold(f"otp:{channel.value}:{normalize_target(target, channel)}"):
            yield


class InMemoryOtpStore(_LockingMixin):
    def __init__(self, locks: KeyLocks | None = None):
        self.locks = locks or InMemoryKeyLocks()
        self._records: dict[tuple[Channel, str], OtpRecordState] = {}

    async def find(self, target: str, channel: Channel) -> OtpRecordState | None:
        return self._records.get((channel, normalize_target(target, channel)))

    async def create(self, record: OtpRecordState) -> OtpRecordState:
        record = replace(record, target=normalize_target(record.target, record.channel))
        return self._records.setdefault((record.channel, record.target), record)

    async def update(self, target: str, channel: Channel, patch: dict[str, Any]) -> OtpRecordState:
        _check_patch(patch)
        key = (channel, normalize_target(target, channel))
        current = self._records.get(key)
        if current is None:
            raise OtpNotFoundError(f"No verification code sent on {target}")
        updated = replace(current, **patch)
        self._records[key] = updated
        return updated


def _to_state(row: OtpRecord) -> OtpRecordState:
    return OtpRecordState(
        channel=Channel(row.channel),
        target=row.target,
        code_hash=row.code_hash,
        last_sent_at=row.last_sent_at,
        attempt=int(row.attempt or 0),
        retries=int(row.retries or 0),
        blocked=bool(row.blocked),
        last_code_verified=bool(row.last_code_verified),
    )


class SqlOtpStore(_LockingMixin):
    """OTP records in the ``otp_records`` table.

    Every call opens its own session and commits before returning, so a
    single ``update`` is all-or-nothing. Callers serialize read-modify-write
    cycles per key with :meth:`lock`.
    """

    def __init__(self, session_factory: Callable[[], Session], locks: KeyLocks | None = None):
        self.session_factory = session_factory
        self.locks = locks or InMemoryKeyLocks()

    def _query(self, db: Session, target: str, channel: Channel):
        return db.query(OtpRecord).filter(
            OtpRecord.channel == channel.value,
            OtpRecord.target == normalize_target(target, channel),
        )

    def _find_sync(self, target: str, channel: Channel) -> OtpRecordState | None:
        with self.session_factory() as db:
            row = self._query(db, target, channel).first()
            return _to_state(row) if row is not None else None

    def _create_sync(self, record: OtpRecordState) -> OtpRecordState:
        with self.session_factory() as db:
            row = OtpRecord(
                channel=record.channel.value,
                target=normalize_target(record.target, record.channel),
                code_hash=record.code_hash,
                last_sent_at=record.last_sent_at,
                attempt=record.attempt,
                retries=record.retries,
                blocked=record.blocked,
                last_code_verified=record.last_code_verified,
            )
            db.add(row)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                _LOG.info("otp record for %s/%s created concurrently", record.channel.value, record.target)
                existing = self._query(db, record.target, record.channel).first()
                if existing is None:
                    raise
                return _to_state(existing)
            db.refresh(row)
            return _to_state(row)

    def _update_sync(self, target: str, channel: Channel, patch: dict[str, Any]) -> OtpRecordState:
        _check_patch(patch)
        with self.session_factory() as db:
            row = self._query(db, target, channel).with_for_update().first()
            if row is None:
                raise OtpNotFoundError(f"No verification code sent on {target}")
            for key, value in patch.items():
                setattr(row, key, value)
            row.updated_at = utcnow()
            db.add(row)
            db.commit()
            db.refresh(row)
            return _to_state(row)

    async def find(self, target: str, channel: Channel) -> OtpRecordState | None:
        return await run_in_threadpool(self._find_sync, target, channel)

    async def create(self, record: OtpRecordState) -> OtpRecordState:
        return await run_in_threadpool(self._create_sync, record)

    async def update(self, target: str, channel: Channel, patch: dict[str, Any]) -> OtpRecordState:
        return await run_in_threadpool(self._update_sync, target, channel, patch)
