from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from authgate.core.errors import (
    AccountNotFoundError,
    DuplicateTargetError,
    InvalidRequestError,
    InvalidUsernameError,
    RecordNotFoundError,
)
from authgate.db.session import SessionLocal
from authgate.models.admin_user import AdminUser
from authgate.models.common import utcnow
from authgate.models.user import User
from authgate.schemas.auth import UserType
from authgate.services import credentials
from authgate.services.credentials import PasswordHash

logger = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"^[a-z][a-z0-9_]{3,20}$")
PROFILE_FIELDS = ("username", "firstname", "lastname", "email", "dial_code", "mobile", "country")
ADMIN_PROFILE_FIELDS = ("firstname", "lastname", "email")
USER_STATUSES = ("ACTIVE", "BLOCKED")


def normalize_email(raw: str | None) -> str:
    return str(raw or "").strip().lower()


def normalize_mobile(raw: str | None) -> str:
    return str(raw or "").strip()


@dataclass(frozen=True)
class Principal:
    id: uuid.UUID
    type: UserType
    email: str
    password_salt: str | None
    password_hash: str | None


class PrincipalResolver(Protocol):
    user_type: UserType

    async def resolve_by_email(self, email: str) -> Principal | None:
        ...

    async def verify_password(self, principal: Principal, password: str) -> bool:
        ...


@dataclass(frozen=True)
class NewUser:
    firstname: str
    lastname: str
    email: str
    password: str | None = None
    dial_code: str | None = None
    mobile: str | None = None
    country: str | None = None


class CredentialAccounts:
    """Lookups and credential updates shared by users and administrators."""

    model: Any = None
    user_type: UserType

    def __init__(self, session_factory: Callable[[], Session] | None = None):
        self.session_factory = session_factory or SessionLocal

    def _to_principal(self, row) -> Principal:
        return Principal(
            id=row.id,
            type=self.user_type,
            email=row.email,
            password_salt=row.password_salt,
            password_hash=row.password_hash,
        )

    def _by_email(self, db: Session, email: str):
        normalized = normalize_email(email)
        if not normalized:
            return None
        return db.query(self.model).filter(func.lower(self.model.email) == normalized).first()

    def _find_by_email_sync(self, email: str):
        with self.session_factory() as db:
            return self._by_email(db, email)

    def _get_by_id_sync(self, account_id: uuid.UUID):
        with self.session_factory() as db:
            row = db.get(self.model, account_id)
            if row is None:
                raise AccountNotFoundError(f"{self.user_type.value.capitalize()} not found")
            return row

    def _taken(self, db: Session, column, value: str, exclude_id: uuid.UUID | None = None) -> bool:
        query = db.query(self.model.id).filter(column == value)
        if exclude_id is not None:
            query = query.filter(self.model.id != exclude_id)
        return query.first() is not None

    def _email_taken(self, db: Session, email: str, exclude_id: uuid.UUID | None = None) -> bool:
        return self._taken(db, func.lower(self.model.email), normalize_email(email), exclude_id)

    def _is_email_exist_sync(self, email: str, exclude_id: uuid.UUID | None = None) -> bool:
        with self.session_factory() as db:
            return self._email_taken(db, email, exclude_id)

    def _update_credential_sync(self, account_id: uuid.UUID, salt: str, password_hash: str) -> None:
        with self.session_factory() as db:
            row = db.get(self.model, account_id)
            if row is None:
                raise AccountNotFoundError(f"{self.user_type.value.capitalize()} not found")
            row.password_salt = salt
            row.password_hash = password_hash
            row.updated_at = utcnow()
            db.add(row)
            db.commit()

    async def find_by_email(self, email: str):
        return await run_in_threadpool(self._find_by_email_sync, email)

    async def get_by_id(self, account_id: uuid.UUID):
        return await run_in_threadpool(self._get_by_id_sync, account_id)

    async def is_email_exist(self, email: str, exclude_id: uuid.UUID | None = None) -> bool:
        return await run_in_threadpool(self._is_email_exist_sync, email, exclude_id)

    async def update_credential(self, account_id: uuid.UUID, salt: str, password_hash: str) -> None:
        await run_in_threadpool(self._update_credential_sync, account_id, salt, password_hash)

    async def resolve_by_email(self, email: str) -> Principal | None:
        row = await self.find_by_email(email)
        return self._to_principal(row) if row is not None else None

    async def resolve_by_id(self, account_id: uuid.UUID) -> Principal:
        return self._to_principal(await self.get_by_id(account_id))

    async def verify_password(self, principal: Principal, password: str) -> bool:
        # Hash length comes from the stored value so older records keep working.
        return await run_in_threadpool(
            credentials.verify_password,
            password,
            principal.password_salt,
            principal.password_hash,
        )


class AdminAccounts(CredentialAccounts):
    model = AdminUser
    user_type = UserType.ADMIN

    def _create_sync(self, *, firstname: str, lastname: str, email: str, credential: PasswordHash) -> AdminUser:
        with self.session_factory() as db:
            row = AdminUser(
                firstname=firstname,
                lastname=lastname,
                email=normalize_email(email),
                password_salt=credential.salt,
                password_hash=credential.hash,
            )
            db.add(row)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise DuplicateTargetError("Email already exist") from exc
            db.refresh(row)
            return row

    def _update_profile_sync(self, admin_id: uuid.UUID, changes: dict[str, Any]) -> AdminUser:
        with self.session_factory() as db:
            row = db.get(AdminUser, admin_id)
            if row is None:
                raise AccountNotFoundError("Admin not found")
            email = changes.get("email")
            if email and self._email_taken(db, email, row.id):
                raise DuplicateTargetError("Email already exist")
            for field in ADMIN_PROFILE_FIELDS:
                value = changes.get(field)
                if value is None:
                    continue
                setattr(row, field, normalize_email(value) if field == "email" else value)
            row.updated_at = utcnow()
            db.add(row)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise DuplicateTargetError("Email already exist") from exc
            db.refresh(row)
            return row

    async def create(self, *, firstname: str, lastname: str, email: str, password: str) -> AdminUser:
        credential = await run_in_threadpool(credentials.hash_password, password)
        return await run_in_threadpool(
            self._create_sync, firstname=firstname, lastname=lastname, email=email, credential=credential
        )

    async def update_profile(self, admin_id: uuid.UUID, changes: dict[str, Any]) -> AdminUser:
        return await run_in_threadpool(self._update_profile_sync, admin_id, changes)


class UserAccounts(CredentialAccounts):
    model = User
    user_type = UserType.USER

    def _mobile_taken(self, db: Session, mobile: str, exclude_id: uuid.UUID | None = None) -> bool:
        return self._taken(db, User.mobile, normalize_mobile(mobile), exclude_id)

    def _username_taken(self, db: Session, username: str, exclude_id: uuid.UUID | None = None) -> bool:
        return self._taken(db, User.username, str(username or "").strip().lower(), exclude_id)

    def _is_mobile_exist_sync(self, mobile: str, exclude_id: uuid.UUID | None = None) -> bool:
        with self.session_factory() as db:
            return self._mobile_taken(db, mobile, exclude_id)

    def _get_user_sync(self, user_id: uuid.UUID) -> User:
        with self.session_factory() as db:
            row = db.get(User, user_id)
            if row is None:
                raise RecordNotFoundError("User not found")
            return row

    def _list_sync(self, search: str | None, skip: int, take: int) -> tuple[int, list[User]]:
        with self.session_factory() as db:
            query = db.query(User)
            # Every word has to appear in at least one of the name fields.
            for part in str(search or "").split():
                needle = part.lower()
                query = query.filter(
                    or_(
                        func.lower(User.firstname).contains(needle, autoescape=True),
                        func.lower(User.lastname).contains(needle, autoescape=True),
                        func.lower(User.username).contains(needle, autoescape=True),
                        func.lower(User.email).contains(needle, autoescape=True),
                    )
                )
            count = query.count()
            rows = query.order_by(User.created_at.desc()).offset(skip).limit(take).all()
            return count, rows

    def _set_status_sync(self, user_id: uuid.UUID, status: str) -> User:
        with self.session_factory() as db:
            row = db.get(User, user_id)
            if row is None:
                raise RecordNotFoundError("User not found")
            row.status = status
            row.updated_at = utcnow()
            db.add(row)
            db.commit()
            db.refresh(row)
            return row

    def _find_by_mobile_sync(self, mobile: str) -> User | None:
        normalized = normalize_mobile(mobile)
        if not normalized:
            return None
        with self.session_factory() as db:
            return db.query(User).filter(User.mobile == normalized).first()

    def _create_sync(self, profile: NewUser, credential: PasswordHash | None) -> User:
        with self.session_factory() as db:
            if self._by_email(db, profile.email) is not None:
                raise DuplicateTargetError("Email already exist")
            mobile = normalize_mobile(profile.mobile) or None
            if mobile and self._mobile_taken(db, mobile):
                raise DuplicateTargetError("Mobile already exist")
            row = User(
                firstname=profile.firstname,
                lastname=profile.lastname,
                email=normalize_email(profile.email),
                dial_code=profile.dial_code,
                mobile=mobile,
                country=profile.country,
                password_salt=credential.salt if credential else None,
                password_hash=credential.hash if credential else None,
            )
            db.add(row)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise DuplicateTargetError("Email or mobile already exist") from exc
            db.refresh(row)
            return row

    def _apply_profile(self, db: Session, row: User, changes: dict[str, Any]) -> None:
        email = changes.get("email")
        username = changes.get("username")
        mobile = changes.get("mobile")

        if email and self._email_taken(db, email, row.id):
            raise DuplicateTargetError("Email already exist")
        if username is not None and not USERNAME_RE.fullmatch(str(username)):
            raise InvalidUsernameError("Invalid username")
        if username and self._username_taken(db, username, row.id):
            raise DuplicateTargetError("Username already exist")
        if mobile and self._mobile_taken(db, mobile, row.id):
            raise DuplicateTargetError("Mobile already exist")

        for field in PROFILE_FIELDS:
            value = changes.get(field)
            if value is None:
                continue
            if field == "email":
                value = normalize_email(value)
            elif field == "username":
                value = str(value).lower()
            elif field == "mobile":
                value = normalize_mobile(value)
            setattr(row, field, value)
        row.updated_at = utcnow()

    def _update_profile_sync(
        self,
        user_id: uuid.UUID,
        changes: dict[str, Any],
        credential: PasswordHash | None,
    ) -> User:
        with self.session_factory() as db:
            try:
                row = db.get(User, user_id)
                if row is None:
                    raise AccountNotFoundError("User not found")
                self._apply_profile(db, row, changes)
                if credential is not None:
                    row.password_salt = credential.salt
                    row.password_hash = credential.hash
                db.add(row)
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise DuplicateTargetError("Email, username or mobile already exist") from exc
            except Exception:
                db.rollback()
                raise
            db.refresh(row)
            return row

    async def find_by_mobile(self, mobile: str) -> User | None:
        return await run_in_threadpool(self._find_by_mobile_sync, mobile)

    async def is_mobile_exist(self, mobile: str, exclude_id: uuid.UUID | None = None) -> bool:
        return await run_in_threadpool(self._is_mobile_exist_sync, mobile, exclude_id)

    async def get_user(self, user_id: uuid.UUID) -> User:
        return await run_in_threadpool(self._get_user_sync, user_id)

    async def list_users(self, search: str | None = None, skip: int = 0, take: int = 10) -> tuple[int, list[User]]:
        return await run_in_threadpool(self._list_sync, search, max(int(skip), 0), max(int(take), 0))

    async def set_status(self, user_id: uuid.UUID, status: str) -> User:
        if status not in USER_STATUSES:
            raise InvalidRequestError(f"Unknown user status {status}")
        user = await run_in_threadpool(self._set_status_sync, user_id, status)
        logger.info("user status changed id=%s status=%s", user.id, status)
        return user

    async def create(self, profile: NewUser) -> User:
        credential = None
        if profile.password:
            credential = await run_in_threadpool(credentials.hash_password, profile.password)
        user = await run_in_threadpool(self._create_sync, profile, credential)
        logger.info("user created id=%s", user.id)
        return user

    async def update_profile(
        self,
        user_id: uuid.UUID,
        changes: dict[str, Any],
        *,
        password: str | None = None,
    ) -> User:
        """Apply profile changes and an optional new password in one transaction."""
        credential = None
        if password:
            credential = await run_in_threadpool(credentials.hash_password, password)
        return await run_in_threadpool(self._update_profile_sync, user_id, changes, credential)
