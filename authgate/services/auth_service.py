from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Sequence

from starlette.concurrency import run_in_threadpool

from authgate.core.errors import (
    AccountNotFoundError,
    CredentialMismatchError,
    DuplicateTargetError,
    InvalidRequestError,
    InvalidVerificationCodeError,
    UnknownRequestTypeError,
)
from authgate.models.admin_user import AdminUser
from authgate.models.user import User
from authgate.schemas.auth import (
    Channel,
    InvalidVerifyCodeResponse,
    OtpContext,
    SendCodeRequestType,
    SendCodeResult,
    UserType,
    ValidatedIdentity,
    VerifyCodeResult,
)
from authgate.services import credentials
from authgate.services.accounts import (
    AdminAccounts,
    CredentialAccounts,
    NewUser,
    PrincipalResolver,
    UserAccounts,
)
from authgate.services.otp_engine import OtpEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistrationData:
    firstname: str
    lastname: str
    email: str
    password: str
    email_verification_code: str
    dial_code: str | None = None
    mobile: str | None = None
    country: str | None = None
    mobile_verification_code: str | None = None


class AuthService:
    def __init__(
        self,
        otp: OtpEngine,
        users: UserAccounts,
        admins: AdminAccounts,
        resolvers: Sequence[PrincipalResolver] | None = None,
    ):
        self.otp = otp
        self.users = users
        self.admins = admins
        # Login order: the first resolver that knows the email decides.
        self.resolvers: list[PrincipalResolver] = list(resolvers) if resolvers is not None else [users, admins]

    def _accounts_for(self, user_type: UserType) -> CredentialAccounts:
        return self.admins if user_type == UserType.ADMIN else self.users

    async def send_code(self, target: str, channel: Channel, request_type: SendCodeRequestType | str) -> SendCodeResult:
        if request_type != SendCodeRequestType.REGISTER:
            raise UnknownRequestTypeError("Unknown send code request type found")

        if channel == Channel.EMAIL and await self.users.is_email_exist(target):
            raise DuplicateTargetError("Email already in use")
        if channel == Channel.MOBILE and await self.users.is_mobile_exist(target):
            raise DuplicateTargetError("Mobile already in use")

        return await self.otp.send(target, channel, OtpContext.REGISTER, transport_params={"username": "User"})

    async def register(self, data: RegistrationData) -> InvalidVerifyCodeResponse | ValidatedIdentity:
        checks = [self.otp.verify(data.email_verification_code, data.email, Channel.EMAIL)]
        if data.mobile:
            checks.append(self.otp.verify(data.mobile_verification_code or "", data.mobile, Channel.MOBILE))
        results: list[VerifyCodeResult] = list(await asyncio.gather(*checks))

        email_result = results[0]
        mobile_result = results[1] if len(results) > 1 else None
        if not email_result.status or (mobile_result is not None and not mobile_result.status):
            logger.info("registration rejected: invalid verification code email=%s", data.email)
            return InvalidVerifyCodeResponse(email=email_result, mobile=mobile_result)

        user = await self.users.create(
            NewUser(
                firstname=data.firstname,
                lastname=data.lastname,
                email=data.email,
                password=data.password,
                dial_code=data.dial_code,
                mobile=data.mobile,
                country=data.country,
            )
        )
        return ValidatedIdentity(id=user.id, type=UserType.USER)

    async def login(self, email: str, password: str) -> ValidatedIdentity:
        for resolver in self.resolvers:
            principal = await resolver.resolve_by_email(email)
            if principal is None:
                continue
            if await resolver.verify_password(principal, password):
                return ValidatedIdentity(id=principal.id, type=principal.type)
            raise CredentialMismatchError("Incorrect password")
        raise AccountNotFoundError("User does not exist")

    async def _resolve_user(self, email: str | None, mobile: str | None) -> User | None:
        user = None
        if email:
            user = await self.users.find_by_email(email)
        if user is None and mobile:
            user = await self.users.find_by_mobile(mobile)
        return user

    async def forgot_password(self, email: str | None = None, mobile: str | None = None) -> dict[str, SendCodeResult]:
        if not email and not mobile:
            raise InvalidRequestError("Email or mobile is required")
        user = await self._resolve_user(email, mobile)
        if user is None:
            raise AccountNotFoundError("User does not exist")

        response: dict[str, SendCodeResult] = {}
        if mobile:
            response["mobile"] = await self.otp.send(mobile, Channel.MOBILE, OtpContext.RESET_PASSWORD)
        if email:
            response["email"] = await self.otp.send(
                email,
                Channel.EMAIL,
                OtpContext.RESET_PASSWORD,
                transport_params={"username": f"{user.firstname} {user.lastname}"},
            )
        return response

    async def reset_password(
        self,
        code: str,
        new_password: str,
        mobile: str | None = None,
        email: str | None = None,
    ) -> User:
        if not email and not mobile:
            raise InvalidRequestError("Invalid email or mobile")
        user = await self._resolve_user(email, mobile)
        if user is None:
            raise AccountNotFoundError("User not found")

        result: VerifyCodeResult | None = None
        if mobile:
            result = await self.otp.verify(code, mobile, Channel.MOBILE)
        if email:
            result = await self.otp.verify(code, email, Channel.EMAIL)
        if result is None:
            raise InvalidRequestError("Invalid email or mobile")
        if not result.status:
            raise InvalidVerificationCodeError("Incorrect verification code")

        credential = await run_in_threadpool(credentials.hash_password, new_password)
        await self.users.update_credential(user.id, credential.salt, credential.hash)
        logger.info("password reset user_id=%s", user.id)
        return user

    async def change_password(self, identity: ValidatedIdentity, old_password: str, new_password: str) -> None:
        accounts = self._accounts_for(identity.type)
        principal = await accounts.resolve_by_id(identity.id)
        if not await accounts.verify_password(principal, old_password):
            raise CredentialMismatchError("Password does not match")
        credential = await run_in_threadpool(credentials.hash_password, new_password)
        await accounts.update_credential(principal.id, credential.salt, credential.hash)

    async def authenticate_admin(self, admin_id: uuid.UUID, password: str) -> ValidatedIdentity:
        principal = await self.admins.resolve_by_id(admin_id)
        if not await self.admins.verify_password(principal, password):
            raise CredentialMismatchError("Incorrect password")
        return ValidatedIdentity(id=principal.id, type=UserType.ADMIN)

    async def update_profile(self, user_id: uuid.UUID, changes: dict[str, Any]) -> User:
        return await self.users.update_profile(user_id, changes)

    async def update_user_by_admin(
        self,
        user_id: uuid.UUID,
        changes: dict[str, Any],
        password: str | None = None,
    ) -> User:
        return await self.users.update_profile(user_id, changes, password=password)

    async def list_users(self, search: str | None = None, skip: int = 0, take: int = 10) -> tuple[int, list[User]]:
        return await self.users.list_users(search, skip, take)

    async def set_user_status(self, user_id: uuid.UUID, status: str) -> User:
        return await self.users.set_status(user_id, status)

    async def update_admin_profile(self, admin_id: uuid.UUID, changes: dict[str, Any]) -> AdminUser:
        return await self.admins.update_profile(admin_id, changes)
