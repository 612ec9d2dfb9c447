from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class Channel(str, Enum):
    EMAIL = "EMAIL"
    MOBILE = "MOBILE"


class OtpContext(str, Enum):
    REGISTER = "REGISTER"
    RESET_PASSWORD = "RESET_PASSWORD"


class SendCodeRequestType(str, Enum):
    REGISTER = "REGISTER"


class UserType(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"


class ValidatedIdentity(BaseModel):
    id: UUID
    type: UserType


class SendCodeResult(BaseModel):
    sent_at: datetime
    timeout: int  # seconds
    attempt: int
    max_attempt: int


class VerifyCodeResult(BaseModel):
    status: bool
    retries: int
    max_retries: int


class InvalidVerifyCodeResponse(BaseModel):
    email: VerifyCodeResult
    mobile: Optional[VerifyCodeResult] = None


class SendCodeIn(BaseModel):
    email: Optional[str] = None
    mobile: Optional[str] = None
    country: Optional[str] = None
    # Unknown types are rejected by the service, not by validation.
    type: str = SendCodeRequestType.REGISTER.value

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value):
        return str(value or "").strip().upper()


class SendCodeOut(BaseModel):
    email: Optional[SendCodeResult] = None
    mobile: Optional[SendCodeResult] = None


class RegisterIn(BaseModel):
    firstname: str = Field(min_length=1, max_length=100)
    lastname: str = Field(min_length=1, max_length=100)
    email: str
    password: str = Field(min_length=6)
    dial_code: Optional[str] = None
    mobile: Optional[str] = None
    country: Optional[str] = None
    email_verification_code: str
    mobile_verification_code: Optional[str] = None


class LoginIn(BaseModel):
    email: str
    password: str


class AuthTokenOut(BaseModel):
    status: str = "success"
    access_token: str
    token_type: str = "Bearer"
    type: UserType


class ForgotPasswordIn(BaseModel):
    email: Optional[str] = None
    mobile: Optional[str] = None


class ResetPasswordIn(BaseModel):
    code: str
    new_password: str = Field(min_length=6)
    email: Optional[str] = None
    mobile: Optional[str] = None


class ChangePasswordIn(BaseModel):
    old_password: str
    new_password: str = Field(min_length=6)


class AuthenticateIn(BaseModel):
    password: str
