from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class UserProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    firstname: str
    lastname: str
    username: Optional[str] = None
    email: str
    dial_code: Optional[str] = None
    mobile: Optional[str] = None
    country: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None


class AdminProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    firstname: str
    lastname: str
    email: str
    status: str


class UserProfileUpdate(BaseModel):
    username: Optional[str] = None
    firstname: Optional[str] = Field(default=None, min_length=1, max_length=100)
    lastname: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[str] = None
    dial_code: Optional[str] = None
    mobile: Optional[str] = None
    country: Optional[str] = None


class UserProfileAdminUpdate(UserProfileUpdate):
    password: Optional[str] = Field(default=None, min_length=6)


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    BLOCKED = "BLOCKED"


class UserListOut(BaseModel):
    count: int
    skip: int
    take: int
    data: list[UserProfileOut]


class AdminProfileUpdate(BaseModel):
    firstname: Optional[str] = Field(default=None, min_length=1, max_length=100)
    lastname: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[str] = None
