from uuid import UUID

from fastapi import APIRouter, Depends, Query

from authgate.core.deps import get_auth_service, require_type
from authgate.schemas.auth import ChangePasswordIn, UserType, ValidatedIdentity
from authgate.schemas.users import (
    UserListOut,
    UserProfileAdminUpdate,
    UserProfileOut,
    UserProfileUpdate,
    UserStatus,
)
from authgate.services.auth_service import AuthService

router = APIRouter()
_admin_only = require_type(UserType.ADMIN)


@router.get("", response_model=UserListOut)
async def list_users(
    search: str | None = Query(default=None),
    skip: int = Query(default=0, ge=0),
    take: int = Query(default=10, ge=1, le=100),
    _admin: ValidatedIdentity = Depends(_admin_only),
    service: AuthService = Depends(get_auth_service),
):
    count, rows = await service.list_users(search, skip, take)
    return {"count": count, "skip": skip, "take": take, "data": rows}


@router.get("/me", response_model=UserProfileOut)
async def get_me(
    identity: ValidatedIdentity = Depends(require_type(UserType.USER)),
    service: AuthService = Depends(get_auth_service),
):
    return await service.users.get_by_id(identity.id)


@router.patch("/me", response_model=UserProfileOut)
async def update_me(
    payload: UserProfileUpdate,
    identity: ValidatedIdentity = Depends(require_type(UserType.USER)),
    service: AuthService = Depends(get_auth_service),
):
    return await service.update_profile(identity.id, payload.model_dump(exclude_none=True))


@router.post("/me/change-password")
async def change_my_password(
    payload: ChangePasswordIn,
    identity: ValidatedIdentity = Depends(require_type(UserType.USER)),
    service: AuthService = Depends(get_auth_service),
):
    await service.change_password(identity, payload.old_password, payload.new_password)
    return {"status": "success"}


@router.get("/{user_id}", response_model=UserProfileOut)
async def get_user(
    user_id: UUID,
    _admin: ValidatedIdentity = Depends(_admin_only),
    service: AuthService = Depends(get_auth_service),
):
    return await service.users.get_user(user_id)


@router.patch("/{user_id}", response_model=UserProfileOut)
async def update_user(
    user_id: UUID,
    payload: UserProfileAdminUpdate,
    _admin: ValidatedIdentity = Depends(_admin_only),
    service: AuthService = Depends(get_auth_service),
):
    changes = payload.model_dump(exclude_none=True, exclude={"password"})
    return await service.update_user_by_admin(user_id, changes, password=payload.password)


@router.post("/{user_id}/{status}")
async def set_user_status(
    user_id: UUID,
    status: UserStatus,
    _admin: ValidatedIdentity = Depends(_admin_only),
    service: AuthService = Depends(get_auth_service),
):
    await service.set_user_status(user_id, status.value)
    return {"status": "success"}
