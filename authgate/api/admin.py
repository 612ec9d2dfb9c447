from fastapi import APIRouter, Depends

from authgate.core.deps import get_auth_service, require_type
from authgate.schemas.auth import AuthenticateIn, ChangePasswordIn, UserType, ValidatedIdentity
from authgate.schemas.users import AdminProfileOut, AdminProfileUpdate
from authgate.services.auth_service import AuthService

router = APIRouter()
_admin_only = require_type(UserType.ADMIN)


@router.get("", response_model=AdminProfileOut)
async def get_profile(
    identity: ValidatedIdentity = Depends(_admin_only),
    service: AuthService = Depends(get_auth_service),
):
    return await service.admins.get_by_id(identity.id)


@router.patch("")
async def update_profile(
    payload: AdminProfileUpdate,
    identity: ValidatedIdentity = Depends(_admin_only),
    service: AuthService = Depends(get_auth_service),
):
    await service.update_admin_profile(identity.id, payload.model_dump(exclude_none=True))
    return {"status": "success"}


@router.post("/change-password")
async def change_password(
    payload: ChangePasswordIn,
    identity: ValidatedIdentity = Depends(_admin_only),
    service: AuthService = Depends(get_auth_service),
):
    await service.change_password(identity, payload.old_password, payload.new_password)
    return {"status": "success"}


@router.post("/authenticate")
async def authenticate(
    payload: AuthenticateIn,
    identity: ValidatedIdentity = Depends(_admin_only),
    service: AuthService = Depends(get_auth_service),
):
    await service.authenticate_admin(identity.id, payload.password)
    return {"status": "success"}
