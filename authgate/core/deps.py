from typing import Callable

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy.orm import Session

from authgate.core.config import settings
from authgate.core.security import decode_jwt
from authgate.db.session import SessionLocal
from authgate.schemas.auth import UserType, ValidatedIdentity
from authgate.services.accounts import AdminAccounts, UserAccounts
from authgate.services.auth_service import AuthService
from authgate.services.dispatch import DeliveryGateway
from authgate.services.key_locks import get_key_locks
from authgate.services.otp_engine import OtpEngine
from authgate.services.otp_store import SqlOtpStore

bearer = HTTPBearer(auto_error=False)
delivery_gateway = DeliveryGateway()

def auth_cookie_name(user_type: UserType) -> str:
    return f"__{user_type.value.lower()}__{settings.AUTH_COOKIE_NAME}"

def get_session_factory() -> Callable[[], Session]:
    return SessionLocal

def get_auth_service(session_factory: Callable[[], Session] = Depends(get_session_factory)) -> AuthService:
    store = SqlOtpStore(session_factory, locks=get_key_locks())
    return AuthService(
        otp=OtpEngine(store, delivery_gateway),
        users=UserAccounts(session_factory),
        admins=AdminAccounts(session_factory),
    )

def get_current_identity(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> ValidatedIdentity:
    token = creds.credentials if creds else None
    if not token:
        for user_type in (UserType.USER, UserType.ADMIN):
            token = request.cookies.get(auth_cookie_name(user_type))
            if token:
                break
    if not token:
        raise HTTPException(status_code=401, detail="Missing authorization token")
    try:
        claims = decode_jwt(token, settings.JWT_SECRET)
        return ValidatedIdentity(id=claims.get("sub"), type=claims.get("type"))
    except (JWTError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")

def require_type(*types: UserType):
    def _inner(identity: ValidatedIdentity = Depends(get_current_identity)) -> ValidatedIdentity:
        if identity.type not in types:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return identity
    return _inner
