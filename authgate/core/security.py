from datetime import datetime, timedelta, timezone
from jose import jwt
from passlib.context import CryptContext

from authgate.core.config import settings
from authgate.schemas.auth import ValidatedIdentity

otp_code_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

def hash_otp_code(code: str) -> str:
    return otp_code_context.hash(code)

def verify_otp_code(code: str, code_hash: str) -> bool:
    if not code or not code_hash:
        return False
    return otp_code_context.verify(code, code_hash)

def create_jwt(payload: dict, secret: str, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    data = payload.copy()
    data.update({"iat": int(now.timestamp()), "exp": int((now + expires_delta).timestamp())})
    return jwt.encode(data, secret, algorithm="HS256")

def decode_jwt(token: str, secret: str) -> dict:
    return jwt.decode(token, secret, algorithms=["HS256"])

def issue_access_token(identity: ValidatedIdentity) -> str:
    return create_jwt(
        {"sub": str(identity.id), "type": identity.type.value},
        settings.JWT_SECRET,
        timedelta(minutes=settings.JWT_TTL_MINUTES),
    )
