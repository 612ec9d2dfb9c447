from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from authgate.core.config import settings
from authgate.core.deps import auth_cookie_name, get_auth_service, get_current_identity
from authgate.core.errors import UnauthorizedError
from authgate.core.http_hardening import request_id_for
from authgate.core.security import issue_access_token
from authgate.schemas.auth import (
    AuthTokenOut,
    Channel,
    ForgotPasswordIn,
    InvalidVerifyCodeResponse,
    LoginIn,
    RegisterIn,
    ResetPasswordIn,
    SendCodeIn,
    SendCodeOut,
    ValidatedIdentity,
)
from authgate.services.auth_service import AuthService, RegistrationData

router = APIRouter()
_LOG = logging.getLogger("authgate.api.auth")


def _set_auth_cookie(response: Response, identity: ValidatedIdentity, token: str) -> None:
    production = settings.is_production_app()
    response.set_cookie(
        key=auth_cookie_name(identity.type),
        value=token,
        httponly=True,
        secure=production,
        samesite="strict" if production else "lax",
        domain=settings.APP_DOMAIN if production else None,
        max_age=settings.JWT_TTL_MINUTES * 60,
    )


def _token_response(response: Response, identity: ValidatedIdentity) -> AuthTokenOut:
    token = issue_access_token(identity)
    _set_auth_cookie(response, identity, token)
    return AuthTokenOut(access_token=token, type=identity.type)


@router.post("/send-code", response_model=SendCodeOut, response_model_exclude_none=True)
async def send_code(payload: SendCodeIn, service: AuthService = Depends(get_auth_service)):
    if not payload.email and not payload.mobile:
        raise HTTPException(status_code=400, detail="Email or mobile is required")
    if payload.mobile and not payload.country:
        raise HTTPException(status_code=400, detail='Field "country" is required with "mobile"')

    result = SendCodeOut()
    if payload.email:
        result.email = await service.send_code(payload.email, Channel.EMAIL, payload.type)
    if payload.mobile:
        result.mobile = await service.send_code(payload.mobile, Channel.MOBILE, payload.type)
    return result


@router.post("/register", response_model=AuthTokenOut)
async def register(payload: RegisterIn, response: Response, service: AuthService = Depends(get_auth_service)):
    outcome = await service.register(
        RegistrationData(
            firstname=payload.firstname,
            lastname=payload.lastname,
            email=payload.email,
            password=payload.password,
            email_verification_code=payload.email_verification_code,
            dial_code=payload.dial_code,
            mobile=payload.mobile,
            country=payload.country,
            mobile_verification_code=payload.mobile_verification_code,
        )
    )
    if isinstance(outcome, InvalidVerifyCodeResponse):
        return JSONResponse(
            status_code=422,
            content={
                "detail": "Invalid verification code",
                "meta": outcome.model_dump(mode="json", exclude_none=True),
            },
        )
    return _token_response(response, outcome)


@router.post("/login", response_model=AuthTokenOut)
async def login(
    payload: LoginIn,
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
):
    try:
        identity = await service.login(payload.email, payload.password)
    except UnauthorizedError as exc:
        _LOG.info(
            "login rejected email=%s reason=%s request_id=%s",
            payload.email,
            exc.detail,
            request_id_for(request),
        )
        raise HTTPException(status_code=401, detail="Invalid email or password") from exc
    return _token_response(response, identity)


@router.post("/logout")
def logout(response: Response, identity: ValidatedIdentity = Depends(get_current_identity)):
    response.delete_cookie(auth_cookie_name(identity.type))
    return {"status": "success"}


@router.post("/forgot-password", response_model=SendCodeOut, response_model_exclude_none=True)
async def forgot_password(payload: ForgotPasswordIn, service: AuthService = Depends(get_auth_service)):
    if not payload.email and not payload.mobile:
        raise HTTPException(status_code=400, detail="Email or mobile is required")
    sent = await service.forgot_password(email=payload.email, mobile=payload.mobile)
    return SendCodeOut(**sent)


@router.post("/reset-password")
async def reset_password(payload: ResetPasswordIn, service: AuthService = Depends(get_auth_service)):
    if not payload.email and not payload.mobile:
        raise HTTPException(status_code=400, detail="Email or mobile is required")
    await service.reset_password(payload.code, payload.new_password, mobile=payload.mobile, email=payload.email)
    return {"status": "success"}
