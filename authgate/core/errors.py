from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from authgate.core.http_hardening import request_id_for

_LOG = logging.getLogger("authgate.errors")


class AuthGateError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class OtpBlockedError(AuthGateError):
    status_code = 429


class OtpResendTooSoonError(AuthGateError):
    status_code = 429


class OtpNotFoundError(AuthGateError):
    status_code = 404


class OtpExpiredError(AuthGateError):
    status_code = 410


class InvalidVerificationCodeError(AuthGateError):
    status_code = 400


class InvalidRequestError(AuthGateError):
    status_code = 400


class UnknownRequestTypeError(AuthGateError):
    status_code = 400


class InvalidUsernameError(AuthGateError):
    status_code = 400


class DuplicateTargetError(AuthGateError):
    status_code = 409


class UnauthorizedError(AuthGateError):
    status_code = 401


class AccountNotFoundError(UnauthorizedError):
    pass


class CredentialMismatchError(UnauthorizedError):
    pass


class LockUnavailableError(AuthGateError):
    status_code = 503


class RecordNotFoundError(AuthGateError):
    status_code = 404


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthGateError)
    async def _auth_gate_error_handler(request: Request, exc: AuthGateError):
        if exc.status_code >= 429:
            _LOG.warning(
                "%s %s -> %s: %s request_id=%s",
                request.method,
                request.url.path,
                exc.status_code,
                exc.detail,
                request_id_for(request),
            )
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
