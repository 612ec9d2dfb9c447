from __future__ import annotations

import logging
import re
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request

from authgate.core.config import settings

REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,128}$")
_LOG = logging.getLogger("authgate.http")

# Tokens, profiles and OTP metadata are only served below this prefix.
CREDENTIAL_PATH_PREFIX = "/api/"
# Rejected credentials and OTP throttling are logged at warning level.
_NOTABLE_STATUSES = {401, 403, 429}

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}


def request_id_for(request: Request) -> str:
    return str(getattr(request.state, "request_id", "") or "-")


def _request_id_from_header(raw: str | None) -> str:
    value = str(raw or "").strip()
    if not value or not _REQUEST_ID_RE.fullmatch(value):
        return uuid4().hex
    return value


def _bearer_challenge() -> str:
    return f'Bearer realm="{settings.APP_NAME}"'


def install_http_hardening(app: FastAPI) -> None:
    @app.middleware("http")
    async def _http_hardening_middleware(request: Request, call_next):
        request_id = _request_id_from_header(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        started_at = perf_counter()

        response = await call_next(request)

        for key, value in SECURITY_HEADERS.items():
            response.headers[key] = value
        if request.url.path.startswith(CREDENTIAL_PATH_PREFIX):
            response.headers["Cache-Control"] = "no-store"
            response.headers["Pragma"] = "no-cache"
            if response.status_code == 401 and "www-authenticate" not in response.headers:
                response.headers["WWW-Authenticate"] = _bearer_challenge()
        response.headers[REQUEST_ID_HEADER] = request_id

        duration_ms = (perf_counter() - started_at) * 1000.0
        level = logging.WARNING if response.status_code in _NOTABLE_STATUSES else logging.INFO
        _LOG.log(
            level,
            "%s %s status=%s duration_ms=%.2f request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request_id,
        )
        return response
