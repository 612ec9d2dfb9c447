from __future__ import annotations

from html import escape
from typing import Any

REGISTER_VERIFICATION_CODE = "register-verification-code"
RESET_PASSWORD_VERIFICATION_CODE = "reset-password-verification-code"

_TEMPLATES = {
    REGISTER_VERIFICATION_CODE: (
        "<p>Hi {username},</p>"
        "<p>Use the code <strong>{code}</strong> to finish signing up.</p>"
        "<p>The code expires in {expiration_time}.</p>"
    ),
    RESET_PASSWORD_VERIFICATION_CODE: (
        "<p>Hi {username},</p>"
        "<p>Use the code <strong>{code}</strong> to reset your password.</p>"
        "<p>The code expires in {expiration_time}. If you did not ask for a reset, ignore this email.</p>"
    ),
}


class UnknownTemplateError(KeyError):
    pass


def render_template(name: str, data: dict[str, Any]) -> str:
    try:
        template = _TEMPLATES[name]
    except KeyError as exc:
        raise UnknownTemplateError(name) from exc
    return template.format(
        username=escape(str(data.get("username") or "User")),
        code=data.get("code") or "",
        expiration_time=data.get("expiration_time") or "",
    )
