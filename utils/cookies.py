"""
Session cookies.

Both tokens travel as HTTP-only cookies whose values are additionally signed
with the application SECRET_KEY (itsdangerous), so a tampered cookie is
rejected before any JWT parsing happens.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import current_app, request
from itsdangerous import BadSignature, Signer

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"
COOKIE_SALT = "blog-api.session-cookie"


class CookieSigner:
    def __init__(self, secret_key: str, salt: str = COOKIE_SALT):
        self._signer = Signer(secret_key, salt=salt)

    def sign(self, value: str) -> str:
        return self._signer.sign(value).decode("utf-8")

    def unsign(self, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        try:
            return self._signer.unsign(value).decode("utf-8")
        except BadSignature:
            return None


def _signer() -> CookieSigner:
    return current_app.extensions["cookie_signer"]


def _cookie_kwargs() -> dict:
    return {
        "httponly": True,
        "secure": current_app.config.get("COOKIE_SECURE", True),
        "samesite": current_app.config.get("COOKIE_SAMESITE", "Lax"),
        "path": "/",
    }


def _max_age(expires_at: datetime, now: datetime) -> int:
    return max(0, int((expires_at - now).total_seconds()))


def set_session_cookies(response, pair, now: datetime):
    """Attach both tokens of a TokenPair to ``response``."""
    signer = _signer()
    response.set_cookie(
        ACCESS_COOKIE,
        signer.sign(pair.access_token),
        max_age=_max_age(pair.access_expires_at, now),
        **_cookie_kwargs(),
    )
    response.set_cookie(
        REFRESH_COOKIE,
        signer.sign(pair.refresh_token),
        max_age=_max_age(pair.refresh_expires_at, now),
        **_cookie_kwargs(),
    )
    return response


def clear_session_cookies(response):
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(name, **_cookie_kwargs())
    return response


def read_token_cookie(name: str) -> Optional[str]:
    """Return the verified token stored in cookie ``name``, or None if absent/tampered."""
    return _signer().unsign(request.cookies.get(name))
