from __future__ import annotations
from functools import wraps
from typing import Optional

from flask import request, g

from blog_api.deps import get_session_manager, get_user_store
from utils.cookies import ACCESS_COOKIE, read_token_cookie
from utils.exceptions import AuthenticationFailed


def _access_token_from_request() -> Optional[str]:
    """Signed access cookie first, then an `Authorization: Bearer` header."""
    token = read_token_cookie(ACCESS_COOKIE)
    if token:
        return token
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        return auth.split(" ", 1)[1].strip() or None
    return None


def current_user_id_or_none() -> Optional[str]:
    """Identify the caller when possible; never fails. For public routes."""
    token = _access_token_from_request()
    if not token:
        return None
    try:
        return get_session_manager().validate_access(token)
    except AuthenticationFailed:
        return None


def jwt_required():
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user_id = get_session_manager().validate_access(_access_token_from_request())
            user = get_user_store().find_by_id(user_id)
            if not user:
                raise AuthenticationFailed("User not found")
            g.current_user = user
            g.current_user_id = user.id
            return fn(*args, **kwargs)

        return wrapper

    return decorator
