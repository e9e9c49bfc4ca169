"""
Authentication blueprint:
- POST /auth/register
- POST /auth/login
- POST /auth/refresh
- POST /auth/logout

The implementation:
- Uses argon2 for password hashing (via utils.security)
- Issues short-lived access tokens and longer-lived refresh tokens (JWTs, one secret each)
- Delivers both as signed HTTP-only cookies
- Stores refresh tokens in DB so they can be rotated on use and revoked on logout
"""
from __future__ import annotations

import logging

from flask import Blueprint, request, jsonify, make_response

from blog_api.deps import get_session_manager, get_user_store
from models.schemas.user import (
    UserCreateSchema,
    UserOutSchema,
    UserLoginSchema,
    RefreshRequestSchema,
)
from utils.cookies import (
    REFRESH_COOKIE,
    clear_session_cookies,
    read_token_cookie,
    set_session_cookies,
)
from utils.exceptions import Conflict
from utils.security import hash_password

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__, url_prefix="/auth")

user_create_schema = UserCreateSchema()
user_out_schema = UserOutSchema()
user_login_schema = UserLoginSchema()
refresh_request_schema = RefreshRequestSchema()


def _session_payload(pair) -> dict:
    return {
        "token_type": "bearer",
        "access_expires_at": pair.access_expires_at.isoformat(),
        "refresh_expires_at": pair.refresh_expires_at.isoformat(),
    }


def _presented_refresh_token():
    """Refresh token from the signed cookie, else from the JSON body."""
    token = read_token_cookie(REFRESH_COOKIE)
    if not token:
        body = refresh_request_schema.load(request.get_json(silent=True) or {})
        token = body.get("refresh_token")
    return token


@bp.post("/register")
def register():
    """
    Register a new user.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [name, email, password]
          properties:
            name: { type: string, minLength: 2 }
            email: { type: string, format: email }
            password: { type: string, minLength: 6 }
    responses:
      201:
        description: Created
      409:
        description: Email already registered
      422:
        description: Validation error
    """
    payload = request.get_json(silent=True) or {}
    data = user_create_schema.load(payload)

    users = get_user_store()
    if users.find_by_email(data["email"]):
        raise Conflict("User with that email already exists")

    user = users.create(
        name=data["name"],
        email=data["email"],
        password_hash=hash_password(data["password"]),
    )
    logger.info("Registered user_id=%s", user.id)

    return jsonify({"data": user_out_schema.dump(user)}), 201


@bp.post("/login")
def login():
    """
    Login: sets accessToken and refreshToken cookies
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (session cookies set)
      401:
        description: Invalid email or password
    """
    payload = request.get_json(silent=True) or {}
    data = user_login_schema.load(payload)

    sessions = get_session_manager()
    user = sessions.authenticate(data["email"], data["password"])
    pair = sessions.issue(user.id)
    logger.info("Login succeeded for user_id=%s", user.id)

    response = jsonify({"data": {"user": user_out_schema.dump(user), **_session_payload(pair)}})
    return set_session_cookies(response, pair, sessions.clock()), 200


@bp.post("/refresh")
def refresh():
    """
    Exchange the refresh cookie for a new access/refresh pair (rotation).
    The old refresh token stops working immediately.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         required: false
         schema:
           type: object
           properties:
             refresh_token: { type: string, description: "Used only when no refresh cookie is sent" }
    responses:
      200:
        description: OK (new session cookies set)
      401:
        description: No refresh token presented
      403:
        description: Refresh token invalid, expired, revoked or already used
    """
    token = _presented_refresh_token()
    sessions = get_session_manager()
    pair = sessions.refresh(token)

    response = jsonify({"data": _session_payload(pair)})
    return set_session_cookies(response, pair, sessions.clock()), 200


@bp.post("/logout")
def logout():
    """
    Logout: revokes the refresh token held in the cookie (or sent in the body)
    and clears both cookies. Logging out without a (valid) session is not an error.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         required: false
         schema:
           type: object
           properties:
             refresh_token: { type: string, description: "Used only when no refresh cookie is sent" }
    responses:
      204:
        description: Logged out
    """
    token = _presented_refresh_token()
    get_session_manager().revoke(token)
    response = make_response("", 204)
    return clear_session_cookies(response)
