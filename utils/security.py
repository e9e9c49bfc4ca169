"""
security helpers:
- Argon2 password hashing via argon2-cffi
- JWT creation/verification via PyJWT, one secret per token type
- JTI generation for token identifiers
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Any

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

logger = logging.getLogger(__name__)

ph = PasswordHasher()

ACCESS = "access"
REFRESH = "refresh"


class TokenError(Exception):
    """Raised when a token cannot be trusted (bad signature, expired, wrong type)."""


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """ Verify a plaintext password using argon2
    """
    try:
        return ph.verify(password_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


# Verified against when the email is unknown, so both login failures cost the same.
_DUMMY_HASH = ph.hash("not-a-real-password")


def burn_verification(password: str) -> bool:
    return verify_password(password, _DUMMY_HASH)


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID).
    """
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SignedToken:
    token: str
    jti: str
    expires_at: datetime


class TokenSigner:
    """
    Signs and verifies access/refresh JWTs.
    Access and refresh tokens use distinct secrets, so one can never be
    replayed as the other even before the "type" claim is checked.
    """

    def __init__(self, access_secret: str, refresh_secret: str,
                 algorithm: str = "HS256", issuer: str = "blog-api"):
        if not access_secret or not refresh_secret:
            raise ValueError("both access and refresh secrets are required")
        self._secrets = {ACCESS: access_secret, REFRESH: refresh_secret}
        self.algorithm = algorithm
        self.issuer = issuer

    def encode(self, subject: str, token_type: str, issued_at: datetime,
               expires_at: datetime, jti: str | None = None) -> SignedToken:
        jti = jti or generate_jti()
        payload = {
            "iss": self.issuer,
            "sub": str(subject),
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "type": token_type,
            "jti": jti,
        }
        token = jwt.encode(payload, self._secrets[token_type], algorithm=self.algorithm)
        return SignedToken(token=token, jti=jti, expires_at=expires_at)

    def decode(self, token: str, expected_type: str = ACCESS) -> Dict[str, Any]:
        """
        Decode and validate a JWT. Raises TokenError on invalid signature/expired jwt.
        expected type must be "access" or "refresh".
        """
        if not token:
            raise TokenError("Token missing")
        try:
            decoded = jwt.decode(
                token,
                self._secrets[expected_type],
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"require": ["exp", "sub", "jti", "type"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenError("Token expired")
        except jwt.InvalidTokenError as exc:
            logger.info("Rejected %s token: %s", expected_type, exc)
            raise TokenError("Invalid token")

        if decoded.get("type") != expected_type:
            raise TokenError("Wrong token type")
        return decoded
