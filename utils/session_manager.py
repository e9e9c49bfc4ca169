"""
Access/refresh token lifecycle.

    Anonymous --authenticate+issue--> Authenticated
    Authenticated --access exp--> Expired --refresh--> Authenticated (rotated)
    any --revoke / replayed refresh--> Revoked

Access tokens are stateless JWTs. Refresh tokens are JWTs that are also
persisted; a refresh token is redeemable only while both its signed "exp" and
its stored expires_at are in the future and its row still exists. Redeeming
deletes the row and stores the replacement in the same transaction.

Policy: one active session per user. Issuing a new pair drops every other
refresh token of that user. Expired rows are purged lazily (on use, on
logout, on next login), never by a background job.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from utils.exceptions import AuthenticationFailed, InternalFault, SessionInvalid
from utils.security import (
    ACCESS,
    REFRESH,
    TokenError,
    TokenSigner,
    burn_verification,
    utcnow,
    verify_password,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime


class SessionManager:
    def __init__(
        self,
        users,
        refresh_tokens,
        signer: TokenSigner,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.users = users
        self.refresh_tokens = refresh_tokens
        self.signer = signer
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.clock = clock

    def authenticate(self, email: str, password: str):
        """Return the user for valid credentials, else AuthenticationFailed.

        Unknown email and wrong password are indistinguishable to the caller.
        """
        try:
            user = self.users.find_by_email(email)
        except SQLAlchemyError as exc:
            logger.exception("User lookup failed during login")
            raise InternalFault() from exc

        if user is None:
            burn_verification(password)
            logger.info("Login failed: unknown email")
            raise AuthenticationFailed(INVALID_CREDENTIALS)
        if not verify_password(password, user.password_hash):
            logger.info("Login failed: bad password for user_id=%s", user.id)
            raise AuthenticationFailed(INVALID_CREDENTIALS)
        return user

    def issue(self, user_id: str) -> TokenPair:
        """Mint a new pair and make it the user's only live refresh token."""
        pair = self._mint(user_id)
        try:
            with self.refresh_tokens.transaction():
                dropped = self.refresh_tokens.delete_all_for_principal(user_id)
                self.refresh_tokens.insert(pair.refresh_token, user_id, pair.refresh_expires_at)
        except SQLAlchemyError as exc:
            logger.exception("Could not persist refresh token for user_id=%s", user_id)
            raise InternalFault() from exc
        logger.info("Issued session for user_id=%s (replaced %s)", user_id, dropped)
        return pair

    def validate_access(self, access_token: Optional[str]) -> str:
        """Return the user id carried by a valid access token. No database access."""
        if not access_token:
            raise AuthenticationFailed("Access token required")
        try:
            claims = self.signer.decode(access_token, expected_type=ACCESS)
        except TokenError as exc:
            raise AuthenticationFailed(str(exc))
        return claims["sub"]

    def refresh(self, refresh_token: Optional[str]) -> TokenPair:
        """Redeem a refresh token for a new pair. A token redeems at most once."""
        if not refresh_token:
            raise AuthenticationFailed("Refresh token required")
        try:
            claims = self.signer.decode(refresh_token, expected_type=REFRESH)
        except TokenError as exc:
            logger.info("Refresh rejected: %s", exc)
            raise SessionInvalid()

        user_id = claims["sub"]
        now = self.clock()
        try:
            with self.refresh_tokens.transaction():
                record = self.refresh_tokens.consume(refresh_token)
                if record is None:
                    pair = None
                    reason = "unknown or already used token"
                elif record.expires_at <= now:
                    # the consume above already purged it
                    pair = None
                    reason = "stored expiry passed"
                elif record.user_id != str(user_id):
                    pair = None
                    reason = "owner mismatch"
                else:
                    pair = self._mint(user_id)
                    self.refresh_tokens.insert(pair.refresh_token, user_id, pair.refresh_expires_at)
        except SQLAlchemyError as exc:
            logger.exception("Refresh token rotation failed for user_id=%s", user_id)
            raise InternalFault() from exc

        if pair is None:
            logger.warning("Refresh rejected for user_id=%s: %s", user_id, reason)
            raise SessionInvalid()
        logger.info("Rotated refresh token for user_id=%s", user_id)
        return pair

    def revoke(self, refresh_token: Optional[str]) -> None:
        """End the session holding ``refresh_token``. Unknown tokens are a no-op."""
        if not refresh_token:
            return
        try:
            with self.refresh_tokens.transaction():
                record = self.refresh_tokens.consume(refresh_token)
                if record is not None:
                    self.refresh_tokens.delete_expired_for_principal(record.user_id, self.clock())
        except SQLAlchemyError as exc:
            logger.exception("Refresh token revocation failed")
            raise InternalFault() from exc
        if record is not None:
            logger.info("Revoked session for user_id=%s", record.user_id)

    def _mint(self, user_id: str) -> TokenPair:
        # whole seconds, so the stored expires_at equals the signed "exp"
        now = self.clock().replace(microsecond=0)
        access = self.signer.encode(user_id, ACCESS, issued_at=now, expires_at=now + self.access_ttl)
        refresh = self.signer.encode(user_id, REFRESH, issued_at=now, expires_at=now + self.refresh_ttl)
        return TokenPair(
            access_token=access.token,
            refresh_token=refresh.token,
            access_expires_at=access.expires_at,
            refresh_expires_at=refresh.expires_at,
        )
