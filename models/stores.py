"""
Stores used by the session manager.

UserStore and RefreshTokenStore wrap a DBStorage. Refresh-token methods do not
commit on their own: callers group them inside ``transaction()`` so that a
rotation's delete and insert land together.
"""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from models.db_storage import DBStorage
from models.refresh_token import RefreshToken
from models.user import User
from utils.exceptions import Conflict


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class RefreshTokenRecord:
    token: str
    user_id: str
    expires_at: datetime


def _record(token: str, user_id: str, expires_at: datetime) -> RefreshTokenRecord:
    return RefreshTokenRecord(token=token, user_id=str(user_id), expires_at=as_utc(expires_at))


class UserStore:
    def __init__(self, storage: DBStorage):
        self.storage = storage

    def find_by_email(self, email: str) -> Optional[User]:
        session = self.storage.get_session()
        return session.query(User).filter(User.email == email.strip().lower()).first()

    def find_by_id(self, user_id: str) -> Optional[User]:
        return self.storage.get(User, user_id)

    def create(self, name: str, email: str, password_hash: str) -> User:
        user = User(name=name, email=email.strip().lower(), password_hash=password_hash)
        self.storage.new(user)
        try:
            self.storage.save()
        except IntegrityError:
            # lost a race with a concurrent registration for the same email
            raise Conflict("User with that email already exists")
        return user


class RefreshTokenStore:
    def __init__(self, storage: DBStorage):
        self.storage = storage

    @contextmanager
    def transaction(self):
        with self.storage.transaction():
            yield self

    def insert(self, token: str, user_id: str, expires_at: datetime) -> None:
        session = self.storage.get_session()
        session.add(RefreshToken(token=token, user_id=user_id, expires_at=expires_at))
        session.flush()

    def find_by_token(self, token: str) -> Optional[RefreshTokenRecord]:
        session = self.storage.get_session()
        row = session.execute(
            select(RefreshToken.token, RefreshToken.user_id, RefreshToken.expires_at)
            .where(RefreshToken.token == token)
        ).first()
        return _record(*row) if row else None

    def delete_by_token(self, token: str) -> int:
        session = self.storage.get_session()
        result = session.execute(
            delete(RefreshToken)
            .where(RefreshToken.token == token)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    def delete_all_for_principal(self, user_id: str) -> int:
        session = self.storage.get_session()
        result = session.execute(
            delete(RefreshToken)
            .where(RefreshToken.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    def delete_expired_for_principal(self, user_id: str, now: datetime) -> int:
        session = self.storage.get_session()
        result = session.execute(
            delete(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.expires_at <= now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    def consume(self, token: str) -> Optional[RefreshTokenRecord]:
        """
        Delete the row for ``token`` and return what it held, or None if it was
        already gone. Only one of several concurrent callers can get the row back.
        """
        session = self.storage.get_session()
        dialect = session.get_bind().dialect
        if getattr(dialect, "delete_returning", False):
            row = session.execute(
                delete(RefreshToken)
                .where(RefreshToken.token == token)
                .returning(RefreshToken.token, RefreshToken.user_id, RefreshToken.expires_at)
                .execution_options(synchronize_session=False)
            ).first()
            return _record(*row) if row else None

        # No RETURNING: read, then let the conditional delete's rowcount pick the winner.
        record = self.find_by_token(token)
        if record is None:
            return None
        if self.delete_by_token(token) != 1:
            return None
        return record
