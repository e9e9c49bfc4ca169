from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from models import DBStorage, RefreshToken, RefreshTokenStore, UserStore
from utils.exceptions import Conflict, SessionInvalid
from utils.security import hash_password, utcnow
from utils.session_manager import SessionManager


@pytest.fixture
def storage(tmp_path):
    storage = DBStorage(f"sqlite:///{tmp_path / 'stores.db'}")
    storage.reload()
    yield storage
    storage.close()
    storage.dispose()


@pytest.fixture
def users(storage):
    return UserStore(storage)


@pytest.fixture
def tokens(storage):
    return RefreshTokenStore(storage)


@pytest.fixture
def alice(users):
    return users.create(name="Alice", email="A@X.com", password_hash=hash_password("secret1"))


def test_user_store_normalizes_email(users, alice):
    assert alice.email == "a@x.com"
    assert users.find_by_email(" A@x.COM").id == alice.id
    assert users.find_by_id(alice.id).name == "Alice"
    assert users.find_by_id("missing") is None


def test_user_store_duplicate_email_is_conflict(users, alice):
    with pytest.raises(Conflict):
        users.create(name="Other", email="a@x.com", password_hash="x")


def test_consume_returns_record_once(tokens, alice):
    expires = utcnow() + timedelta(days=1)
    with tokens.transaction():
        tokens.insert("tok-1", alice.id, expires)

    with tokens.transaction():
        first = tokens.consume("tok-1")
    with tokens.transaction():
        second = tokens.consume("tok-1")

    assert first.user_id == alice.id
    assert first.expires_at.tzinfo is not None
    assert abs(first.expires_at - expires) < timedelta(seconds=1)
    assert second is None


def test_transaction_rolls_back_on_error(tokens, alice):
    with tokens.transaction():
        tokens.insert("tok-1", alice.id, utcnow() + timedelta(days=1))

    with pytest.raises(RuntimeError):
        with tokens.transaction():
            tokens.consume("tok-1")
            raise RuntimeError("crash between delete and insert")

    assert tokens.find_by_token("tok-1") is not None


def test_delete_helpers(tokens, users, alice):
    bob = users.create(name="Bob", email="b@x.com", password_hash="x")
    now = utcnow()
    with tokens.transaction():
        tokens.insert("alice-live", alice.id, now + timedelta(days=1))
        tokens.insert("alice-stale", alice.id, now - timedelta(days=1))
        tokens.insert("bob-stale", bob.id, now - timedelta(days=1))

    with tokens.transaction():
        assert tokens.delete_expired_for_principal(alice.id, now) == 1
    assert tokens.find_by_token("alice-live") is not None
    assert tokens.find_by_token("bob-stale") is not None

    with tokens.transaction():
        assert tokens.delete_by_token("alice-live") == 1
        assert tokens.delete_by_token("alice-live") == 0
        assert tokens.delete_all_for_principal(bob.id) == 1


def test_refresh_tokens_cascade_with_user(storage, tokens, alice):
    with tokens.transaction():
        tokens.insert("tok-1", alice.id, utcnow() + timedelta(days=1))

    storage.delete(alice)
    storage.save()

    assert storage.count(RefreshToken) == 0


def test_session_manager_on_database(users, tokens, signer, alice):
    manager = SessionManager(users=users, refresh_tokens=tokens, signer=signer)
    pair = manager.issue(alice.id)

    rotated = manager.refresh(pair.refresh_token)

    assert manager.validate_access(rotated.access_token) == alice.id
    with pytest.raises(SessionInvalid):
        manager.refresh(pair.refresh_token)
    manager.revoke(rotated.refresh_token)
    manager.revoke(rotated.refresh_token)
    assert tokens.find_by_token(rotated.refresh_token) is None


def test_stored_expiry_is_enforced_on_database(storage, users, tokens, signer, alice):
    manager = SessionManager(users=users, refresh_tokens=tokens, signer=signer)
    pair = manager.issue(alice.id)
    session = storage.get_session()
    session.query(RefreshToken).filter(RefreshToken.token == pair.refresh_token).update(
        {RefreshToken.expires_at: utcnow() - timedelta(minutes=1)}, synchronize_session=False
    )
    storage.save()

    with pytest.raises(SessionInvalid):
        manager.refresh(pair.refresh_token)
    assert tokens.find_by_token(pair.refresh_token) is None


def test_concurrent_refresh_on_database_has_one_winner(storage, users, tokens, signer, alice):
    manager = SessionManager(users=users, refresh_tokens=tokens, signer=signer)
    pair = manager.issue(alice.id)
    storage.close()
    barrier = threading.Barrier(2)
    outcomes = []

    def redeem():
        barrier.wait()
        try:
            outcomes.append(manager.refresh(pair.refresh_token))
        except SessionInvalid as exc:
            outcomes.append(exc)
        finally:
            storage.close()

    threads = [threading.Thread(target=redeem) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(outcomes) == 2
    assert sum(isinstance(o, SessionInvalid) for o in outcomes) == 1
    assert storage.count(RefreshToken) == 1
