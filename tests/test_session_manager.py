from __future__ import annotations

import threading
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from tests.fakes import FakeRefreshTokenStore, FakeUserStore
from utils.exceptions import AuthenticationFailed, InternalFault, SessionInvalid
from utils.security import REFRESH, utcnow
from utils.session_manager import SessionManager


@pytest.fixture
def users():
    return FakeUserStore()


@pytest.fixture
def tokens():
    return FakeRefreshTokenStore()


@pytest.fixture
def manager(users, tokens, signer):
    return SessionManager(users=users, refresh_tokens=tokens, signer=signer)


@pytest.fixture
def alice(users):
    return users.add("a@x.com", "secret1", name="Alice")


def test_issue_then_validate_access_returns_same_user(manager, alice):
    pair = manager.issue(alice.id)

    assert manager.validate_access(pair.access_token) == alice.id


def test_issue_persists_refresh_token_with_signed_expiry(manager, tokens, signer, alice):
    pair = manager.issue(alice.id)

    record = tokens.find_by_token(pair.refresh_token)
    claims = signer.decode(pair.refresh_token, expected_type=REFRESH)
    assert record.user_id == alice.id
    assert int(record.expires_at.timestamp()) == claims["exp"]
    assert pair.access_expires_at < pair.refresh_expires_at


def test_validate_access_rejects_refresh_token(manager, alice):
    pair = manager.issue(alice.id)

    with pytest.raises(AuthenticationFailed):
        manager.validate_access(pair.refresh_token)


@pytest.mark.parametrize("token", [None, "", "garbage", "a.b.c"])
def test_validate_access_rejects_malformed(manager, token):
    with pytest.raises(AuthenticationFailed):
        manager.validate_access(token)


def test_invalid_token_message_hides_decoder_detail(manager):
    with pytest.raises(AuthenticationFailed) as info:
        manager.validate_access("a.b.c")

    assert info.value.message == "Invalid token"


def test_validate_access_rejects_expired(manager, signer, alice):
    now = utcnow()
    expired = signer.encode(alice.id, "access", issued_at=now - timedelta(hours=1),
                            expires_at=now - timedelta(minutes=1))

    with pytest.raises(AuthenticationFailed, match="expired"):
        manager.validate_access(expired.token)


def test_refresh_rotates_and_old_token_is_dead(manager, tokens, alice):
    first = manager.issue(alice.id)

    second = manager.refresh(first.refresh_token)

    assert second.refresh_token != first.refresh_token
    assert manager.validate_access(second.access_token) == alice.id
    assert tokens.find_by_token(first.refresh_token) is None
    assert tokens.find_by_token(second.refresh_token) is not None
    with pytest.raises(SessionInvalid):
        manager.refresh(first.refresh_token)


def test_rotated_token_can_itself_be_rotated(manager, alice):
    pair = manager.issue(alice.id)
    for _ in range(3):
        pair = manager.refresh(pair.refresh_token)

    assert manager.validate_access(pair.access_token) == alice.id


def test_refresh_fails_when_stored_expiry_passed(manager, tokens, alice):
    pair = manager.issue(alice.id)
    record = tokens.rows[pair.refresh_token]
    tokens.insert(record.token, record.user_id, utcnow() - timedelta(seconds=1))

    with pytest.raises(SessionInvalid):
        manager.refresh(pair.refresh_token)
    # purged on use
    assert tokens.find_by_token(pair.refresh_token) is None


def test_refresh_fails_when_signed_expiry_passed(manager, tokens, signer, alice):
    now = utcnow()
    stale = signer.encode(alice.id, REFRESH, issued_at=now - timedelta(days=8),
                          expires_at=now - timedelta(seconds=1))
    tokens.insert(stale.token, alice.id, now + timedelta(days=1))

    with pytest.raises(SessionInvalid):
        manager.refresh(stale.token)


def test_refresh_fails_for_unknown_but_well_signed_token(manager, signer, alice):
    now = utcnow()
    orphan = signer.encode(alice.id, REFRESH, issued_at=now, expires_at=now + timedelta(days=1))

    with pytest.raises(SessionInvalid):
        manager.refresh(orphan.token)


def test_refresh_rejects_access_token(manager, alice):
    pair = manager.issue(alice.id)

    with pytest.raises(SessionInvalid):
        manager.refresh(pair.access_token)


def test_refresh_without_token_is_authentication_failure(manager):
    with pytest.raises(AuthenticationFailed):
        manager.refresh(None)


def test_refresh_rejects_row_owned_by_someone_else(manager, tokens, signer, users, alice):
    bob = users.add("b@x.com", "secret2", name="Bob")
    now = utcnow()
    forged = signer.encode(alice.id, REFRESH, issued_at=now, expires_at=now + timedelta(days=1))
    tokens.insert(forged.token, bob.id, now + timedelta(days=1))

    with pytest.raises(SessionInvalid):
        manager.refresh(forged.token)


def test_new_login_ends_previous_session(manager, alice):
    first = manager.issue(alice.id)
    second = manager.issue(alice.id)

    with pytest.raises(SessionInvalid):
        manager.refresh(first.refresh_token)
    assert manager.refresh(second.refresh_token)


def test_issue_leaves_other_users_alone(manager, tokens, users, alice):
    bob = users.add("b@x.com", "secret2", name="Bob")
    bob_pair = manager.issue(bob.id)

    manager.issue(alice.id)

    assert tokens.find_by_token(bob_pair.refresh_token) is not None


def test_revoke_is_idempotent(manager, tokens, alice):
    pair = manager.issue(alice.id)

    manager.revoke(pair.refresh_token)
    manager.revoke(pair.refresh_token)

    assert tokens.find_by_token(pair.refresh_token) is None
    with pytest.raises(SessionInvalid):
        manager.refresh(pair.refresh_token)


@pytest.mark.parametrize("token", [None, "", "not-a-token"])
def test_revoke_unknown_token_is_noop(manager, token):
    manager.revoke(token)


def test_revoke_purges_expired_rows_of_same_user(manager, tokens, users, alice):
    pair = manager.issue(alice.id)
    tokens.insert("stale-alice", alice.id, utcnow() - timedelta(days=1))
    bob = users.add("b@x.com", "secret2", name="Bob")
    tokens.insert("stale-bob", bob.id, utcnow() - timedelta(days=1))

    manager.revoke(pair.refresh_token)

    assert tokens.for_user(alice.id) == []
    assert tokens.find_by_token("stale-bob") is not None


def test_authenticate_success(manager, alice):
    assert manager.authenticate("A@X.com ", "secret1").id == alice.id


def test_authenticate_failures_are_indistinguishable(manager, alice):
    with pytest.raises(AuthenticationFailed) as wrong_password:
        manager.authenticate("a@x.com", "wrong")
    with pytest.raises(AuthenticationFailed) as unknown_email:
        manager.authenticate("nobody@x.com", "secret1")

    assert wrong_password.value.message == unknown_email.value.message
    assert wrong_password.value.status == unknown_email.value.status == 401


def test_concurrent_refresh_with_same_token_has_one_winner(manager, alice):
    pair = manager.issue(alice.id)
    barrier = threading.Barrier(2)
    outcomes = []

    def redeem():
        barrier.wait()
        try:
            outcomes.append(manager.refresh(pair.refresh_token))
        except SessionInvalid as exc:
            outcomes.append(exc)

    threads = [threading.Thread(target=redeem) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(isinstance(o, SessionInvalid) for o in outcomes) == 1
    assert len(outcomes) == 2


class _FailingInsertStore(FakeRefreshTokenStore):
    fail = False

    def insert(self, token, user_id, expires_at):
        if self.fail:
            raise OperationalError("INSERT", {}, Exception("connection lost"))
        super().insert(token, user_id, expires_at)


def test_failed_rotation_keeps_old_token(users, signer, alice):
    tokens = _FailingInsertStore()
    manager = SessionManager(users=users, refresh_tokens=tokens, signer=signer)
    pair = manager.issue(alice.id)

    tokens.fail = True
    with pytest.raises(InternalFault):
        manager.refresh(pair.refresh_token)

    tokens.fail = False
    assert tokens.find_by_token(pair.refresh_token) is not None
    assert manager.refresh(pair.refresh_token)
