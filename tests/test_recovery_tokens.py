"""Single-use recovery tokens (password reset / email verification)."""

from datetime import timedelta

import pytest

from models import PasswordResetToken, User
from services.recovery_tokens import RecoveryErrorKind


@pytest.fixture
def user(storage):
    with storage.transaction() as session:
        user = User(email="grace@example.com", password_hash="x", name="Grace", birth_year=1985)
        session.add(user)
    return user


class TestIssue:
    def test_issue_persists_live_token(self, reset_tokens, user, clock):
        issued = reset_tokens.issue(user.id)
        assert len(issued.token) == 64
        assert issued.user_id == user.id
        assert issued.expires_at == clock() + timedelta(hours=1)

    def test_tokens_are_distinct(self, reset_tokens, user):
        assert reset_tokens.issue(user.id).token != reset_tokens.issue(user.id).token

    def test_purpose(self, reset_tokens, verify_tokens):
        assert reset_tokens.purpose == "password_reset_tokens"
        assert verify_tokens.purpose == "email_verify_tokens"


class TestConsume:
    def test_consume_returns_owner(self, reset_tokens, user):
        issued = reset_tokens.issue(user.id)
        result = reset_tokens.consume(issued.token)
        assert result.ok
        assert result.user_id == user.id

    def test_second_consume_fails(self, reset_tokens, user):
        issued = reset_tokens.issue(user.id)
        assert reset_tokens.consume(issued.token).ok
        result = reset_tokens.consume(issued.token)
        assert not result.ok
        assert result.error == RecoveryErrorKind.ALREADY_USED

    def test_unknown_token(self, reset_tokens):
        assert reset_tokens.consume("nope").error == RecoveryErrorKind.NOT_FOUND
        assert reset_tokens.consume("").error == RecoveryErrorKind.NOT_FOUND

    def test_expired_token(self, reset_tokens, user, clock):
        issued = reset_tokens.issue(user.id)
        clock.advance(hours=1, seconds=1)
        assert reset_tokens.consume(issued.token).error == RecoveryErrorKind.EXPIRED

    def test_expired_token_is_left_in_place(self, reset_tokens, user, clock, storage):
        issued = reset_tokens.issue(user.id)
        clock.advance(hours=2)
        reset_tokens.consume(issued.token)
        session = storage.get_session()
        assert session.query(PasswordResetToken).filter_by(token=issued.token).count() == 1

    def test_used_token_stays_used_after_expiry(self, reset_tokens, user, clock):
        issued = reset_tokens.issue(user.id)
        reset_tokens.consume(issued.token)
        clock.advance(days=2)
        assert reset_tokens.consume(issued.token).error == RecoveryErrorKind.ALREADY_USED

    def test_stores_are_independent(self, reset_tokens, verify_tokens, user):
        issued = reset_tokens.issue(user.id)
        assert verify_tokens.consume(issued.token).error == RecoveryErrorKind.NOT_FOUND
        assert reset_tokens.consume(issued.token).ok

    def test_consume_rolls_back_with_callers_transaction(self, reset_tokens, user, storage):
        issued = reset_tokens.issue(user.id)
        with pytest.raises(RuntimeError):
            with storage.transaction() as session:
                assert reset_tokens.consume(issued.token, session=session).ok
                raise RuntimeError("boom")
        # The caller's failure undid the consumption
        assert reset_tokens.consume(issued.token).ok


class TestHousekeeping:
    def test_delete(self, reset_tokens, user):
        issued = reset_tokens.issue(user.id)
        assert reset_tokens.delete(issued.token) is True
        assert reset_tokens.delete(issued.token) is False
        assert reset_tokens.consume(issued.token).error == RecoveryErrorKind.NOT_FOUND

    def test_count_issued_since(self, verify_tokens, user, clock):
        start = clock()
        verify_tokens.issue(user.id)
        clock.advance(minutes=30)
        verify_tokens.issue(user.id)
        assert verify_tokens.count_issued_since(user.id, start) == 2
        assert verify_tokens.count_issued_since(user.id, start + timedelta(minutes=1)) == 1

    def test_purge_expired(self, reset_tokens, user, clock):
        old = reset_tokens.issue(user.id)
        clock.advance(minutes=45)
        fresh = reset_tokens.issue(user.id)
        spent = reset_tokens.issue(user.id)
        assert reset_tokens.consume(spent.token).ok
        clock.advance(minutes=30)
        assert reset_tokens.purge_expired() == 2
        assert reset_tokens.consume(old.token).error == RecoveryErrorKind.NOT_FOUND
        assert reset_tokens.consume(spent.token).error == RecoveryErrorKind.NOT_FOUND
        assert reset_tokens.consume(fresh.token).ok
