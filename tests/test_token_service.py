"""
Tests for magic-link token issue and resolution.
"""

import hashlib
from datetime import timedelta

import pytest

from roundpicks import db
from roundpicks.errors import (
    RoundLocked,
    TokenAlreadyConsumed,
    TokenExpired,
    TokenNotFound,
)
from roundpicks.models import AccessToken
from roundpicks.services import token_service
from tests.conftest import AFTER_LOCK, BEFORE_LOCK, LOCK


class TestPickTokens:
    """Reusable participant links bound to one round"""

    def test_only_the_hash_is_stored(self, make_round, participants, outbox):
        round_ = make_round()
        alice = participants["Alice"]

        value = token_service.issue_pick_token(round_, participant=alice)

        stored = AccessToken.query.filter_by(participant_id=alice.id).one()
        assert stored.token_hash == hashlib.sha256(value.encode()).hexdigest()
        assert stored.token_hash != value
        assert outbox.token_for(alice.email) == value

    def test_expiry_is_round_lock_time(self, make_round, participants):
        round_ = make_round()
        value = token_service.issue_pick_token(round_, participant=participants["Bob"])

        token = token_service.resolve(value, now=BEFORE_LOCK)
        assert token.is_expired(LOCK) is False
        assert token.is_expired(LOCK + timedelta(seconds=1)) is True

    def test_reissue_invalidates_outstanding_token(self, make_round, participants):
        round_ = make_round()
        alice = participants["Alice"]

        first = token_service.issue_pick_token(round_, participant=alice)
        second = token_service.issue_pick_token(round_, participant=alice)

        with pytest.raises(TokenNotFound):
            token_service.resolve(first, now=BEFORE_LOCK)
        assert token_service.resolve(second, now=BEFORE_LOCK).participant_id == alice.id
        assert (
            AccessToken.query.filter_by(participant_id=alice.id, round_id=round_.id).count()
            == 1
        )

    def test_pick_token_is_reusable(self, make_round, participants):
        round_ = make_round()
        value = token_service.issue_pick_token(round_, participant=participants["Cara"])

        for _ in range(3):
            token = token_service.resolve(value, now=BEFORE_LOCK)
            assert token.consumed_at is None

    def test_expiry_boundary_deletes_stale_token(self, make_round, participants):
        round_ = make_round()
        value = token_service.issue_pick_token(round_, participant=participants["Alice"])

        # Expire ahead of the round lock so the lock check does not mask expiry
        expiry = BEFORE_LOCK - timedelta(hours=1)
        token = token_service.resolve(value, now=expiry - timedelta(hours=1))
        token.expires_at = expiry
        db.session.commit()

        assert token_service.resolve(value, now=expiry).round_id == round_.id

        with pytest.raises(TokenExpired) as excinfo:
            token_service.resolve(value, now=expiry + timedelta(microseconds=1))
        assert excinfo.value.to_dict()["code"] == "expired"
        assert AccessToken.query.filter_by(participant_id=participants["Alice"].id).count() == 0

    def test_token_for_locked_round_reports_lock(self, make_round, participants):
        round_ = make_round()
        value = token_service.issue_pick_token(round_, participant=participants["Alice"])

        with pytest.raises(RoundLocked):
            token_service.resolve(value, now=AFTER_LOCK)

        # Left for the purge job so every late visitor sees the same answer
        with pytest.raises(RoundLocked):
            token_service.resolve(value, now=AFTER_LOCK)

    def test_unknown_token(self, app):
        with pytest.raises(TokenNotFound) as excinfo:
            token_service.resolve("f" * 64)

        body = excinfo.value.to_dict()
        assert body["code"] == "invalid"
        assert body["locked"] is False

    def test_legacy_plaintext_token_fallback(self, app, make_round, participants):
        round_ = make_round()
        legacy = AccessToken(
            token_hash="legacy-unhashed-value",
            kind=AccessToken.KIND_PICK,
            participant_id=participants["Bob"].id,
            round_id=round_.id,
            expires_at=LOCK,
        )
        db.session.add(legacy)
        db.session.commit()

        assert token_service.resolve("legacy-unhashed-value", now=BEFORE_LOCK).id == legacy.id

        app.config["LEGACY_PLAINTEXT_TOKENS"] = False
        with pytest.raises(TokenNotFound):
            token_service.resolve("legacy-unhashed-value", now=BEFORE_LOCK)

    def test_delivery_failure_keeps_token(self, make_round, participants, outbox):
        round_ = make_round()
        outbox.fail = True

        value = token_service.issue_pick_token(round_, participant=participants["Cara"])

        assert len([m for m in outbox.outbox if m[0] == participants["Cara"].email]) == 2
        assert token_service.resolve(value, now=BEFORE_LOCK).participant_id == participants["Cara"].id

    def test_shared_inbox_token_covers_every_participant(self, season, make_round):
        from roundpicks.models import Participant

        season.participants.append(Participant(name="Dan", email="Family@roundpicks.io"))
        season.participants.append(Participant(name="Eve", email="family@roundpicks.io"))
        db.session.commit()
        round_ = make_round()

        value = token_service.issue_pick_token(round_, email="family@roundpicks.io")
        token = token_service.resolve(value, now=BEFORE_LOCK)

        assert token.is_shared_email
        assert sorted(p.name for p in token_service.participants_for(token)) == ["Dan", "Eve"]


class TestAdminLoginTokens:
    """Single-use sign-in links"""

    def test_single_use(self, admin, outbox):
        value = token_service.issue_admin_login(admin.email, now=BEFORE_LOCK)
        assert outbox.token_for(admin.email, "admin_login") == value

        token = token_service.resolve(value, kind=AccessToken.KIND_ADMIN_LOGIN, now=BEFORE_LOCK)
        assert token.admin_id == admin.id
        assert token.consumed_at is not None

        with pytest.raises(TokenAlreadyConsumed) as excinfo:
            token_service.resolve(value, kind=AccessToken.KIND_ADMIN_LOGIN, now=BEFORE_LOCK)
        assert excinfo.value.to_dict()["code"] == "invalid"

    def test_expires_after_window(self, admin):
        value = token_service.issue_admin_login(admin.email, now=BEFORE_LOCK)

        with pytest.raises(TokenExpired):
            token_service.resolve(
                value,
                kind=AccessToken.KIND_ADMIN_LOGIN,
                now=BEFORE_LOCK + timedelta(minutes=16),
            )

    def test_unknown_address_gets_nothing(self, app, outbox):
        assert token_service.issue_admin_login("nobody@roundpicks.io") is None
        assert outbox.outbox == []

    def test_kinds_do_not_cross(self, admin, make_round, participants):
        round_ = make_round()
        pick_value = token_service.issue_pick_token(round_, participant=participants["Alice"])
        admin_value = token_service.issue_admin_login(admin.email)

        with pytest.raises(TokenNotFound):
            token_service.resolve(pick_value, kind=AccessToken.KIND_ADMIN_LOGIN)
        with pytest.raises(TokenNotFound):
            token_service.resolve(admin_value, kind=AccessToken.KIND_PICK)


class TestPurge:
    def test_removes_expired_and_consumed(self, admin, make_round, participants):
        round_ = make_round()
        token_service.issue_pick_token(round_, participant=participants["Alice"])
        used = token_service.issue_admin_login(admin.email, now=BEFORE_LOCK)
        token_service.resolve(used, kind=AccessToken.KIND_ADMIN_LOGIN, now=BEFORE_LOCK)

        before = AccessToken.query.count()
        removed = token_service.purge_expired_tokens(now=BEFORE_LOCK)
        assert removed == 1
        assert AccessToken.query.count() == before - 1

        # Every pick token expires with the round lock
        token_service.purge_expired_tokens(now=AFTER_LOCK)
        assert AccessToken.query.filter_by(kind=AccessToken.KIND_PICK).count() == 0
