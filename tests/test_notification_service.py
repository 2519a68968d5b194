"""
Tests for lock and completion emails sent to participants.
"""

from roundpicks import db
from roundpicks.models import Round
from roundpicks.services import notification_service, pick_service, round_service
from tests.conftest import AFTER_LOCK, BEFORE_LOCK


def _sent(outbox, template_name):
    return {to: data for to, name, data in outbox.outbox if name == template_name}


class TestLockNotifications:
    def test_explicit_lock_notifies_every_participant(self, make_round, outbox):
        round_ = make_round()

        round_service.lock_round(round_)

        sent = _sent(outbox, "round_locked")
        assert set(sent) == {"alice@roundpicks.io", "bob@roundpicks.io", "cara@roundpicks.io"}
        assert sent["bob@roundpicks.io"]["recipient_name"] == "Bob"
        assert sent["bob@roundpicks.io"]["round_name"] == "Monaco"
        assert sent["bob@roundpicks.io"]["leaderboard_link"].endswith(
            f"/seasons/{round_.season_id}/leaderboard"
        )

    def test_auto_lock_notifies(self, make_round, outbox):
        make_round(name="Due")

        round_service.lock_expired_rounds(now=AFTER_LOCK)

        assert len(_sent(outbox, "round_locked")) == 3
        assert {data["round_name"] for data in _sent(outbox, "round_locked").values()} == {"Due"}

    def test_inactive_participants_skipped(self, make_round, participants, outbox):
        participants["Cara"].is_active = False
        db.session.commit()
        round_ = make_round()

        round_service.lock_round(round_)

        assert "cara@roundpicks.io" not in _sent(outbox, "round_locked")

    def test_disabled_sends_nothing(self, app, make_round, outbox):
        app.config["ROUND_NOTIFICATIONS_ENABLED"] = False
        round_ = make_round()

        round_service.lock_round(round_)
        round_service.complete_round(round_, [["A"]], now=AFTER_LOCK)

        assert _sent(outbox, "round_locked") == {}
        assert _sent(outbox, "round_completed") == {}

    def test_delivery_failure_keeps_lock(self, make_round, outbox):
        round_ = make_round()
        outbox.fail = True

        round_service.lock_round(round_)

        assert db.session.get(Round, round_.id).status == Round.STATUS_LOCKED
        assert len(_sent(outbox, "round_locked")) == 3

    def test_sender_exception_is_contained(self, monkeypatch, make_round, outbox):
        round_ = make_round()

        def explode(recipient, template_name, data):
            raise RuntimeError("mail relay down")

        monkeypatch.setattr(outbox, "send_template", explode)

        result = notification_service.notify_round_locked(round_)

        assert result == {"emails_sent": 0, "emails_failed": 3}


class TestCompletionNotifications:
    def test_each_participant_gets_their_result(self, make_round, participants, outbox):
        round_ = make_round()
        pick_service.submit_pick(participants["Alice"].id, round_.id, ["A"], now=BEFORE_LOCK)
        pick_service.submit_pick(participants["Bob"].id, round_.id, ["C"], now=BEFORE_LOCK)

        round_service.complete_round(round_, [["A"], ["B"]], now=AFTER_LOCK)

        sent = _sent(outbox, "round_completed")
        assert set(sent) == {"alice@roundpicks.io", "bob@roundpicks.io", "cara@roundpicks.io"}

        alice = sent["alice@roundpicks.io"]
        assert alice["pick"] == "A"
        assert alice["points"] == 6
        assert alice["results"] == [["A"], ["B"], [], [], []]
        assert alice["standings"][0] == {"rank": 1, "name": "Alice", "total": 6, "is_you": True}

        bob = sent["bob@roundpicks.io"]
        assert bob["pick"] == "C"
        assert bob["points"] == bob["sixth_plus_points"]
        assert [entry["is_you"] for entry in bob["standings"] if entry["name"] == "Bob"] == [True]

        cara = sent["cara@roundpicks.io"]
        assert cara["pick"] is None
        assert cara["points"] == 0

    def test_completing_an_active_round_sends_no_lock_email(self, make_round, outbox):
        round_ = make_round()

        round_service.complete_round(round_, [["A"]], now=AFTER_LOCK)

        assert _sent(outbox, "round_locked") == {}
        assert len(_sent(outbox, "round_completed")) == 3

    def test_delivery_failure_keeps_completion(self, make_round, outbox):
        round_ = make_round()
        outbox.fail = True

        round_service.complete_round(round_, [["A"]], now=AFTER_LOCK)

        assert db.session.get(Round, round_.id).status == Round.STATUS_COMPLETED
