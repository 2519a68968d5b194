"""
Tests for the participant pick endpoints.
"""

from datetime import timedelta

import pytest

from roundpicks import db
from roundpicks.models import AccessToken, Participant
from roundpicks.services import round_service
from roundpicks.utils.timezone_utils import get_utc_time


@pytest.fixture
def link(make_round, participants, outbox):
    """A live round and Alice's plaintext pick token"""
    round_ = make_round(entrants=("Norris", "Piastri", "Verstappen"))
    return round_, outbox.token_for(participants["Alice"].email)


class TestValidateLink:
    def test_describes_round_and_current_pick(self, client, link):
        round_, token = link

        response = client.get(f"/api/picks/validate/{token}")

        assert response.status_code == 200
        body = response.get_json()
        assert body["valid"] is True
        assert body["isSharedEmail"] is False
        assert body["round"]["id"] == round_.id
        assert body["candidates"] == ["Norris", "Piastri", "Verstappen"]
        assert body["participant"]["name"] == "Alice"
        assert body["currentPick"] is None
        assert "no-store" in response.headers["Cache-Control"]

    def test_unknown_link(self, client, app):
        response = client.get("/api/picks/validate/not-a-real-token")

        assert response.status_code == 403
        body = response.get_json()
        assert body["code"] == "invalid"
        assert body["locked"] is False

    def test_locked_round(self, client, link):
        round_, token = link
        round_service.lock_round(round_)

        response = client.get(f"/api/picks/validate/{token}")

        assert response.status_code == 403
        body = response.get_json()
        assert body["code"] == "locked"
        assert body["locked"] is True

    def test_expired_link(self, client, link):
        _, token = link
        stored = AccessToken.query.filter_by(token_hash=AccessToken.hash_value(token)).one()
        stored.expires_at = get_utc_time() - timedelta(hours=1)
        db.session.commit()

        response = client.get(f"/api/picks/validate/{token}")

        assert response.status_code == 403
        assert response.get_json()["code"] == "expired"


class TestSubmitPick:
    """Pick submission through a link"""

    def test_submit_then_change(self, client, link):
        _, token = link

        response = client.post(f"/api/picks/{token}", json={"values": ["Piastri"]})
        assert response.status_code == 200
        assert response.get_json()["values"] == ["Piastri"]

        client.post(f"/api/picks/{token}", json={"values": ["Norris"]})
        body = client.get(f"/api/picks/validate/{token}").get_json()
        assert body["currentPick"] == ["Norris"]

    def test_invalid_candidate(self, client, link):
        _, token = link

        response = client.post(f"/api/picks/{token}", json={"values": ["norris"]})

        assert response.status_code == 400
        assert response.get_json()["code"] == "invalid_candidate"

    def test_empty_submission(self, client, link):
        _, token = link

        response = client.post(f"/api/picks/{token}", json={"values": ["  "]})

        assert response.status_code == 400
        assert response.get_json()["code"] == "empty_submission"

    def test_locked_round_refuses_submission(self, client, link):
        round_, token = link
        round_service.lock_round(round_)

        response = client.post(f"/api/picks/{token}", json={"values": ["Norris"]})

        assert response.status_code == 403
        assert response.get_json()["code"] == "locked"


class TestSharedInbox:
    @pytest.fixture
    def shared(self, season, make_round, outbox):
        season.participants.append(Participant(name="Dan", email="home@roundpicks.io"))
        season.participants.append(Participant(name="Eve", email="home@roundpicks.io"))
        db.session.commit()
        make_round()
        names = {p.name: p.id for p in season.participants}
        return outbox.token_for("home@roundpicks.io"), names

    def test_validate_lists_every_participant(self, client, shared):
        token, _ = shared

        body = client.get(f"/api/picks/validate/{token}").get_json()

        assert body["isSharedEmail"] is True
        assert [p["name"] for p in body["participants"]] == ["Dan", "Eve"]

    def test_submission_names_the_participant(self, client, shared):
        token, names = shared

        response = client.post(
            f"/api/picks/{token}", json={"participant_id": names["Eve"], "values": ["B"]}
        )
        assert response.status_code == 200
        assert response.get_json()["participantId"] == names["Eve"]

        body = client.get(f"/api/picks/validate/{token}").get_json()
        picks = {p["name"]: p["currentPick"] for p in body["participants"]}
        assert picks == {"Dan": None, "Eve": ["B"]}

    @pytest.mark.parametrize("participant_id", [None, "abc"])
    def test_submission_without_participant(self, client, shared, participant_id):
        token, _ = shared

        response = client.post(
            f"/api/picks/{token}", json={"participant_id": participant_id, "values": ["A"]}
        )
        assert response.status_code == 400
        assert response.get_json()["code"] == "invalid_submission"

    def test_participant_outside_the_inbox(self, client, shared):
        token, names = shared

        response = client.post(
            f"/api/picks/{token}", json={"participant_id": names["Alice"], "values": ["A"]}
        )
        assert response.status_code == 400
