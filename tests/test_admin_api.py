"""
Tests for administrator sign-in and the admin endpoints.
"""

import pytest

from roundpicks import db
from roundpicks.models import AdminAction, PointSchedule, Round
from roundpicks.services import pick_service
from tests.conftest import BEFORE_LOCK

POINTS = {"first": 8, "second": 5, "third": 4, "fourth": 3, "fifth": 2, "sixth_plus": 0}


class TestMagicLinkSignIn:
    """Passwordless administrator sign-in"""

    def test_admin_endpoints_need_a_session(self, client, app):
        response = client.post("/api/admin/rounds", json={})

        assert response.status_code == 401
        assert response.get_json()["code"] == "unauthorized"

    def test_unknown_address_gets_same_answer(self, client, app, outbox):
        response = client.post("/auth/magic-link", json={"email": "stranger@roundpicks.io"})

        assert response.status_code == 202
        assert outbox.outbox == []

    def test_malformed_address(self, client, app):
        response = client.post("/auth/magic-link", json={"email": "not-an-address"})
        assert response.status_code == 400

    def test_link_signs_in_once(self, client, admin, outbox):
        client.post("/auth/magic-link", json={"email": "OLIVE@roundpicks.io"})
        token = outbox.token_for(admin.email, "admin_login")

        first = client.get(f"/auth/magic/{token}")
        assert first.status_code == 200
        assert first.get_json()["admin"]["email"] == admin.email
        assert client.get("/auth/me").status_code == 200

        again = client.get(f"/auth/magic/{token}")
        assert again.status_code == 403
        assert again.get_json()["code"] == "invalid"

    def test_logout(self, admin_client):
        assert admin_client.post("/auth/logout").status_code == 200
        assert admin_client.get("/auth/me").status_code == 401


class TestRoundEndpoints:
    def test_create_round(self, admin_client, season):
        response = admin_client.post(
            "/api/admin/rounds",
            json={
                "season_id": season.id,
                "name": "Monza",
                "pick_type": "single",
                "lock_time": "2030-09-07T15:00:00",
                "timezone": "Europe/Rome",
                "entrants": ["Leclerc", "Sainz"],
            },
        )

        assert response.status_code == 201
        body = response.get_json()
        assert body["status"] == "draft"
        assert body["lockTime"] == "2030-09-07T13:00:00+00:00"
        assert body["candidates"] == ["Leclerc", "Sainz"]

    def test_create_round_form_errors(self, admin_client, season):
        response = admin_client.post(
            "/api/admin/rounds",
            json={"season_id": season.id, "name": "Monza", "lock_time": "next tuesday",
                  "timezone": "Mars/Olympus"},
        )

        assert response.status_code == 400
        body = response.get_json()
        assert body["code"] == "validation_error"
        assert set(body["fields"]) == {"lock_time", "timezone"}

    def test_activate_and_lock(self, admin_client, make_round, outbox):
        round_ = make_round(activate=False)

        response = admin_client.post(f"/api/admin/rounds/{round_.id}/activate")
        assert response.status_code == 200
        assert response.get_json()["links_issued"] == 3
        assert response.get_json()["round"]["status"] == "active"

        again = admin_client.post(f"/api/admin/rounds/{round_.id}/activate")
        assert again.status_code == 409
        assert again.get_json()["code"] == "invalid_transition"

        locked = admin_client.post(f"/api/admin/rounds/{round_.id}/lock")
        assert locked.get_json()["round"]["status"] == "locked"

    def test_complete_round(self, admin_client, make_round, participants):
        round_ = make_round()
        pick_service.submit_pick(participants["Bob"].id, round_.id, ["B"], now=BEFORE_LOCK)
        admin_client.post(f"/api/admin/rounds/{round_.id}/lock")

        response = admin_client.post(
            f"/api/admin/rounds/{round_.id}/complete", json={"first": ["B"], "second": "A"}
        )

        assert response.status_code == 200
        assert response.get_json()["round"]["outcome"][:2] == [["B"], ["A"]]
        assert db.session.get(Round, round_.id).status == Round.STATUS_COMPLETED

    def test_complete_with_unknown_entrant(self, admin_client, make_round):
        round_ = make_round()
        admin_client.post(f"/api/admin/rounds/{round_.id}/lock")

        response = admin_client.post(
            f"/api/admin/rounds/{round_.id}/complete", json={"outcome": [["Nobody"]]}
        )

        assert response.status_code == 400
        assert response.get_json()["code"] == "invalid_outcome"

    def test_complete_active_round_before_lock(self, admin_client, make_round):
        round_ = make_round()

        response = admin_client.post(
            f"/api/admin/rounds/{round_.id}/complete", json={"first": ["A"]}
        )
        assert response.status_code == 409

    def test_unknown_round(self, admin_client):
        assert admin_client.post("/api/admin/rounds/999/lock").status_code == 404

    def test_enter_pick_after_lock(self, admin_client, admin, make_round, participants):
        round_ = make_round()
        cara = participants["Cara"]
        admin_client.post(f"/api/admin/rounds/{round_.id}/lock")

        response = admin_client.post(
            f"/api/admin/rounds/{round_.id}/picks",
            json={"participant_id": cara.id, "values": ["C"]},
        )

        assert response.status_code == 200
        assert response.get_json()["pick"]["values"] == ["C"]
        assert pick_service.get_prediction(cara.id, round_.id).values == ["C"]
        action = AdminAction.query.filter_by(action_type="admin_pick").one()
        assert action.admin_id == admin.id

    def test_enter_pick_rejects_unknown_candidate(self, admin_client, make_round, participants):
        round_ = make_round()

        response = admin_client.post(
            f"/api/admin/rounds/{round_.id}/picks",
            json={"participant_id": participants["Alice"].id, "values": ["Nobody"]},
        )

        assert response.status_code == 400
        assert response.get_json()["code"] == "invalid_candidate"

    def test_enter_pick_on_completed_round(self, admin_client, make_round, participants):
        round_ = make_round()
        admin_client.post(f"/api/admin/rounds/{round_.id}/lock")
        admin_client.post(f"/api/admin/rounds/{round_.id}/complete", json={"first": ["A"]})

        response = admin_client.post(
            f"/api/admin/rounds/{round_.id}/picks",
            json={"participant_id": participants["Alice"].id, "values": ["A"]},
        )

        assert response.status_code == 409
        assert response.get_json()["code"] == "invalid_transition"

    def test_enter_pick_needs_participant(self, admin_client, make_round):
        round_ = make_round()

        response = admin_client.post(f"/api/admin/rounds/{round_.id}/picks", json={"values": ["A"]})

        assert response.status_code == 400
        assert "participant_id" in response.get_json()["fields"]


class TestPointScheduleEndpoint:
    def test_update(self, admin_client, admin):
        response = admin_client.put("/api/admin/point-schedule", json=POINTS)

        assert response.status_code == 200
        assert response.get_json() == dict(POINTS, version=2)
        assert PointSchedule.current().created_by_admin_id == admin.id

    @pytest.mark.parametrize("change", [{"first": 21}, {"fifth": -1}, {"second": "x"}])
    def test_invalid_values(self, admin_client, change):
        response = admin_client.put("/api/admin/point-schedule", json=dict(POINTS, **change))

        assert response.status_code == 400
        assert response.get_json()["code"] == "validation_error"
        assert PointSchedule.current().version == 1

    def test_missing_tier(self, admin_client):
        payload = {tier: value for tier, value in POINTS.items() if tier != "fifth"}

        response = admin_client.put("/api/admin/point-schedule", json=payload)

        assert response.status_code == 400
        assert "fifth" in response.get_json()["fields"]

    def test_bounds_follow_configuration(self, app, admin_client):
        app.config["POINTS_MAX"] = 30

        response = admin_client.put("/api/admin/point-schedule", json=dict(POINTS, first=25))
        assert response.status_code == 200
        assert PointSchedule.current().first == 25

        app.config.update(POINTS_MIN=2, POINTS_MAX=20)
        response = admin_client.put("/api/admin/point-schedule", json=POINTS)
        assert response.status_code == 400
        assert "sixth_plus" in response.get_json()["fields"]


class TestSeasonEndpoints:
    def test_end_and_reopen(self, admin_client, season, make_round, participants):
        round_ = make_round()
        pick_service.submit_pick(participants["Cara"].id, round_.id, ["A"], now=BEFORE_LOCK)
        admin_client.post(f"/api/admin/rounds/{round_.id}/lock")
        admin_client.post(f"/api/admin/rounds/{round_.id}/complete", json={"first": ["A"]})

        ended = admin_client.post(f"/api/admin/seasons/{season.id}/end")
        assert ended.status_code == 200
        body = ended.get_json()
        assert body["season"]["point_schedule_version"] == 1
        assert body["winners"][0]["participant"]["name"] == "Cara"

        assert admin_client.post(f"/api/admin/seasons/{season.id}/recompute").status_code == 409

        reopened = admin_client.post(f"/api/admin/seasons/{season.id}/reopen")
        assert reopened.get_json()["season"]["ended_at"] is None

    def test_actions_are_logged(self, admin_client, admin, make_round):
        round_ = make_round(activate=False)
        admin_client.post(f"/api/admin/rounds/{round_.id}/activate")

        actions = admin_client.get("/api/admin/actions").get_json()

        assert actions[0]["action_type"] == "activate_round"
        assert AdminAction.query.filter_by(admin_id=admin.id).count() == 1
