"""Tests for the JSON API."""

from datetime import datetime, timezone

import pytest
from flask_login import FlaskLoginClient

from app import db
from app.models import Race, User


@pytest.fixture
def client_for(app):
    app.test_client_class = FlaskLoginClient

    def _client_for(user=None):
        if user is None:
            return app.test_client()
        return app.test_client(user=user)

    return _client_for


@pytest.fixture
def admin(make_user):
    return make_user("admin", is_admin=True)


@pytest.fixture
def scored_race(race_with_result, make_user, make_prediction):
    make_prediction(make_user("alice"), race_with_result)
    make_prediction(
        make_user("bob"), race_with_result, podium=["norris", "leclerc", "max_verstappen"]
    )
    return race_with_result


class TestAdminProcess:
    def test_requires_login(self, client_for, scored_race) -> None:
        response = client_for().post(f"/api/admin/races/{scored_race.id}/process")
        assert response.status_code == 401

    def test_requires_admin(self, client_for, scored_race, make_user) -> None:
        player = make_user("carol")
        response = client_for(player).post(f"/api/admin/races/{scored_race.id}/process")
        assert response.status_code == 403

    def test_scores_race(self, client_for, admin, scored_race) -> None:
        response = client_for(admin).post(f"/api/admin/races/{scored_race.id}/process")

        assert response.status_code == 200
        data = response.get_json()
        assert data["success"] is True
        assert data["processed_count"] == 2
        assert data["skipped"] is False
        assert {r["username"]: r["score"] for r in data["results"]} == {
            "alice": 18,
            "bob": 5,
        }

    def test_second_call_skips_unless_forced(self, client_for, admin, scored_race) -> None:
        client = client_for(admin)
        client.post(f"/api/admin/races/{scored_race.id}/process")

        skipped = client.post(f"/api/admin/races/{scored_race.id}/process").get_json()
        assert skipped["skipped"] is True
        assert "force=true" in skipped["message"]

        forced = client.post(
            f"/api/admin/races/{scored_race.id}/process?force=true"
        ).get_json()
        assert forced["skipped"] is False
        assert forced["processed_count"] == 2

        alice = User.query.filter_by(username="alice").one()
        assert alice.total_points == 18

    def test_unknown_race(self, client_for, admin) -> None:
        response = client_for(admin).post("/api/admin/races/999/process")
        assert response.status_code == 404
        assert "999" in response.get_json()["error"]

    def test_claimed_race_conflicts(self, client_for, admin, scored_race) -> None:
        race = db.session.get(Race, scored_race.id)
        race.scoring_claimed_at = datetime.now(timezone.utc).replace(tzinfo=None)
        db.session.commit()

        response = client_for(admin).post(f"/api/admin/races/{scored_race.id}/process")

        assert response.status_code == 409


class TestRecomputeTotals:
    def test_recompute(self, client_for, admin, scored_race) -> None:
        client = client_for(admin)
        client.post(f"/api/admin/races/{scored_race.id}/process")

        bob = User.query.filter_by(username="bob").one()
        bob.total_points = 0
        db.session.commit()

        data = client.post("/api/admin/recompute-totals").get_json()

        assert data == {"success": True, "users_corrected": 1}
        assert User.query.filter_by(username="bob").one().total_points == 5


class TestPublicEndpoints:
    def test_leaderboard(self, client_for, admin, scored_race) -> None:
        client_for(admin).post(f"/api/admin/races/{scored_race.id}/process")

        data = client_for().get("/api/leaderboard").get_json()

        board = data["leaderboard"]
        assert [row["username"] for row in board[:2]] == ["alice", "bob"]
        assert board[0]["rank"] == 1
        assert board[0]["total_points"] == 18
        # admin has no points yet
        assert board[2]["rank"] == 3

    def test_leaderboard_limit(self, client_for, make_user) -> None:
        for name in ("a", "b", "c"):
            make_user(name)
        data = client_for().get("/api/leaderboard?limit=2").get_json()
        assert len(data["leaderboard"]) == 2

    def test_race_scores(self, client_for, admin, scored_race) -> None:
        client_for(admin).post(f"/api/admin/races/{scored_race.id}/process")

        data = client_for().get(f"/api/races/{scored_race.id}/scores").get_json()

        assert data["race"]["id"] == scored_race.id
        assert data["result"]["podium"] == ["max_verstappen", "norris", "leclerc"]
        assert [s["username"] for s in data["scores"]] == ["alice", "bob"]
        assert data["scores"][0]["breakdown"][0]["type"] == "WINNER"
        assert data["scores"][0]["prediction"]["scored"] is True

    def test_race_scores_include_classification(self, client_for, race_with_result) -> None:
        data = client_for().get(f"/api/races/{race_with_result.id}/scores").get_json()

        positions = [entry["position"] for entry in data["result"]["classification"]]
        assert positions == sorted(positions)
        assert data["race"]["started"] is True
        assert data["scores"] == []

    def test_race_scores_before_results(self, client_for, make_race) -> None:
        race = make_race(hours_ago=-48)
        data = client_for().get(f"/api/races/{race.id}/scores").get_json()

        assert data["result"] is None
        assert data["scores"] == []
        assert data["race"]["started"] is False

    def test_race_scores_unknown_race(self, client_for, app) -> None:
        response = client_for().get("/api/races/999/scores")
        assert response.status_code == 404

    def test_head_to_head(self, client_for, race_with_result) -> None:
        data = client_for().get(f"/api/races/{race_with_result.id}/head-to-head").get_json()

        assert data["configuration"]["driver"] == {
            "participant1": "hamilton",
            "participant2": "stroll",
        }
        assert data["driver"]["winner"] == "hamilton"
        assert data["team"]["winner"] == "mclaren"

    def test_head_to_head_before_results(self, client_for, make_race) -> None:
        race = make_race(h2h_team1_id=None)
        data = client_for().get(f"/api/races/{race.id}/head-to-head").get_json()

        assert data["configuration"]["team"] is None
        assert data["driver"] is None

    def test_point_schedule(self, client_for, app) -> None:
        data = client_for().get("/api/point-schedule").get_json()
        assert data["max_points"] == 24
        assert data["points"]["winner"] == 6


class TestPredictionSubmission:
    PICKS = {
        "podium": ["max_verstappen", "norris", "leclerc"],
        "pole_position": "leclerc",
        "driver_h2h_winner": "stroll",
    }

    def test_requires_login(self, client_for, make_race) -> None:
        race = make_race(hours_ago=-48)
        response = client_for().post(f"/api/races/{race.id}/prediction", json=self.PICKS)
        assert response.status_code == 401

    def test_create_then_update(self, client_for, make_user, make_race) -> None:
        race = make_race(hours_ago=-48)
        client = client_for(make_user("alice"))

        created = client.post(f"/api/races/{race.id}/prediction", json=self.PICKS)
        assert created.status_code == 201
        assert created.get_json()["prediction"]["podium"][0] == "max_verstappen"

        updated = client.post(
            f"/api/races/{race.id}/prediction",
            json={**self.PICKS, "podium": ["norris", "piastri", "leclerc"]},
        )
        assert updated.status_code == 200
        assert updated.get_json()["message"] == "Prediction updated"

        data = client.get(f"/api/races/{race.id}/prediction").get_json()
        assert data["has_prediction"] is True
        assert data["accepts_predictions"] is True
        assert data["prediction"]["podium"] == ["norris", "piastri", "leclerc"]
        assert data["prediction"]["driver_head_to_head"]["winner"] == "stroll"

    def test_rejected_after_close(self, client_for, make_user, make_race) -> None:
        race = make_race(hours_ago=1)
        response = client_for(make_user("alice")).post(
            f"/api/races/{race.id}/prediction", json=self.PICKS
        )
        assert response.status_code == 403
        assert "closed" in response.get_json()["error"]

    def test_rejected_after_scoring(
        self, client_for, admin, race_with_result, make_user
    ) -> None:
        client_for(admin).post(f"/api/admin/races/{race_with_result.id}/process")

        race = db.session.get(Race, race_with_result.id)
        assert race.predictions_open is False

        response = client_for(make_user("late")).post(
            f"/api/races/{race.id}/prediction", json=self.PICKS
        )
        assert response.status_code == 403

    def test_invalid_podium(self, client_for, make_user, make_race) -> None:
        race = make_race(hours_ago=-48)
        response = client_for(make_user("alice")).post(
            f"/api/races/{race.id}/prediction", json={"podium": [1, 2, 3]}
        )
        assert response.status_code == 400

    def test_no_prediction_yet(self, client_for, make_user, make_race) -> None:
        race = make_race(hours_ago=-48)
        data = client_for(make_user("alice")).get(f"/api/races/{race.id}/prediction").get_json()
        assert data == {
            "has_prediction": False,
            "prediction": None,
            "accepts_predictions": True,
        }

    def test_unknown_race(self, client_for, make_user) -> None:
        response = client_for(make_user("alice")).post(
            "/api/races/999/prediction", json=self.PICKS
        )
        assert response.status_code == 404
