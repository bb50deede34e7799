from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from liga_typerow.models import AdminAction, Bet, KnockoutBet, Match, Ranking, Setting
from liga_typerow.services.scheduler_service import scheduler_service
from liga_typerow.services.settings_service import SCORER_SCORING


@pytest.fixture
def match(make_match):
    return make_match(points_for_exact=5, points_for_winner=2)


def post_result(client, headers, match_id, a, b):
    return client.post(
        f"/api/admin/matches/{match_id}/result",
        json={"team_a_score": a, "team_b_score": b},
        headers=headers,
    )


class TestAdminAuth:

    def test_admin_token_required(self, client, match):
        response = post_result(client, {}, match.id, 1, 0)
        assert response.status_code == 403

        response = post_result(client, {"X-Admin-Token": "wrong"}, match.id, 1, 0)
        assert response.status_code == 403

    def test_no_token_configured_rejects_everything(self, app, client, match):
        app.config["ADMIN_API_TOKEN"] = None
        response = post_result(client, {"X-Admin-Token": ""}, match.id, 1, 0)
        assert response.status_code == 403


class TestResultEndpoint:

    def test_result_settles_bets(self, client, admin_headers, match, make_profile):
        user = make_profile()
        response = client.post(
            "/api/bets",
            json={"user_id": user.id, "match_id": match.id, "team_a_score": 3, "team_b_score": 0},
        )
        assert response.status_code == 200

        response = post_result(client, admin_headers, match.id, 2, 1)

        assert response.status_code == 200
        data = response.get_json()
        assert data["finished_now"] is True
        assert data["bets_settled"] == 1
        assert Bet.query.one().points_awarded == 2

    def test_different_score_conflicts(self, client, admin_headers, match):
        post_result(client, admin_headers, match.id, 2, 1)

        response = post_result(client, admin_headers, match.id, 0, 0)

        assert response.status_code == 409
        assert "already finished" in response.get_json()["error"]

    def test_invalid_score(self, client, admin_headers, match):
        response = post_result(client, admin_headers, match.id, -3, 1)
        assert response.status_code == 400

    def test_unknown_match(self, client, admin_headers, app):
        response = post_result(client, admin_headers, 12345, 1, 1)
        assert response.status_code == 404

    def test_settle_unfinished_match_conflicts(self, client, admin_headers, match):
        response = client.post(f"/api/admin/matches/{match.id}/settle", headers=admin_headers)
        assert response.status_code == 409


class TestMatchAdmin:

    def test_non_integer_points_rejected(self, client, admin_headers, make_team):
        a, b = make_team(), make_team()
        response = client.post(
            "/api/admin/matches",
            json={
                "phase": "final",
                "team_a_id": a.id,
                "team_b_id": b.id,
                "bet_deadline": (datetime.now(timezone.utc) + timedelta(days=1)).isoformat(),
                "points_for_exact": "5",
            },
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert "integers" in response.get_json()["error"]
        assert Match.query.count() == 0

    def test_delete_unplayed_match(self, client, admin_headers, match):
        response = client.delete(f"/api/admin/matches/{match.id}", headers=admin_headers)

        assert response.status_code == 200
        assert Match.query.count() == 0
        action = AdminAction.query.filter_by(action_type="delete_match").one()
        assert action.actor == "pytest"

    def test_delete_match_with_bets_conflicts(self, client, admin_headers, match, make_profile):
        client.post(
            "/api/bets",
            json={
                "user_id": make_profile().id,
                "match_id": match.id,
                "team_a_score": 1,
                "team_b_score": 1,
            },
        )

        response = client.delete(f"/api/admin/matches/{match.id}", headers=admin_headers)

        assert response.status_code == 409
        assert Match.query.count() == 1

    def test_delete_finished_match_conflicts(self, client, admin_headers, match):
        post_result(client, admin_headers, match.id, 1, 0)

        response = client.delete(f"/api/admin/matches/{match.id}", headers=admin_headers)

        assert response.status_code == 409
        assert "finished" in response.get_json()["error"]

    def test_delete_unknown_match(self, client, admin_headers, app):
        response = client.delete("/api/admin/matches/999", headers=admin_headers)
        assert response.status_code == 404


class TestBetEndpoints:

    def test_bet_after_result_rejected(self, client, admin_headers, match, make_profile):
        user = make_profile()
        post_result(client, admin_headers, match.id, 1, 0)

        response = client.post(
            "/api/bets",
            json={"user_id": user.id, "match_id": match.id, "team_a_score": 1, "team_b_score": 0},
        )

        assert response.status_code == 400
        assert response.get_json()["error"] == "Match is already finished"

    def test_match_bets_hidden_until_deadline(self, client, match):
        response = client.get(f"/api/matches/{match.id}/bets")
        assert response.status_code == 403

    def test_match_bets_visible_after_deadline(self, client, make_match):
        match = make_match(bet_deadline=datetime.now(timezone.utc) - timedelta(hours=1))
        response = client.get(f"/api/matches/{match.id}/bets")
        assert response.status_code == 200
        assert response.get_json()["bets"] == []

    def test_knockout_bet_after_lock(self, client, tree, make_profile):
        response = client.post(
            f"/api/knockout/{tree.id}/bets",
            json={"user_id": make_profile().id, "predictions": {}},
        )
        assert response.status_code == 400
        assert "closed" in response.get_json()["error"]


class TestKnockoutEndpoints:

    def test_resolve_and_read_bracket(self, client, admin_headers, tree, bracket_teams):
        response = client.post(
            f"/api/admin/knockout/{tree.id}/resolve",
            json={"round": "quarter_finals", "slot": 0, "team_id": bracket_teams[1].id},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.get_json()["version"] == 1

        bracket = client.get("/api/knockout").get_json()
        assert bracket["quarter_finals"][0] == bracket_teams[1].id
        assert bracket["resolutions"][0]["team_id"] == bracket_teams[1].id
        assert bracket["complete"] is False

    def test_conflicting_resolution(self, client, admin_headers, tree, bracket_teams):
        url = f"/api/admin/knockout/{tree.id}/resolve"
        client.post(
            url,
            json={"round": "quarter_finals", "slot": 0, "team_id": bracket_teams[0].id},
            headers=admin_headers,
        )
        response = client.post(
            url,
            json={"round": "quarter_finals", "slot": 0, "team_id": bracket_teams[1].id},
            headers=admin_headers,
        )
        assert response.status_code == 409

    def test_settle_not_ready_round(self, client, admin_headers, tree):
        response = client.post(
            f"/api/admin/knockout/{tree.id}/settle",
            json={"through_round": "final"},
            headers=admin_headers,
        )
        assert response.status_code == 409

    def test_round_of_16_change_resettles_predictions(
        self, db, client, admin_headers, tree, bracket_teams, make_profile,
        favourites_prediction, before_lock,
    ):
        user = make_profile()
        bet, message = KnockoutBet.place_bet(
            user.id, tree.id, favourites_prediction, now=before_lock
        )
        assert bet is not None, message
        db.session.commit()

        response = client.put(
            f"/api/admin/knockout/{tree.id}/round-of-16/7",
            json={"team1_id": bracket_teams[14].id, "team2_id": bracket_teams[15].id},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.get_json()["settlement"]["bets_settled"] == 1
        db.session.expire_all()
        assert KnockoutBet.query.one().settled_version == 0
        assert Ranking.query.filter_by(user_id=user.id).count() == 1


class TestRankingsEndpoints:

    def test_leaderboard(self, client, admin_headers, match, make_profile):
        winner, loser = make_profile("winner"), make_profile("loser")
        for user, score in [(winner, (2, 1)), (loser, (0, 1))]:
            client.post(
                "/api/bets",
                json={
                    "user_id": user.id,
                    "match_id": match.id,
                    "team_a_score": score[0],
                    "team_b_score": score[1],
                },
            )
        post_result(client, admin_headers, match.id, 2, 1)

        response = client.get("/api/rankings")

        assert response.status_code == 200
        rows = response.get_json()["rankings"]
        assert [row["user"]["username"] for row in rows] == ["winner", "loser"]
        assert rows[0]["total_points"] == 5

    def test_bonus_endpoint(self, client, admin_headers, make_profile):
        user = make_profile()
        response = client.put(
            f"/api/admin/rankings/{user.id}/bonus",
            json={"bonus_points": 7},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.get_json()["ranking"]["total_points"] == 7
        assert Ranking.query.one().bonus_points == 7

    def test_recompute_unknown_user(self, client, admin_headers, app):
        response = client.post("/api/admin/rankings/77/recompute", headers=admin_headers)
        assert response.status_code == 404

    def test_actions_are_listed(self, client, admin_headers, match):
        post_result(client, admin_headers, match.id, 0, 0)

        actions = client.get("/api/admin/actions", headers=admin_headers).get_json()

        assert actions[0]["action_type"] == "match_result"
        assert actions[0]["actor"] == "pytest"


class TestSettingsEndpoint:

    def test_invalid_weights_rejected(self, client, admin_headers, app):
        response = client.put(
            "/api/admin/settings/ko_round_points",
            json={"value": [1, 2]},
            headers=admin_headers,
        )
        assert response.status_code == 400

    def test_unknown_key_rejected(self, client, admin_headers, app):
        response = client.put(
            "/api/admin/settings/favourite_colour", json={"value": 1}, headers=admin_headers
        )
        assert response.status_code == 400

    @pytest.mark.parametrize(
        "value",
        [
            {"exact": 5, "top_n": {"n": "3", "points": 2}},
            {"exact": "five"},
            {"exact": True},
            {"exact": 5, "top_n": {"n": 3, "points": -1}},
        ],
    )
    def test_invalid_scorer_scoring_rejected(self, client, admin_headers, value):
        response = client.put(
            "/api/admin/settings/scorer_scoring", json={"value": value}, headers=admin_headers
        )

        assert response.status_code == 400
        assert Setting.get_value(SCORER_SCORING) is None

    def test_scorer_scoring_stored_and_used(self, client, admin_headers, make_player):
        make_player("Kane", goals=6)
        response = client.put(
            "/api/admin/settings/scorer_scoring",
            json={"value": {"exact": 4, "top_n": {"n": 2, "points": 1}}},
            headers=admin_headers,
        )
        assert response.status_code == 200

        response = client.post("/api/admin/scorers/settle", headers=admin_headers)

        assert response.status_code == 200
        assert response.get_json()["leaders"]


class TestSchedulerEndpoints:

    def test_manual_run(self, client, admin_headers):
        with patch.object(
            scheduler_service, "force_run", return_value=(True, "Manual settle run completed")
        ) as force_run:
            response = client.post("/api/admin/scheduler/run/settle", headers=admin_headers)

        assert response.status_code == 200
        force_run.assert_called_once_with("settle")

    def test_manual_run_without_scheduler(self, client, admin_headers):
        with patch.object(scheduler_service, "app", None):
            response = client.post("/api/admin/scheduler/run/rankings", headers=admin_headers)

        assert response.status_code == 400
        assert response.get_json()["success"] is False


def test_security_headers(client, app):
    response = client.get("/api/teams")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.get_json() == []


def test_match_listing_by_status(client, make_match):
    make_match()
    make_match(bet_deadline=datetime.now(timezone.utc) - timedelta(hours=2))

    open_matches = client.get("/api/matches?status=open").get_json()
    locked = client.get("/api/matches?status=locked").get_json()

    assert len(open_matches) == 1
    assert len(locked) == 1
    assert Match.query.count() == 2
