import os
from datetime import datetime, timedelta, timezone

import pytest

from config import Config
from liga_typerow.models import Bet, KnockoutBet, KnockoutTree, Match, ScorerBet, Team


class TestMatchBets:

    def test_bet_can_be_changed_before_deadline(self, db, make_profile, make_match):
        user = make_profile()
        match = make_match()

        Bet.place_bet(user.id, match.id, 1, 0)
        db.session.commit()
        bet, message = Bet.place_bet(user.id, match.id, 2, 2)
        db.session.commit()

        assert "updated" in message
        assert Bet.query.count() == 1
        assert bet.predicted_score == (2, 2)

    def test_bet_locked_after_deadline(self, make_profile, make_match):
        user = make_profile()
        match = make_match(bet_deadline=datetime.now(timezone.utc) - timedelta(minutes=1))

        bet, message = Bet.place_bet(user.id, match.id, 1, 0)

        assert bet is None
        assert "closed" in message

    def test_scores_must_be_non_negative_integers(self, make_profile, make_match):
        user = make_profile()
        match = make_match()

        assert Bet.place_bet(user.id, match.id, -1, 0)[0] is None
        assert Bet.place_bet(user.id, match.id, 1.5, 0)[0] is None
        assert Bet.place_bet(user.id, match.id, True, 0)[0] is None

    def test_unknown_user(self, make_match):
        bet, message = Bet.place_bet(4242, make_match().id, 1, 0)
        assert bet is None
        assert message == "User not found"


class TestMatchCreation:

    def test_group_number_only_for_group_phase(self, make_team):
        a, b = make_team(), make_team()
        deadline = datetime.now(timezone.utc) + timedelta(days=1)

        assert Match.create_match("group", a.id, b.id, deadline)[0] is None
        assert Match.create_match("group", a.id, b.id, deadline, group_number=7)[0] is None
        assert Match.create_match("final", a.id, b.id, deadline, group_number=1)[0] is None

    def test_teams_must_differ(self, make_team):
        a = make_team()
        match, message = Match.create_match(
            "final", a.id, a.id, datetime.now(timezone.utc) + timedelta(days=1)
        )
        assert match is None
        assert "different" in message

    def test_config_defaults(self, make_match):
        match = make_match(phase="semi_final")
        assert (match.points_for_exact, match.points_for_winner) == (3, 1)
        assert match.status == "open"

    def test_finish_flips_only_once(self, db, make_match):
        match = make_match()

        assert Match.finish(match.id, 1, 0) is True
        assert Match.finish(match.id, 3, 3) is False
        db.session.commit()

        assert db.session.get(Match, match.id).final_score == (1, 0)


class TestTeams:

    def test_short_name_is_three_letters(self, app):
        assert Team.create_team("Poland", "PL")[0] is None
        assert Team.create_team("Poland", "P0L")[0] is None
        team, _ = Team.create_team("Poland", "pol")
        assert team.short_name == "POL"

    def test_referenced_team_is_immutable(self, db, make_match):
        match = make_match()
        team = match.team_a

        success, _ = team.update_details(name="Renamed")

        assert success is False
        assert team.is_referenced()


class TestKnockoutBets:

    def test_unreachable_pick_rejected(self, tree, bracket_teams, make_profile, before_lock):
        user = make_profile()
        ids = [team.id for team in bracket_teams]

        bet, message = KnockoutBet.place_bet(
            user.id,
            tree.id,
            {"quarter_finals": [ids[0], ids[2]], "semi_finals": [ids[3]]},
            now=before_lock,
        )

        assert bet is None
        assert "semi_finals[0]" in message

    def test_partial_bracket_is_padded(self, db, tree, bracket_teams, make_profile, before_lock):
        user = make_profile()

        bet, _ = KnockoutBet.place_bet(
            user.id, tree.id, {"quarter_finals": [bracket_teams[1].id]}, now=before_lock
        )
        db.session.commit()

        assert bet.predictions["quarter_finals"][0] == bracket_teams[1].id
        assert bet.predictions["semi_finals"] == [None] * 4
        assert bet.predictions["winner"] is None

    def test_locked_after_global_deadline(self, tree, make_profile):
        bet, message = KnockoutBet.place_bet(
            make_profile().id, tree.id, {}, now=datetime(2024, 7, 1, tzinfo=timezone.utc)
        )
        assert bet is None
        assert "closed" in message

    def test_round_of_16_assignment(self, db, make_team):
        teams = [make_team() for _ in range(4)]
        pairs = [[teams[0].id, teams[1].id]] + [[None, None]] * 7
        tree, _ = KnockoutTree.create_tree(pairs)
        db.session.commit()

        assert tree.assign_round_of_16(1, teams[2].id, teams[3].id)[0] is True
        assert tree.assign_round_of_16(2, teams[0].id, None)[0] is False
        assert tree.snapshot().round_of_16[1] == (teams[2].id, teams[3].id)


class TestLockDefaults:

    @pytest.mark.skipif(
        bool(os.environ.get("KO_LOCK_DEADLINE") or os.environ.get("SCORER_LOCK_DEADLINE")),
        reason="lock deadline set in the environment",
    )
    def test_no_lock_deadline_by_default(self):
        assert Config.KO_LOCK_DEADLINE is None
        assert Config.SCORER_LOCK_DEADLINE is None

    def test_unset_deadline_keeps_betting_open(self, app, tree, make_profile, make_player):
        app.config["KO_LOCK_DEADLINE"] = None
        app.config["SCORER_LOCK_DEADLINE"] = None
        user = make_profile()

        bet, message = KnockoutBet.place_bet(user.id, tree.id, {})
        assert bet is not None, message
        scorer_bet, message = ScorerBet.place_bet(user.id, make_player("Zielinski").id)
        assert scorer_bet is not None, message
