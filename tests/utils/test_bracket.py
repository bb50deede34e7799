import pytest

from liga_typerow.utils.bracket import (
    SLOT_EMPTY,
    SLOT_HIT,
    SLOT_MISS,
    SLOT_PENDING,
    BracketSnapshot,
    normalize_predictions,
    round_weights,
    settle_bracket,
    settle_round,
    validate_predictions,
)
from liga_typerow.utils.errors import PreconditionFailed

# Team ids 1..16, pair i is (2i + 1, 2i + 2)
ROUND_OF_16 = [[2 * i + 1, 2 * i + 2] for i in range(8)]
WEIGHTS = round_weights([1, 2, 3, 5])

FAVOURITES = normalize_predictions(
    {
        "quarter_finals": [1, 3, 5, 7, 9, 11, 13, 15],
        "semi_finals": [1, 5, 9, 13],
        "final": [1, 9],
        "winner": 1,
    }
)

ALL_QUARTERS = [("quarter_finals", i, 2 * i + 1) for i in range(8)]


def snapshot(resolutions, version=None, round_of_16=ROUND_OF_16):
    return BracketSnapshot.from_resolutions(
        round_of_16,
        resolutions,
        version=len(resolutions) if version is None else version,
    )


class TestQuarterFinalSlot:

    def test_correct_team_scores_round_weight(self):
        score = settle_bracket(snapshot([("quarter_finals", 0, 1)]), FAVOURITES, WEIGHTS)
        quarter = score.rounds[0]
        assert quarter.slots[0] == SLOT_HIT
        assert quarter.points == 1

    def test_other_team_scores_nothing(self):
        score = settle_bracket(snapshot([("quarter_finals", 0, 2)]), FAVOURITES, WEIGHTS)
        assert score.rounds[0].slots[0] == SLOT_MISS
        assert score.total == 0

    def test_unplayed_slot_is_pending_not_wrong(self):
        score = settle_bracket(snapshot([]), FAVOURITES, WEIGHTS)
        assert score.rounds[0].slots[0] == SLOT_PENDING
        assert score.rounds[0].pending == 8
        assert score.total == 0

    def test_pending_slot_rescored_after_resolution(self):
        before = settle_bracket(snapshot([]), FAVOURITES, WEIGHTS)
        after = settle_bracket(snapshot([("quarter_finals", 0, 1)]), FAVOURITES, WEIGHTS)
        assert before.total == 0
        assert after.total == 1
        assert after.version == 1


class TestRoundReadiness:

    def test_settle_round_requires_previous_round(self):
        with pytest.raises(PreconditionFailed):
            settle_round(snapshot(ALL_QUARTERS[:7]), FAVOURITES, "semi_finals", 2)

    def test_quarter_finals_need_all_sixteen_teams(self):
        partial = [list(pair) for pair in ROUND_OF_16]
        partial[7] = [15, None]
        with pytest.raises(PreconditionFailed):
            settle_round(snapshot([], round_of_16=partial), FAVOURITES, "quarter_finals", 1)

    def test_waiting_rounds_report_pending(self):
        score = settle_bracket(snapshot(ALL_QUARTERS[:7]), FAVOURITES, WEIGHTS)
        semi = score.rounds[1]
        assert semi.ready is False
        assert semi.points == 0
        assert set(semi.slots) == {SLOT_PENDING}

    def test_eliminated_team_is_a_known_miss(self):
        # Quarter slot 1 went to team 4, so team 3 can no longer win semi slot 0
        resolutions = [
            ("quarter_finals", i, 4 if i == 1 else 2 * i + 1) for i in range(8)
        ]
        predictions = dict(FAVOURITES, semi_finals=[3, 5, 9, 13])
        score = settle_round(snapshot(resolutions), predictions, "semi_finals", 2)
        assert score.slots == (SLOT_MISS, SLOT_PENDING, SLOT_PENDING, SLOT_PENDING)
        assert score.points == 0

    def test_empty_prediction_slots(self):
        predictions = normalize_predictions({"quarter_finals": [1]})
        score = settle_round(snapshot([("quarter_finals", 0, 1)]), predictions, "quarter_finals", 1)
        assert score.slots[0] == SLOT_HIT
        assert score.slots[1:] == (SLOT_EMPTY,) * 7


def test_perfect_bracket_with_default_weights():
    resolutions = ALL_QUARTERS + [
        ("semi_finals", 0, 1),
        ("semi_finals", 1, 5),
        ("semi_finals", 2, 9),
        ("semi_finals", 3, 13),
        ("final", 0, 1),
        ("final", 1, 9),
        ("winner", 0, 1),
    ]
    snap = snapshot(resolutions)
    score = settle_bracket(snap, FAVOURITES, WEIGHTS)
    assert snap.is_complete()
    assert [r.points for r in score.rounds] == [8, 8, 6, 5]
    assert score.total == 27


def test_settling_same_snapshot_twice_is_identical():
    snap = snapshot(ALL_QUARTERS + [("semi_finals", 0, 1)])
    assert (
        settle_bracket(snap, FAVOURITES, WEIGHTS).to_dict()
        == settle_bracket(snap, FAVOURITES, WEIGHTS).to_dict()
    )


class TestCheckResolution:

    def test_team_must_compete_for_slot(self):
        with pytest.raises(PreconditionFailed):
            snapshot([]).check_resolution("quarter_finals", 0, 3)

    def test_upstream_must_be_resolved(self):
        with pytest.raises(PreconditionFailed):
            snapshot([("quarter_finals", 0, 1)]).check_resolution("semi_finals", 0, 1)

    def test_same_team_again_is_noop(self):
        assert snapshot([("quarter_finals", 0, 1)]).check_resolution("quarter_finals", 0, 1)

    def test_different_team_is_rejected(self):
        with pytest.raises(PreconditionFailed):
            snapshot([("quarter_finals", 0, 1)]).check_resolution("quarter_finals", 0, 2)

    def test_unknown_round_and_slot(self):
        with pytest.raises(PreconditionFailed):
            snapshot([]).check_resolution("round_of_32", 0, 1)
        with pytest.raises(PreconditionFailed):
            snapshot([]).check_resolution("semi_finals", 4, 1)


class TestPredictions:

    def test_valid_bracket(self):
        assert validate_predictions(FAVOURITES, tuple(map(tuple, ROUND_OF_16)))[0]

    def test_semi_pick_must_come_from_own_quarter_picks(self):
        predictions = dict(FAVOURITES, semi_finals=[4, 5, 9, 13])
        valid, message = validate_predictions(predictions, tuple(map(tuple, ROUND_OF_16)))
        assert not valid
        assert "semi_finals[0]" in message

    def test_quarter_pick_must_play_in_pair(self):
        predictions = dict(FAVOURITES, quarter_finals=[3, 3, 5, 7, 9, 11, 13, 15])
        valid, _ = validate_predictions(predictions, tuple(map(tuple, ROUND_OF_16)))
        assert not valid

    def test_normalize_pads_and_rejects_oversize(self):
        predictions = normalize_predictions({"final": [1]})
        assert predictions["final"] == [1, None]
        assert predictions["winner"] is None
        with pytest.raises(ValueError):
            normalize_predictions({"final": [1, 2, 3]})

    def test_round_weights_need_four_values(self):
        with pytest.raises(ValueError):
            round_weights([1, 2, 3])
