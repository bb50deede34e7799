"""
Scoring rules for Liga Typerow

This module holds the pure point calculations for match bets and top scorer
picks. Persistence and ranking aggregation live in
liga_typerow/services/settlement_service.py; the knockout bracket rules are
in liga_typerow/utils/bracket.py.
"""


def outcome_sign(score_a, score_b):
    """Return 1 if team A wins, -1 if team B wins and 0 for a draw"""
    if score_a > score_b:
        return 1
    if score_a < score_b:
        return -1
    return 0


def calculate_bet_points(predicted, actual, points_for_exact, points_for_winner):
    """
    Calculate points for a single match bet.

    Returns:
        points_for_exact for the exact score
        points_for_winner for the correct outcome (win, draw or loss)
        0 otherwise

    Args:
        predicted: (team_a_score, team_b_score) from the bet
        actual: (team_a_score, team_b_score) final score of the match
    """
    pred_a, pred_b = predicted
    actual_a, actual_b = actual

    if pred_a == actual_a and pred_b == actual_b:
        return points_for_exact

    if outcome_sign(pred_a, pred_b) == outcome_sign(actual_a, actual_b):
        return points_for_winner

    return 0


def top_scorer_leaders(goals_by_player):
    """
    Get the players tied for the most goals.

    Args:
        goals_by_player: dict of player_id -> goals

    Returns:
        set of player ids (empty if nobody has scored)
    """
    if not goals_by_player:
        return set()

    top_goals = max(goals_by_player.values())
    if top_goals <= 0:
        return set()

    return {
        player_id
        for player_id, goals in goals_by_player.items()
        if goals == top_goals
    }


def scorer_rank(player_id, goals_by_player):
    """Competition rank of a player (1 + players with strictly more goals)"""
    goals = goals_by_player.get(player_id)
    if goals is None:
        return None
    return 1 + sum(1 for other in goals_by_player.values() if other > goals)


def calculate_scorer_points(player_id, goals_by_player, scoring):
    """
    Calculate points for a top scorer pick.

    Args:
        player_id: predicted player
        goals_by_player: dict of player_id -> goals at tournament end
        scoring: {"exact": points, "top_n": {"n": n, "points": points} or None}
    """
    if player_id in top_scorer_leaders(goals_by_player):
        return scoring["exact"]

    top_n = scoring.get("top_n")
    if top_n and top_n.get("n", 0) > 0:
        rank = scorer_rank(player_id, goals_by_player)
        if rank is not None and goals_by_player[player_id] > 0 and rank <= top_n["n"]:
            return top_n["points"]

    return 0
