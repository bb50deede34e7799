"""
Liga Typerow Settlement Service

Turns finalized results into awarded points and keeps the rankings current:

    record_match_result / settle_match      match bets
    resolve_slot / settle_knockout          knockout bracket predictions
    settle_scorers                          top scorer picks
    recompute_ranking / set_bonus_points    per-user ranking rows

Every public operation runs in one transaction and commits at the end. Rejected
operations raise PreconditionFailed or NotFound and leave the database
untouched; database errors roll back and propagate. All operations are pure
functions of stored state, so re-running one with the same inputs writes the
same values again.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from liga_typerow import db
from liga_typerow.models import (
    AdminAction,
    Bet,
    KnockoutBet,
    KnockoutResolution,
    KnockoutTree,
    Match,
    Player,
    Profile,
    Ranking,
    ScorerBet,
    Team,
)
from liga_typerow.services.settings_service import ko_round_weights, scorer_scoring
from liga_typerow.utils.bracket import ROUNDS, normalize_predictions, settle_bracket
from liga_typerow.utils.cache_utils import invalidate_model_cache
from liga_typerow.utils.errors import NotFound, PreconditionFailed, SettlementError
from liga_typerow.utils.scoring import (
    calculate_bet_points,
    calculate_scorer_points,
    top_scorer_leaders,
)

logger = logging.getLogger(__name__)


def _commit(operation):
    """Commit the current transaction, rolling back on database errors"""
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"{operation} failed to commit: {e}")
        raise
    invalidate_model_cache("Ranking")


def _run(operation, func_, *args, **kwargs):
    """Run a settlement step inside one transaction"""
    try:
        result = func_(*args, **kwargs)
    except SettlementError as e:
        db.session.rollback()
        logger.warning(f"{operation} rejected: {e}")
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"{operation} failed: {e}", exc_info=True)
        raise
    _commit(operation)
    return result


def _validate_score(value):
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise SettlementError("Scores must be non-negative integers")


# Match settlement


def _settle_match_bets(match):
    """Recompute points for every bet on a finished match (no commit)"""
    if not match.is_finished or not match.has_result:
        raise PreconditionFailed(
            f"Match {match.id} cannot be settled before its final score is recorded"
        )

    actual = match.final_score
    bets = match.bets.all()
    user_ids = set()
    for bet in bets:
        bet.points_awarded = calculate_bet_points(
            bet.predicted_score,
            actual,
            match.points_for_exact,
            match.points_for_winner,
        )
        user_ids.add(bet.user_id)

    match.settled_at = datetime.now(timezone.utc)
    db.session.flush()

    for user_id in sorted(user_ids):
        _recompute_ranking(user_id)

    logger.info(
        f"Settled match {match.id} ({actual[0]}:{actual[1]}): {len(bets)} bets"
    )
    return {
        "match_id": match.id,
        "score": list(actual),
        "bets_settled": len(bets),
        "user_ids": sorted(user_ids),
    }


def _record_match_result(match_id, team_a_score, team_b_score, actor):
    _validate_score(team_a_score)
    _validate_score(team_b_score)

    match = db.session.get(Match, match_id)
    if not match:
        raise NotFound(f"Match {match_id} not found")

    finished_now = Match.finish(match_id, team_a_score, team_b_score)
    db.session.refresh(match)

    if not finished_now:
        if match.final_score != (team_a_score, team_b_score):
            raise PreconditionFailed(
                f"Match {match_id} is already finished with "
                f"{match.team_a_score}:{match.team_b_score}"
            )
        logger.info(f"Match {match_id} result already recorded, re-settling")
    else:
        AdminAction.log_match_result(match, actor=actor)

    result = _settle_match_bets(match)
    result["finished_now"] = finished_now
    return result


def record_match_result(match_id, team_a_score, team_b_score, actor="system"):
    """
    Handle a "match finished" event: store the final score and settle bets.

    The finished flag is flipped by a conditional update, so the result is
    written at most once. Repeating the call with the same score re-settles
    (same values); a different score for a finished match is rejected.
    """
    return _run(
        "Match result",
        _record_match_result,
        match_id,
        team_a_score,
        team_b_score,
        actor,
    )


def _settle_match(match_id):
    match = db.session.get(Match, match_id)
    if not match:
        raise NotFound(f"Match {match_id} not found")
    return _settle_match_bets(match)


def settle_match(match_id):
    """Recompute bet points for a finished match"""
    return _run("Match settlement", _settle_match, match_id)


def settle_pending_matches():
    """
    Settle finished matches that have never been settled.

    Returns:
        tuple: (settled_count, failed_match_ids)
    """
    pending = (
        Match.query.filter(Match.is_finished.is_(True), Match.settled_at.is_(None))
        .order_by(Match.bet_deadline)
        .all()
    )

    settled = 0
    failed = []
    for match in pending:
        try:
            settle_match(match.id)
            settled += 1
        except SettlementError as e:
            failed.append(match.id)
            logger.warning(f"Skipping match {match.id}: {e}")

    if settled:
        logger.info(f"Settled {settled} pending matches")
    return settled, failed


# Knockout bracket settlement


def _settle_knockout_bets(tree, snapshot):
    """Score every bracket prediction against one snapshot (no commit)"""
    weights = ko_round_weights()
    user_ids = set()

    bets = tree.bets.all()
    for bet in bets:
        score = settle_bracket(snapshot, normalize_predictions(bet.predictions), weights)
        bet.points_awarded = score.total
        bet.breakdown = score.to_dict()
        bet.settled_version = snapshot.version
        user_ids.add(bet.user_id)

    db.session.flush()

    for user_id in sorted(user_ids):
        _recompute_ranking(user_id)

    logger.info(
        f"Settled knockout tree {tree.id} at version {snapshot.version}: "
        f"{len(bets)} predictions"
    )
    return {
        "ko_tree_id": tree.id,
        "version": snapshot.version,
        "bets_settled": len(bets),
        "ready_rounds": [name for name in ROUNDS if snapshot.is_round_ready(name)],
    }


def _get_tree(tree_id):
    tree = db.session.get(KnockoutTree, tree_id)
    if not tree:
        raise NotFound(f"Knockout tree {tree_id} not found")
    return tree


def _resolve_slot(tree_id, round_name, slot, team_id, actor):
    tree = _get_tree(tree_id)
    team = db.session.get(Team, team_id)
    if not team:
        raise NotFound(f"Team {team_id} not found")

    snapshot = tree.snapshot()
    if snapshot.check_resolution(round_name, slot, team_id):
        logger.info(f"{round_name}[{slot}] already resolved to team {team_id}")
        result = _settle_knockout_bets(tree, snapshot)
        result["changed"] = False
        return result

    expected_version = tree.version
    if not tree.claim_version(expected_version):
        raise PreconditionFailed(
            f"Knockout tree {tree_id} changed while resolving {round_name}[{slot}]"
        )

    db.session.add(
        KnockoutResolution(
            ko_tree_id=tree.id,
            round=round_name,
            slot=slot,
            team_id=team_id,
            version=expected_version + 1,
        )
    )
    db.session.flush()
    db.session.refresh(tree)

    snapshot = tree.snapshot()
    tree.materialize(snapshot)
    AdminAction.log_slot_resolution(tree, round_name, slot, team, actor=actor)

    result = _settle_knockout_bets(tree, snapshot)
    result["changed"] = True
    return result


def resolve_slot(tree_id, round_name, slot, team_id, actor="system"):
    """
    Record that a team advanced from a bracket slot and re-settle predictions.

    Resolving a slot again with the same team is a no-op; a different team is
    rejected, as is a slot whose competing teams are not known yet.
    """
    try:
        return _run(
            "Bracket resolution",
            _resolve_slot,
            tree_id,
            round_name,
            slot,
            team_id,
            actor,
        )
    except IntegrityError:
        raise PreconditionFailed(
            f"{round_name}[{slot}] was resolved concurrently, reload the bracket"
        )


def _settle_knockout(tree_id, through_round):
    tree = _get_tree(tree_id)
    snapshot = tree.snapshot()

    if through_round is not None and through_round not in ROUNDS:
        raise SettlementError(f"Unknown round: {through_round}")
    if through_round is not None and not snapshot.is_round_ready(through_round):
        raise PreconditionFailed(
            f"Cannot settle {through_round} before the previous round is fully resolved"
        )

    return _settle_knockout_bets(tree, snapshot)


def settle_knockout(tree_id, through_round=None):
    """
    Settle all bracket predictions for a tree.

    Rounds whose prerequisite round is incomplete stay pending. When
    through_round is given, the call is rejected unless that round is ready.
    """
    return _run("Knockout settlement", _settle_knockout, tree_id, through_round)


# Top scorer settlement


def set_player_goals(player_id, goals):
    """Admin entry of a player's goal tally"""
    player = db.session.get(Player, player_id)
    if not player:
        raise NotFound(f"Player {player_id} not found")
    try:
        player.set_goals(goals)
    except (TypeError, ValueError) as e:
        raise SettlementError(str(e))
    _commit("Player goals")
    return player


def _settle_scorers(actor):
    goals_by_player = Player.goals_by_player()
    leaders = top_scorer_leaders(goals_by_player)
    if not leaders:
        raise PreconditionFailed("Cannot settle top scorer picks before any goals are recorded")

    scoring = scorer_scoring()
    user_ids = set()
    for bet in ScorerBet.query.all():
        bet.points_awarded = calculate_scorer_points(bet.player_id, goals_by_player, scoring)
        user_ids.add(bet.user_id)

    db.session.flush()

    for user_id in sorted(user_ids):
        _recompute_ranking(user_id)

    AdminAction.log_action(
        action_type="settle_scorers",
        description=f"Top scorer picks settled ({len(user_ids)} picks)",
        actor=actor,
        action_metadata={"leaders": sorted(leaders), "scoring": scoring},
    )
    logger.info(f"Settled {len(user_ids)} top scorer picks, leaders: {sorted(leaders)}")

    return {"bets_settled": len(user_ids), "leaders": sorted(leaders)}


def settle_scorers(actor="system"):
    """Award top scorer points once the tournament goal tallies are final"""
    return _run("Scorer settlement", _settle_scorers, actor)


# Ranking aggregation


def _insert_ranking_row(user_id):
    """INSERT ... ON CONFLICT DO NOTHING so concurrent aggregations share one row"""
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        if not Ranking.query.filter_by(user_id=user_id).first():
            ranking = Ranking(user_id=user_id)
            ranking.apply_components(0, 0, 0, 0)
            db.session.add(ranking)
            db.session.flush()
        return

    db.session.execute(
        insert(Ranking)
        .values(
            user_id=user_id,
            match_points=0,
            scorer_points=0,
            ko_points=0,
            bonus_points=0,
            total_points=0,
            updated_at=datetime.now(timezone.utc),
        )
        .on_conflict_do_nothing(index_elements=["user_id"])
    )


def _lock_ranking(user_id):
    """Fetch the user's ranking row with a row lock, creating it if needed"""
    ranking = Ranking.query.filter_by(user_id=user_id).with_for_update().first()
    if ranking:
        return ranking

    _insert_ranking_row(user_id)
    return Ranking.query.filter_by(user_id=user_id).with_for_update().first()


def _recompute_ranking(user_id):
    """Re-aggregate one user's points (no commit)"""
    if not db.session.get(Profile, user_id):
        raise NotFound(f"User {user_id} not found")

    ranking = _lock_ranking(user_id)

    match_points = (
        db.session.query(func.coalesce(func.sum(Bet.points_awarded), 0))
        .filter(Bet.user_id == user_id)
        .scalar()
    )
    ko_points = (
        db.session.query(func.coalesce(func.sum(KnockoutBet.points_awarded), 0))
        .filter(KnockoutBet.user_id == user_id)
        .scalar()
    )
    scorer_bet = ScorerBet.query.filter_by(user_id=user_id).first()
    scorer_points = scorer_bet.points_awarded if scorer_bet else 0

    ranking.apply_components(match_points, scorer_points, ko_points)
    return ranking


def recompute_ranking(user_id):
    """Recompute one user's ranking row from their settled bets"""
    return _run("Ranking aggregation", _recompute_ranking, user_id)


def _recompute_all_rankings():
    user_ids = [row.id for row in db.session.query(Profile.id).order_by(Profile.id)]
    for user_id in user_ids:
        _recompute_ranking(user_id)
    logger.info(f"Recomputed rankings for {len(user_ids)} users")
    return len(user_ids)


def recompute_all_rankings():
    """Recompute every user's ranking row"""
    return _run("Ranking aggregation", _recompute_all_rankings)


def _set_bonus_points(user_id, bonus_points, actor):
    if isinstance(bonus_points, bool) or not isinstance(bonus_points, int):
        raise SettlementError("Bonus points must be an integer")

    ranking = _recompute_ranking(user_id)
    old_bonus = ranking.bonus_points or 0
    ranking.apply_components(
        ranking.match_points,
        ranking.scorer_points,
        ranking.ko_points,
        bonus_points,
    )
    if old_bonus != bonus_points:
        AdminAction.log_bonus_change(user_id, old_bonus, bonus_points, actor=actor)
    return ranking


def set_bonus_points(user_id, bonus_points, actor="system"):
    """Set the administrator-assigned bonus and refresh the total"""
    return _run("Bonus points", _set_bonus_points, user_id, bonus_points, actor)
