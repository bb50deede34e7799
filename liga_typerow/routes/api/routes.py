import hmac
from datetime import datetime
from functools import wraps

from flask import current_app, jsonify, request

from liga_typerow import db
from liga_typerow.models import (
    AdminAction,
    Bet,
    KnockoutBet,
    KnockoutTree,
    Match,
    Player,
    Profile,
    Ranking,
    ScorerBet,
    Team,
)
from liga_typerow.routes.api import bp
from liga_typerow.services import settlement_service, settings_service
from liga_typerow.utils.cache_utils import cached_route, invalidate_model_cache
from liga_typerow.utils.timezone_utils import convert_to_utc


def add_security_headers(f):
    """Add security headers to API responses"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        response = current_app.make_response(f(*args, **kwargs))
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Cache-Control"] = (
            "no-store, no-cache, must-revalidate, max-age=0"
        )
        return response

    return decorated_function


def admin_required(f):
    """Require the shared admin token in the X-Admin-Token header"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("ADMIN_API_TOKEN")
        provided = request.headers.get("X-Admin-Token", "")

        if not expected or not hmac.compare_digest(provided, expected):
            current_app.logger.warning(
                f"Rejected admin call to {request.path} from {request.remote_addr}"
            )
            return jsonify({"error": "Admin token required"}), 403

        return f(*args, **kwargs)

    return decorated_function


def _actor():
    return request.headers.get("X-Actor", "api")


def _json_body():
    return request.get_json(silent=True) or {}


def _parse_datetime(value):
    if not value:
        return None
    try:
        return convert_to_utc(datetime.fromisoformat(value))
    except (TypeError, ValueError):
        return None


# Public read endpoints


@bp.route("/teams")
def teams():
    """Get all teams"""
    teams = Team.query.order_by(Team.name).all()
    return jsonify([team.to_dict() for team in teams])


@bp.route("/players")
def players():
    """Get players, top scorers first"""
    players = Player.query.order_by(Player.goals.desc(), Player.name).all()
    return jsonify([player.to_dict() for player in players])


@bp.route("/matches")
def matches():
    """Get matches, optionally filtered by phase or status"""
    query = Match.query
    phase = request.args.get("phase")
    if phase:
        query = query.filter_by(phase=phase)

    matches = query.order_by(Match.bet_deadline, Match.id).all()

    status = request.args.get("status")
    if status:
        matches = [match for match in matches if match.status == status]

    return jsonify([match.to_dict() for match in matches])


@bp.route("/matches/<int:match_id>")
def match_detail(match_id):
    """Get match details"""
    match = db.get_or_404(Match, match_id)
    data = match.to_dict()
    data["bets_count"] = match.bets.count()
    return jsonify(data)


@bp.route("/matches/<int:match_id>/bets")
def match_bets(match_id):
    """Get all bets for a match once betting has closed"""
    match = db.get_or_404(Match, match_id)

    if not match.is_finished and not match.is_locked():
        return jsonify({"error": "Bets are hidden until the deadline"}), 403

    bets = match.bets.order_by(Bet.points_awarded.desc(), Bet.id).all()
    return jsonify({"match": match.to_dict(), "bets": [bet.to_dict() for bet in bets]})


@bp.route("/knockout")
def knockout():
    """Get the real bracket with its resolution log"""
    tree = KnockoutTree.get_current()
    if not tree:
        return jsonify({"error": "No knockout bracket yet"}), 404

    data = tree.to_dict()
    data["resolutions"] = [r.to_dict() for r in tree.resolutions.all()]
    data["complete"] = tree.snapshot().is_complete()
    return jsonify(data)


@bp.route("/rankings")
@cached_route(timeout=60, key_prefix="Ranking")
def rankings():
    """Get the leaderboard"""
    return {"rankings": Ranking.get_leaderboard()}


@bp.route("/users/<int:user_id>/bets")
@add_security_headers
def user_bets(user_id):
    """Get every bet a user placed"""
    profile = db.get_or_404(Profile, user_id)

    bets = profile.bets.order_by(Bet.match_id).all()
    knockout_bets = profile.knockout_bets.all()

    return jsonify(
        {
            "user": profile.to_dict(),
            "bets": [bet.to_dict() for bet in bets],
            "knockout_bets": [bet.to_dict() for bet in knockout_bets],
            "scorer_bet": profile.scorer_bet.to_dict() if profile.scorer_bet else None,
            "ranking": profile.ranking.to_dict() if profile.ranking else None,
        }
    )


# Bet placement


@bp.route("/bets", methods=["POST"])
@add_security_headers
def place_bet():
    """Create or update a match bet"""
    data = _json_body()

    bet, message = Bet.place_bet(
        data.get("user_id"),
        data.get("match_id"),
        data.get("team_a_score"),
        data.get("team_b_score"),
    )
    if not bet:
        return jsonify({"error": message}), 400

    db.session.commit()
    return jsonify({"success": True, "message": message, "bet": bet.to_dict()})


@bp.route("/knockout/<int:tree_id>/bets", methods=["POST"])
@add_security_headers
def place_knockout_bet(tree_id):
    """Create or replace a bracket prediction"""
    data = _json_body()

    bet, message = KnockoutBet.place_bet(
        data.get("user_id"), tree_id, data.get("predictions")
    )
    if not bet:
        return jsonify({"error": message}), 400

    db.session.commit()
    return jsonify({"success": True, "message": message, "bet": bet.to_dict()})


@bp.route("/scorer-bets", methods=["POST"])
@add_security_headers
def place_scorer_bet():
    """Create or change a top scorer pick"""
    data = _json_body()

    bet, message = ScorerBet.place_bet(data.get("user_id"), data.get("player_id"))
    if not bet:
        return jsonify({"error": message}), 400

    db.session.commit()
    return jsonify({"success": True, "message": message, "bet": bet.to_dict()})


# Admin: tournament data


@bp.route("/admin/teams", methods=["POST"])
@admin_required
def admin_create_team():
    data = _json_body()
    team, message = Team.create_team(
        data.get("name"), data.get("short_name"), data.get("flag_url")
    )
    if not team:
        return jsonify({"error": message}), 400

    db.session.commit()
    return jsonify({"success": True, "team": team.to_dict()}), 201


@bp.route("/admin/teams/<int:team_id>", methods=["PUT"])
@admin_required
def admin_update_team(team_id):
    team = db.get_or_404(Team, team_id)
    data = _json_body()

    success, message = team.update_details(
        name=data.get("name"),
        short_name=data.get("short_name"),
        flag_url=data.get("flag_url"),
    )
    if not success:
        db.session.rollback()
        return jsonify({"error": message}), 409 if team.is_referenced() else 400

    db.session.commit()
    return jsonify({"success": True, "team": team.to_dict()})


@bp.route("/admin/teams/<int:team_id>", methods=["DELETE"])
@admin_required
def admin_delete_team(team_id):
    team = db.get_or_404(Team, team_id)

    if team.is_referenced():
        return (
            jsonify({"error": f"Team {team.short_name} is referenced by a match"}),
            409,
        )

    db.session.delete(team)
    db.session.commit()
    return jsonify({"success": True})


@bp.route("/admin/players", methods=["POST"])
@admin_required
def admin_create_player():
    data = _json_body()
    name = (data.get("name") or "").strip()
    team_id = data.get("team_id")

    if not name:
        return jsonify({"error": "Player name is required"}), 400
    if not team_id or not db.session.get(Team, team_id):
        return jsonify({"error": "Team not found"}), 400

    player = Player(name=name, team_id=team_id, goals=0)
    db.session.add(player)
    db.session.commit()
    return jsonify({"success": True, "player": player.to_dict()}), 201


@bp.route("/admin/players/<int:player_id>/goals", methods=["PUT"])
@admin_required
def admin_set_goals(player_id):
    data = _json_body()
    player = settlement_service.set_player_goals(player_id, data.get("goals"))
    return jsonify({"success": True, "player": player.to_dict()})


@bp.route("/admin/matches", methods=["POST"])
@admin_required
def admin_create_match():
    data = _json_body()

    match, message = Match.create_match(
        phase=data.get("phase"),
        team_a_id=data.get("team_a_id"),
        team_b_id=data.get("team_b_id"),
        bet_deadline=_parse_datetime(data.get("bet_deadline")),
        group_number=data.get("group_number"),
        points_for_exact=data.get("points_for_exact"),
        points_for_winner=data.get("points_for_winner"),
    )
    if not match:
        return jsonify({"error": message}), 400

    db.session.commit()
    return jsonify({"success": True, "match": match.to_dict()}), 201


@bp.route("/admin/matches/<int:match_id>", methods=["DELETE"])
@admin_required
def admin_delete_match(match_id):
    match = db.get_or_404(Match, match_id)
    description = (
        f"Deleted match {match.id}: "
        f"{match.team_a.short_name} vs {match.team_b.short_name}"
    )

    success, message = match.remove()
    if not success:
        return jsonify({"error": message}), 409

    AdminAction.log_action(
        action_type="delete_match",
        description=description,
        actor=_actor(),
        action_metadata={"match_id": match_id},
    )
    db.session.commit()
    return jsonify({"success": True})


# Admin: settlement


@bp.route("/admin/matches/<int:match_id>/result", methods=["POST"])
@admin_required
def admin_match_result(match_id):
    """Record a final score and settle the match"""
    data = _json_body()
    result = settlement_service.record_match_result(
        match_id,
        data.get("team_a_score"),
        data.get("team_b_score"),
        actor=_actor(),
    )
    return jsonify({"success": True, **result})


@bp.route("/admin/matches/<int:match_id>/settle", methods=["POST"])
@admin_required
def admin_settle_match(match_id):
    result = settlement_service.settle_match(match_id)
    return jsonify({"success": True, **result})


@bp.route("/admin/matches/settle-pending", methods=["POST"])
@admin_required
def admin_settle_pending():
    settled, failed = settlement_service.settle_pending_matches()
    return jsonify({"success": not failed, "settled": settled, "failed": failed})


@bp.route("/admin/knockout", methods=["POST"])
@admin_required
def admin_create_knockout():
    """Create the bracket from the round-of-16 pairs"""
    if KnockoutTree.get_current():
        return jsonify({"error": "A knockout bracket already exists"}), 409

    tree, message = KnockoutTree.create_tree(_json_body().get("round_of_16"))
    if not tree:
        return jsonify({"error": message}), 400

    db.session.commit()
    return jsonify({"success": True, "tree": tree.to_dict()}), 201


@bp.route("/admin/knockout/<int:tree_id>/round-of-16/<int:position>", methods=["PUT"])
@admin_required
def admin_assign_round_of_16(tree_id, position):
    tree = db.get_or_404(KnockoutTree, tree_id)
    data = _json_body()

    success, message = tree.assign_round_of_16(
        position, data.get("team1_id"), data.get("team2_id")
    )
    if not success:
        return jsonify({"error": message}), 400

    db.session.commit()

    # A completed round of 16 makes the quarter finals ready
    settlement = settlement_service.settle_knockout(tree.id)
    return jsonify({"success": True, "tree": tree.to_dict(), "settlement": settlement})


@bp.route("/admin/knockout/<int:tree_id>/resolve", methods=["POST"])
@admin_required
def admin_resolve_slot(tree_id):
    """Record the team advancing from a bracket slot"""
    data = _json_body()

    slot = data.get("slot")
    team_id = data.get("team_id")
    if not isinstance(slot, int) or not isinstance(team_id, int):
        return jsonify({"error": "slot and team_id must be integers"}), 400

    result = settlement_service.resolve_slot(
        tree_id, data.get("round"), slot, team_id, actor=_actor()
    )
    return jsonify({"success": True, **result})


@bp.route("/admin/knockout/<int:tree_id>/settle", methods=["POST"])
@admin_required
def admin_settle_knockout(tree_id):
    result = settlement_service.settle_knockout(
        tree_id, through_round=_json_body().get("through_round")
    )
    return jsonify({"success": True, **result})


@bp.route("/admin/scorers/settle", methods=["POST"])
@admin_required
def admin_settle_scorers():
    result = settlement_service.settle_scorers(actor=_actor())
    return jsonify({"success": True, **result})


# Admin: rankings


@bp.route("/admin/rankings/recompute", methods=["POST"])
@admin_required
def admin_recompute_rankings():
    count = settlement_service.recompute_all_rankings()
    return jsonify({"success": True, "users": count})


@bp.route("/admin/rankings/<int:user_id>/recompute", methods=["POST"])
@admin_required
def admin_recompute_ranking(user_id):
    ranking = settlement_service.recompute_ranking(user_id)
    return jsonify({"success": True, "ranking": ranking.to_dict()})


@bp.route("/admin/rankings/<int:user_id>/bonus", methods=["PUT"])
@admin_required
def admin_set_bonus(user_id):
    data = _json_body()
    ranking = settlement_service.set_bonus_points(
        user_id, data.get("bonus_points"), actor=_actor()
    )
    return jsonify({"success": True, "ranking": ranking.to_dict()})


# Admin: configuration and audit


@bp.route("/admin/settings/<key>", methods=["PUT"])
@admin_required
def admin_update_setting(key):
    data = _json_body()
    try:
        settings_service.update_setting(key, data.get("value"))
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400

    invalidate_model_cache("Setting")
    return jsonify({"success": True, "key": key, "value": data.get("value")})


@bp.route("/admin/actions")
@admin_required
def admin_actions():
    """Recent admin actions, newest first"""
    limit = request.args.get("limit", 50, type=int)
    action_type = request.args.get("type")

    query = AdminAction.query
    if action_type:
        query = query.filter_by(action_type=action_type)

    actions = query.order_by(AdminAction.created_at.desc(), AdminAction.id.desc()).limit(limit)
    return jsonify([action.to_dict() for action in actions])


@bp.route("/admin/scheduler")
@admin_required
def admin_scheduler_status():
    from liga_typerow.services.scheduler_service import scheduler_service

    return jsonify(scheduler_service.get_status())


@bp.route("/admin/scheduler/run/<job>", methods=["POST"])
@admin_required
def admin_scheduler_run(job):
    """Run the settlement sweep or the ranking recompute right now"""
    from liga_typerow.services.scheduler_service import scheduler_service

    success, message = scheduler_service.force_run(job)
    status = 200 if success else 400
    return jsonify({"success": success, "message": message}), status
