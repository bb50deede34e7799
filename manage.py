#!/usr/bin/env python3
"""
Liga Typerow Management CLI

This script provides command-line management for the Liga Typerow settlement
engine: tournament data entry, result feed, bracket resolution and rankings.
"""

import logging
import os
from datetime import datetime

import click
from flask.cli import with_appcontext
from flask_migrate import downgrade, migrate, upgrade
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

# The CLI settles synchronously, the background sweep belongs to the web process
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from liga_typerow import create_app, db  # noqa: E402
from liga_typerow.models import (  # noqa: E402
    KnockoutTree,
    Match,
    Player,
    Profile,
    Ranking,
    Team,
)
from liga_typerow.models.match import PHASES  # noqa: E402
from liga_typerow.services import settlement_service  # noqa: E402
from liga_typerow.utils.bracket import ROUNDS  # noqa: E402
from liga_typerow.utils.errors import SettlementError  # noqa: E402
from liga_typerow.utils.timezone_utils import convert_to_utc  # noqa: E402

app = create_app()

CLI_ACTOR = "cli"


@click.group()
def cli():
    """Liga Typerow Management CLI"""
    pass


def _report_failure(operation, error):
    db.session.rollback()
    if isinstance(error, SettlementError):
        click.echo(f"❌ {error}")
        return
    click.echo(f"❌ Database error during {operation}: {str(error)}")
    logging.error(f"{operation} failed - SQL error: {error}")


# Team Commands
@cli.group()
def team():
    """Team management commands"""
    pass


@team.command("add")
@click.argument("name")
@click.argument("short_name")
@click.option("--flag-url", help="URL of the team flag")
@with_appcontext
def add_team(name, short_name, flag_url):
    """Add a team (SHORT_NAME is a 3-letter code)"""
    try:
        new_team, message = Team.create_team(name, short_name, flag_url)
        if not new_team:
            click.echo(f"❌ {message}")
            return

        db.session.commit()
        click.echo(f"✅ Created team {new_team.short_name} (id {new_team.id})")

    except SQLAlchemyError as e:
        _report_failure("team creation", e)


@team.command("list")
@with_appcontext
def list_teams():
    """List all teams"""
    teams = Team.query.order_by(Team.name).all()

    if not teams:
        click.echo("No teams found.")
        return

    click.echo("Teams:")
    for t in teams:
        locked = " 🔒" if t.is_referenced() else ""
        click.echo(f"  {t.id:>3} {t.short_name} {t.name}{locked}")


@team.command("player")
@click.argument("short_name")
@click.argument("name")
@with_appcontext
def add_player(short_name, name):
    """Add a player to a team"""
    t = Team.get_by_short_name(short_name)
    if not t:
        click.echo(f"❌ Team {short_name} not found!")
        return

    try:
        player = Player(name=name, team_id=t.id, goals=0)
        db.session.add(player)
        db.session.commit()
        click.echo(f"✅ Added {name} to {t.short_name} (player id {player.id})")
    except SQLAlchemyError as e:
        _report_failure("player creation", e)


# Match Commands
@cli.group()
def match():
    """Match management commands"""
    pass


@match.command("create")
@click.argument("phase", type=click.Choice(PHASES))
@click.argument("team_a")
@click.argument("team_b")
@click.argument(
    "deadline", type=click.DateTime(formats=["%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M"])
)
@click.option("--group", "group_number", type=int, help="Group number (1-6)")
@click.option("--exact", "points_for_exact", type=int, help="Points for exact score")
@click.option("--winner", "points_for_winner", type=int, help="Points for outcome")
@with_appcontext
def create_match(
    phase, team_a, team_b, deadline, group_number, points_for_exact, points_for_winner
):
    """Create a match (DEADLINE in the league timezone)"""
    a = Team.get_by_short_name(team_a)
    b = Team.get_by_short_name(team_b)
    if not a or not b:
        click.echo("❌ Both teams must exist!")
        return

    try:
        new_match, message = Match.create_match(
            phase,
            a.id,
            b.id,
            convert_to_utc(deadline),
            group_number=group_number,
            points_for_exact=points_for_exact,
            points_for_winner=points_for_winner,
        )
        if not new_match:
            click.echo(f"❌ {message}")
            return

        db.session.commit()
        click.echo(f"✅ Created match {new_match.id}: {a.short_name} vs {b.short_name}")

    except SQLAlchemyError as e:
        _report_failure("match creation", e)


@match.command("list")
@click.option("--pending", is_flag=True, help="Only finished but unsettled matches")
@with_appcontext
def list_matches(pending):
    """List matches"""
    query = Match.query
    if pending:
        query = query.filter(Match.is_finished.is_(True), Match.settled_at.is_(None))

    matches = query.order_by(Match.bet_deadline, Match.id).all()
    if not matches:
        click.echo("No matches found.")
        return

    for m in matches:
        score = f"{m.team_a_score}:{m.team_b_score}" if m.has_result else "-:-"
        settled = "✅" if m.settled_at else "⏳" if m.is_finished else "  "
        click.echo(
            f"  {m.id:>3} {m.phase:<13} {m.team_a.short_name} {score} "
            f"{m.team_b.short_name}  {m.status:<8} {settled}"
        )


@match.command("delete")
@click.argument("match_id", type=int)
@with_appcontext
def delete_match(match_id):
    """Delete an unplayed match without bets"""
    m = db.session.get(Match, match_id)
    if not m:
        click.echo(f"❌ Match {match_id} not found!")
        return

    try:
        success, message = m.remove()
        if not success:
            click.echo(f"❌ {message}")
            return

        db.session.commit()
        click.echo(f"✅ Deleted match {match_id}")

    except SQLAlchemyError as e:
        _report_failure("match deletion", e)


# Result Commands
@cli.group()
def result():
    """Result feed commands"""
    pass


@result.command("set")
@click.argument("match_id", type=int)
@click.argument("team_a_score", type=int)
@click.argument("team_b_score", type=int)
@with_appcontext
def set_result(match_id, team_a_score, team_b_score):
    """Record a final score and settle the match"""
    try:
        outcome = settlement_service.record_match_result(
            match_id, team_a_score, team_b_score, actor=CLI_ACTOR
        )
    except (SettlementError, SQLAlchemyError) as e:
        _report_failure("result entry", e)
        return

    verb = "Recorded" if outcome["finished_now"] else "Re-settled"
    click.echo(
        f"✅ {verb} {team_a_score}:{team_b_score} for match {match_id}, "
        f"{outcome['bets_settled']} bets settled"
    )


@result.command("settle-pending")
@with_appcontext
def settle_pending():
    """Settle finished matches that were never settled"""
    settled, failed = settlement_service.settle_pending_matches()
    click.echo(f"✅ Settled {settled} matches")
    if failed:
        click.echo(f"⚠️  Failed: {', '.join(str(m) for m in failed)}")


# Knockout Commands
@cli.group()
def knockout():
    """Knockout bracket commands"""
    pass


@knockout.command("init")
@click.argument("pairs", nargs=8)
@with_appcontext
def init_knockout(pairs):
    """Create the bracket from 8 pairs like POL-GER (use ? for unknown teams)"""
    if KnockoutTree.get_current():
        click.echo("❌ A knockout bracket already exists!")
        return

    round_of_16 = []
    for pair in pairs:
        codes = pair.split("-")
        if len(codes) != 2:
            click.echo(f"❌ Invalid pair: {pair}")
            return

        ids = []
        for code in codes:
            if code == "?":
                ids.append(None)
                continue
            t = Team.get_by_short_name(code)
            if not t:
                click.echo(f"❌ Team {code} not found!")
                return
            ids.append(t.id)
        round_of_16.append(ids)

    try:
        tree, message = KnockoutTree.create_tree(round_of_16)
        if not tree:
            click.echo(f"❌ {message}")
            return

        db.session.commit()
        click.echo(f"✅ Created knockout bracket {tree.id}")
    except SQLAlchemyError as e:
        _report_failure("bracket creation", e)


@knockout.command("resolve")
@click.argument("round_name", type=click.Choice(ROUNDS))
@click.argument("slot", type=int)
@click.argument("short_name")
@click.option("--tree-id", type=int, help="Bracket id (default: current)")
@with_appcontext
def resolve(round_name, slot, short_name, tree_id):
    """Record that a team won a bracket slot"""
    tree = db.session.get(KnockoutTree, tree_id) if tree_id else KnockoutTree.get_current()
    t = Team.get_by_short_name(short_name)
    if not tree or not t:
        click.echo("❌ Bracket or team not found!")
        return

    try:
        outcome = settlement_service.resolve_slot(
            tree.id, round_name, slot, t.id, actor=CLI_ACTOR
        )
    except (SettlementError, SQLAlchemyError) as e:
        _report_failure("bracket resolution", e)
        return

    if outcome["changed"]:
        click.echo(
            f"✅ {t.short_name} wins {round_name}[{slot}] "
            f"(version {outcome['version']}, {outcome['bets_settled']} predictions settled)"
        )
    else:
        click.echo(f"ℹ️  {round_name}[{slot}] was already {t.short_name}")


@knockout.command("settle")
@click.option("--tree-id", type=int, help="Bracket id (default: current)")
@click.option("--through-round", type=click.Choice(ROUNDS), help="Require this round ready")
@with_appcontext
def settle_knockout(tree_id, through_round):
    """Settle all bracket predictions"""
    tree = db.session.get(KnockoutTree, tree_id) if tree_id else KnockoutTree.get_current()
    if not tree:
        click.echo("❌ No knockout bracket found!")
        return

    try:
        outcome = settlement_service.settle_knockout(tree.id, through_round=through_round)
    except (SettlementError, SQLAlchemyError) as e:
        _report_failure("knockout settlement", e)
        return

    click.echo(
        f"✅ Settled {outcome['bets_settled']} predictions at version "
        f"{outcome['version']} (ready: {', '.join(outcome['ready_rounds']) or 'none'})"
    )


# Top Scorer Commands
@cli.group()
def scorers():
    """Top scorer commands"""
    pass


@scorers.command("goals")
@click.argument("player_id", type=int)
@click.argument("goals", type=int)
@with_appcontext
def set_goals(player_id, goals):
    """Set a player's tournament goal tally"""
    try:
        player = settlement_service.set_player_goals(player_id, goals)
    except (SettlementError, SQLAlchemyError) as e:
        _report_failure("goal entry", e)
        return

    click.echo(f"✅ {player.name}: {player.goals} goals")


@scorers.command("settle")
@with_appcontext
def settle_scorers():
    """Settle top scorer picks (run once the tournament is over)"""
    try:
        outcome = settlement_service.settle_scorers(actor=CLI_ACTOR)
    except (SettlementError, SQLAlchemyError) as e:
        _report_failure("scorer settlement", e)
        return

    leaders = [db.session.get(Player, pid).name for pid in outcome["leaders"]]
    click.echo(
        f"✅ Settled {outcome['bets_settled']} picks, leaders: {', '.join(leaders)}"
    )


# Ranking Commands
@cli.group()
def rankings():
    """Ranking commands"""
    pass


@rankings.command("recompute")
@click.option("--user-id", type=int, help="Only this user")
@with_appcontext
def recompute(user_id):
    """Recompute ranking rows from settled bets"""
    try:
        if user_id:
            ranking = settlement_service.recompute_ranking(user_id)
            click.echo(f"✅ User {user_id}: {ranking.total_points} points")
        else:
            count = settlement_service.recompute_all_rankings()
            click.echo(f"✅ Recomputed rankings for {count} users")
    except (SettlementError, SQLAlchemyError) as e:
        _report_failure("ranking aggregation", e)


@rankings.command("bonus")
@click.argument("user_id", type=int)
@click.argument("bonus_points", type=int)
@with_appcontext
def bonus(user_id, bonus_points):
    """Set a user's bonus points"""
    try:
        ranking = settlement_service.set_bonus_points(
            user_id, bonus_points, actor=CLI_ACTOR
        )
    except (SettlementError, SQLAlchemyError) as e:
        _report_failure("bonus update", e)
        return

    click.echo(f"✅ User {user_id}: bonus {ranking.bonus_points}, total {ranking.total_points}")


@rankings.command("show")
@click.option("--limit", default=20, help="Number of rows")
@with_appcontext
def show(limit):
    """Print the leaderboard"""
    leaderboard = Ranking.get_leaderboard()[:limit]
    if not leaderboard:
        click.echo("No rankings yet.")
        return

    click.echo(f"{'#':>3} {'user':<20} {'match':>5} {'ko':>4} {'scorer':>6} {'bonus':>5} {'total':>5}")
    for row in leaderboard:
        name = row["user"]["username"] or f"user-{row['user_id']}"
        click.echo(
            f"{row['position']:>3} {name:<20} {row['match_points']:>5} "
            f"{row['ko_points']:>4} {row['scorer_points']:>6} "
            f"{row['bonus_points']:>5} {row['total_points']:>5}"
        )


# Database Commands
@cli.group()
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command()
@with_appcontext
def init_db():
    """Initialize database tables"""
    try:
        db.create_all()
        click.echo("✅ Database tables created successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error initializing database: {str(e)}")


@db_cmd.command()
@with_appcontext
def reset():
    """⚠️  DANGER: Drop and recreate all tables"""
    if not click.confirm("This will DELETE ALL DATA. Are you sure?"):
        click.echo("Cancelled.")
        return

    try:
        db.drop_all()
        db.create_all()
        click.echo("✅ Database reset successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error resetting database: {str(e)}")


# Database Migration Commands
@cli.group()
def db_migrate():
    """Database migration commands"""
    pass


@db_migrate.command()
@with_appcontext
def init_migrations():
    """Initialize migrations repository"""
    if os.path.exists("migrations"):
        click.echo("❌ Migrations directory already exists!")
        return

    from flask_migrate import init as flask_migrate_init

    flask_migrate_init()
    click.echo("✅ Migrations repository initialized!")


@db_migrate.command()
@click.option("-m", "--message", required=True, help="Migration message")
@with_appcontext
def create_migration(message):
    """Create a new migration"""
    migrate(message=message)
    click.echo(f"✅ Migration created: {message}")


@db_migrate.command()
@click.option("--revision", default="head", help="Revision to upgrade to")
@with_appcontext
def apply_migrations(revision):
    """Apply migrations to database"""
    upgrade(revision=revision)
    click.echo(f"✅ Migrations applied to {revision}")


@db_migrate.command()
@click.option("--revision", required=True, help="Revision to downgrade to")
@with_appcontext
def rollback_migration(revision):
    """Rollback migrations to specific revision"""
    downgrade(revision=revision)
    click.echo(f"✅ Rolled back to {revision}")


# Info Commands
@cli.command()
@with_appcontext
def status():
    """Show application status"""
    click.echo("⚽ Liga Typerow Status")
    click.echo("=" * 40)

    # Database connection
    try:
        db.session.execute(text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except SQLAlchemyError as e:
        click.echo(f"❌ Database: Error - {str(e)}")
        return

    click.echo(f"👥 Users: {Profile.query.count()}")
    click.echo(f"🏳️  Teams: {Team.query.count()}")

    match_count = Match.query.count()
    finished = Match.query.filter_by(is_finished=True).count()
    unsettled = Match.query.filter(
        Match.is_finished.is_(True), Match.settled_at.is_(None)
    ).count()
    click.echo(f"⚽ Matches: {finished}/{match_count} finished, {unsettled} unsettled")

    tree = KnockoutTree.get_current()
    if tree:
        state = "complete" if tree.snapshot().is_complete() else "in progress"
        click.echo(f"🏆 Bracket: version {tree.version}, {state}")
    else:
        click.echo("⚠️  Bracket: not created")

    click.echo(f"🕒 Checked at {datetime.now().strftime('%Y-%m-%d %H:%M')}")


if __name__ == "__main__":
    with app.app_context():
        cli()
