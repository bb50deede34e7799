import itertools
from datetime import datetime, timedelta, timezone

import pytest

from liga_typerow import create_app
from liga_typerow import db as _db
from liga_typerow.models import KnockoutTree, Match, Player, Profile, Team

ADMIN_HEADERS = {"X-Admin-Token": "test-admin-token", "X-Actor": "pytest"}

# Before the default knockout / scorer lock deadline
BEFORE_LOCK = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def before_lock():
    return BEFORE_LOCK


@pytest.fixture
def admin_headers():
    return dict(ADMIN_HEADERS)


@pytest.fixture
def make_profile(db):
    counter = itertools.count(1)

    def _make(username=None, created_at=None):
        n = next(counter)
        profile = Profile(username=username or f"user{n}")
        # Distinct, increasing creation times keep leaderboard ties deterministic
        profile.created_at = created_at or datetime(2024, 1, 1) + timedelta(minutes=n)
        db.session.add(profile)
        db.session.commit()
        return profile

    return _make


@pytest.fixture
def make_team(db):
    codes = ("".join(letters) for letters in itertools.product("ABCDEFGH", repeat=3))

    def _make(short_name=None, name=None):
        short_name = short_name or next(codes)
        team, message = Team.create_team(name or f"Team {short_name}", short_name)
        assert team is not None, message
        db.session.commit()
        return team

    return _make


@pytest.fixture
def make_match(db, make_team):
    def _make(
        team_a=None,
        team_b=None,
        phase="group",
        group_number=1,
        bet_deadline=None,
        points_for_exact=None,
        points_for_winner=None,
    ):
        team_a = team_a or make_team()
        team_b = team_b or make_team()
        if phase != "group":
            group_number = None
        match, message = Match.create_match(
            phase,
            team_a.id,
            team_b.id,
            bet_deadline or datetime.now(timezone.utc) + timedelta(days=1),
            group_number=group_number,
            points_for_exact=points_for_exact,
            points_for_winner=points_for_winner,
        )
        assert match is not None, message
        db.session.commit()
        return match

    return _make


@pytest.fixture
def make_player(db, make_team):
    def _make(name, goals=0, team=None):
        team = team or make_team()
        player = Player(name=name, goals=goals, team_id=team.id)
        db.session.add(player)
        db.session.commit()
        return player

    return _make


@pytest.fixture
def bracket_teams(make_team):
    """16 teams; round-of-16 pair i is (teams[2i], teams[2i + 1])"""
    return [make_team() for _ in range(16)]


@pytest.fixture
def tree(db, bracket_teams):
    pairs = [
        [bracket_teams[2 * i].id, bracket_teams[2 * i + 1].id] for i in range(8)
    ]
    tree, message = KnockoutTree.create_tree(pairs)
    assert tree is not None, message
    db.session.commit()
    return tree


@pytest.fixture
def favourites_prediction(bracket_teams):
    """Every first-listed team wins its pair; team 0 takes the title"""
    ids = [team.id for team in bracket_teams]
    return {
        "quarter_finals": [ids[2 * i] for i in range(8)],
        "semi_finals": [ids[0], ids[4], ids[8], ids[12]],
        "final": [ids[0], ids[8]],
        "winner": ids[0],
    }
