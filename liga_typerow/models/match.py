from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import update

from liga_typerow import db
from liga_typerow.utils.timezone_utils import ensure_utc, is_past

PHASES = (
    "group",
    "round_of_16",
    "quarter_final",
    "semi_final",
    "third_place",
    "final",
)

GROUP_NUMBERS = range(1, 7)


class Match(db.Model):
    __tablename__ = "matches"

    id = db.Column(db.Integer, primary_key=True)

    # Tournament stage
    phase = db.Column(db.String(20), nullable=False)
    group_number = db.Column(db.Integer, nullable=True)  # Only for phase=group

    # Teams
    team_a_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)
    team_b_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)

    # Betting closes at the deadline
    bet_deadline = db.Column(db.DateTime, nullable=False)

    # Point values for this match
    points_for_exact = db.Column(db.Integer, nullable=False, default=3)
    points_for_winner = db.Column(db.Integer, nullable=False, default=1)

    # Result
    team_a_score = db.Column(db.Integer)
    team_b_score = db.Column(db.Integer)
    is_finished = db.Column(db.Boolean, nullable=False, default=False)
    settled_at = db.Column(db.DateTime, nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    bets = db.relationship(
        "Bet", backref="match", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.Index("idx_match_deadline", "bet_deadline"),
        db.Index("idx_match_finished", "is_finished"),
        db.CheckConstraint("team_a_id != team_b_id", name="different_teams"),
        db.CheckConstraint(
            "(phase = 'group' AND group_number IS NOT NULL) OR "
            "(phase != 'group' AND group_number IS NULL)",
            name="group_number_iff_group_phase",
        ),
    )

    def __repr__(self):
        return f'<Match {self.team_a.short_name if self.team_a else "TBD"} vs {self.team_b.short_name if self.team_b else "TBD"} ({self.phase})>'

    @property
    def has_result(self):
        return self.team_a_score is not None and self.team_b_score is not None

    @property
    def final_score(self):
        """(team_a_score, team_b_score) or None"""
        if not self.has_result:
            return None
        return self.team_a_score, self.team_b_score

    @property
    def winning_team_id(self):
        """Winning team id (None if not finished or a draw)"""
        if not self.is_finished or not self.has_result:
            return None
        if self.team_a_score > self.team_b_score:
            return self.team_a_id
        if self.team_b_score > self.team_a_score:
            return self.team_b_id
        return None

    def is_locked(self, now=None):
        """Bets are locked once the deadline has passed"""
        return is_past(self.bet_deadline, now)

    @property
    def status(self):
        if self.is_finished:
            return "finished"
        if self.is_locked():
            return "locked"
        return "open"

    @staticmethod
    def create_match(
        phase,
        team_a_id,
        team_b_id,
        bet_deadline,
        group_number=None,
        points_for_exact=None,
        points_for_winner=None,
    ):
        """Create a new match with validation"""
        from .team import Team

        if phase not in PHASES:
            return None, f"Unknown phase: {phase}"

        if phase == "group":
            if group_number not in GROUP_NUMBERS:
                return None, "Group matches need a group number between 1 and 6"
        elif group_number is not None:
            return None, "Only group phase matches have a group number"

        if team_a_id == team_b_id:
            return None, "A match needs two different teams"

        if not db.session.get(Team, team_a_id) or not db.session.get(Team, team_b_id):
            return None, "Team not found"

        if bet_deadline is None:
            return None, "Bet deadline is required"

        if points_for_exact is None:
            points_for_exact = current_app.config.get("DEFAULT_POINTS_FOR_EXACT", 3)
        if points_for_winner is None:
            points_for_winner = current_app.config.get("DEFAULT_POINTS_FOR_WINNER", 1)

        for points in (points_for_exact, points_for_winner):
            if isinstance(points, bool) or not isinstance(points, int) or points < 0:
                return None, "Point values must be non-negative integers"

        match = Match(
            phase=phase,
            group_number=group_number,
            team_a_id=team_a_id,
            team_b_id=team_b_id,
            bet_deadline=ensure_utc(bet_deadline),
            points_for_exact=points_for_exact,
            points_for_winner=points_for_winner,
        )
        db.session.add(match)
        return match, "Match created successfully"

    @staticmethod
    def finish(match_id, team_a_score, team_b_score):
        """
        Record the final score if the match is not finished yet.

        Single conditional UPDATE so two concurrent result entries cannot both
        flip the finished flag.

        Returns:
            bool: True if this call finished the match
        """
        result = db.session.execute(
            update(Match)
            .where(Match.id == match_id, Match.is_finished.is_(False))
            .values(
                team_a_score=team_a_score,
                team_b_score=team_b_score,
                is_finished=True,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def remove(self):
        """Delete a match nobody has bet on that has not been played yet"""
        if self.is_finished:
            return False, "A finished match cannot be deleted"
        if self.bets.count():
            return False, "A match with bets cannot be deleted"

        db.session.delete(self)
        return True, "Match deleted successfully"

    def to_dict(self):
        """Convert match to dictionary for API responses"""
        return {
            "id": self.id,
            "phase": self.phase,
            "group_number": self.group_number,
            "team_a": self.team_a.to_dict() if self.team_a else None,
            "team_b": self.team_b.to_dict() if self.team_b else None,
            "bet_deadline": (
                ensure_utc(self.bet_deadline).isoformat() if self.bet_deadline else None
            ),
            "points_for_exact": self.points_for_exact,
            "points_for_winner": self.points_for_winner,
            "team_a_score": self.team_a_score,
            "team_b_score": self.team_b_score,
            "is_finished": self.is_finished,
            "winning_team_id": self.winning_team_id,
            "status": self.status,
            "settled_at": (
                ensure_utc(self.settled_at).isoformat() if self.settled_at else None
            ),
        }
