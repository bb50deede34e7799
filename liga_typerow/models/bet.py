from datetime import datetime, timezone

from liga_typerow import db


class Bet(db.Model):
    __tablename__ = "bets"

    id = db.Column(db.Integer, primary_key=True)

    # Bet identification
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False)
    match_id = db.Column(db.Integer, db.ForeignKey("matches.id"), nullable=False)

    # Predicted score
    team_a_score = db.Column(db.Integer, nullable=False)
    team_b_score = db.Column(db.Integer, nullable=False)

    # Result (written by settlement only)
    points_awarded = db.Column(db.Integer, nullable=False, default=0)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Constraints and indexes
    __table_args__ = (
        db.UniqueConstraint("user_id", "match_id", name="unique_user_match_bet"),
        db.CheckConstraint(
            "team_a_score >= 0 AND team_b_score >= 0", name="non_negative_bet_scores"
        ),
        db.Index("idx_bet_user", "user_id"),
        db.Index("idx_bet_match", "match_id"),
    )

    def __repr__(self):
        return f"<Bet user_id={self.user_id} match_id={self.match_id} {self.team_a_score}:{self.team_b_score}>"

    @property
    def predicted_score(self):
        return self.team_a_score, self.team_b_score

    @staticmethod
    def _validate_scores(team_a_score, team_b_score):
        for score in (team_a_score, team_b_score):
            if isinstance(score, bool) or not isinstance(score, int):
                return False, "Scores must be whole numbers"
            if score < 0:
                return False, "Scores cannot be negative"
        return True, "Scores valid"

    @staticmethod
    def place_bet(user_id, match_id, team_a_score, team_b_score, now=None):
        """Create or update a bet - handles changing the prediction automatically"""
        from .match import Match
        from .profile import Profile

        valid, message = Bet._validate_scores(team_a_score, team_b_score)
        if not valid:
            return None, message

        if not db.session.get(Profile, user_id):
            return None, "User not found"

        match = db.session.get(Match, match_id)
        if not match:
            return None, "Match not found"

        if match.is_finished:
            return None, "Match is already finished"

        if match.is_locked(now):
            return None, "Betting for this match is closed"

        bet = Bet.query.filter_by(user_id=user_id, match_id=match_id).first()
        if bet:
            bet.team_a_score = team_a_score
            bet.team_b_score = team_b_score
            return bet, "Bet updated successfully"

        bet = Bet(
            user_id=user_id,
            match_id=match_id,
            team_a_score=team_a_score,
            team_b_score=team_b_score,
        )
        db.session.add(bet)
        return bet, "Bet created successfully"

    def to_dict(self):
        """Convert bet to dictionary for API responses"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "match_id": self.match_id,
            "team_a_score": self.team_a_score,
            "team_b_score": self.team_b_score,
            "points_awarded": self.points_awarded,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
