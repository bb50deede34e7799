from datetime import datetime, timezone

from liga_typerow import db


class ScorerBet(db.Model):
    """A user's top scorer pick for the tournament"""

    __tablename__ = "scorer_bets"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("profiles.id"), nullable=False, unique=True
    )
    player_id = db.Column(db.Integer, db.ForeignKey("players.id"), nullable=False)
    points_awarded = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    player = db.relationship("Player")

    def __repr__(self):
        return f"<ScorerBet user_id={self.user_id} player_id={self.player_id}>"

    @staticmethod
    def place_bet(user_id, player_id, now=None):
        """Create or change the top scorer pick until the lock deadline"""
        from liga_typerow.services.settings_service import scorer_lock_deadline
        from liga_typerow.utils.timezone_utils import is_past

        from .player import Player
        from .profile import Profile

        if is_past(scorer_lock_deadline(), now):
            return None, "Top scorer betting is closed"

        if not db.session.get(Profile, user_id):
            return None, "User not found"

        if not db.session.get(Player, player_id):
            return None, "Player not found"

        bet = ScorerBet.query.filter_by(user_id=user_id).first()
        if bet:
            bet.player_id = player_id
            return bet, "Top scorer pick updated successfully"

        bet = ScorerBet(user_id=user_id, player_id=player_id)
        db.session.add(bet)
        return bet, "Top scorer pick created successfully"

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "player": self.player.to_dict() if self.player else None,
            "points_awarded": self.points_awarded,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
