from datetime import datetime, timezone

from liga_typerow import db
from liga_typerow.utils.bracket import normalize_predictions, validate_predictions


class KnockoutBet(db.Model):
    __tablename__ = "ko_bets"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False)
    ko_tree_id = db.Column(db.Integer, db.ForeignKey("ko_trees.id"), nullable=False)

    # {"quarter_finals": [8], "semi_finals": [4], "final": [2], "winner": id}
    predictions = db.Column(db.JSON, nullable=False)

    # Results (written by settlement only)
    points_awarded = db.Column(db.Integer, nullable=False, default=0)
    breakdown = db.Column(db.JSON, nullable=True)
    settled_version = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "ko_tree_id", name="unique_user_tree_bet"),
        db.Index("idx_ko_bet_tree", "ko_tree_id"),
    )

    def __repr__(self):
        return f"<KnockoutBet user_id={self.user_id} tree={self.ko_tree_id}>"

    @staticmethod
    def place_bet(user_id, ko_tree_id, predictions, now=None):
        """Create or replace a bracket prediction until the global lock"""
        from liga_typerow.services.settings_service import ko_lock_deadline
        from liga_typerow.utils.timezone_utils import is_past

        from .knockout_tree import KnockoutTree
        from .profile import Profile

        if is_past(ko_lock_deadline(), now):
            return None, "Knockout bracket betting is closed"

        if not db.session.get(Profile, user_id):
            return None, "User not found"

        tree = db.session.get(KnockoutTree, ko_tree_id)
        if not tree:
            return None, "Knockout tree not found"

        try:
            normalized = normalize_predictions(predictions)
        except (TypeError, ValueError) as e:
            return None, f"Invalid predictions: {e}"

        valid, message = validate_predictions(normalized, tree.snapshot().round_of_16)
        if not valid:
            return None, message

        bet = KnockoutBet.query.filter_by(user_id=user_id, ko_tree_id=ko_tree_id).first()
        if bet:
            bet.predictions = normalized
            return bet, "Bracket prediction updated successfully"

        bet = KnockoutBet(user_id=user_id, ko_tree_id=ko_tree_id, predictions=normalized)
        db.session.add(bet)
        return bet, "Bracket prediction created successfully"

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "ko_tree_id": self.ko_tree_id,
            "predictions": self.predictions,
            "points_awarded": self.points_awarded,
            "breakdown": self.breakdown,
            "settled_version": self.settled_version,
        }
