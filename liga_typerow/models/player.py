from datetime import datetime, timezone

from liga_typerow import db


class Player(db.Model):
    __tablename__ = "players"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    goals = db.Column(db.Integer, nullable=False, default=0)
    team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.CheckConstraint("goals >= 0", name="non_negative_goals"),
        db.Index("idx_player_goals", "goals"),
    )

    def __repr__(self):
        return f"<Player {self.name} ({self.goals})>"

    def set_goals(self, goals):
        """Admin entry of a player's tournament goal count"""
        if isinstance(goals, bool) or not isinstance(goals, int) or goals < 0:
            raise ValueError("Goals must be a non-negative integer")
        self.goals = goals

    @staticmethod
    def goals_by_player():
        """Map of player id -> goals for scorer settlement"""
        return {player.id: player.goals or 0 for player in Player.query.all()}

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "goals": self.goals,
            "team_id": self.team_id,
        }
