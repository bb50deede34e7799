from datetime import datetime, timezone

from liga_typerow import db


class Profile(db.Model):
    """A league participant (accounts themselves are managed externally)"""

    __tablename__ = "profiles"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=True, index=True)
    avatar_url = db.Column(db.String(500))
    is_admin = db.Column(db.Boolean, default=False)

    # Timestamps (created_at breaks leaderboard ties)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    bets = db.relationship(
        "Bet", backref="user", lazy="dynamic", cascade="all, delete-orphan"
    )
    knockout_bets = db.relationship(
        "KnockoutBet", backref="user", lazy="dynamic", cascade="all, delete-orphan"
    )
    scorer_bet = db.relationship(
        "ScorerBet", backref="user", uselist=False, cascade="all, delete-orphan"
    )
    ranking = db.relationship(
        "Ranking", backref="user", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (db.Index("idx_profile_created_at", "created_at"),)

    def __repr__(self):
        return f"<Profile {self.username or self.id}>"

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "avatar_url": self.avatar_url,
            "is_admin": bool(self.is_admin),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
