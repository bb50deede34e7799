"""Ranking Model - one aggregated leaderboard row per user"""

from datetime import datetime, timezone

from liga_typerow import db


class Ranking(db.Model):
    __tablename__ = "rankings"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("profiles.id"), nullable=False, unique=True
    )

    # Component totals
    match_points = db.Column(db.Integer, nullable=False, default=0)
    scorer_points = db.Column(db.Integer, nullable=False, default=0)
    ko_points = db.Column(db.Integer, nullable=False, default=0)
    bonus_points = db.Column(db.Integer, nullable=False, default=0)  # Admin override

    # Always match_points + scorer_points + ko_points + bonus_points
    total_points = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "total_points = match_points + scorer_points + ko_points + bonus_points",
            name="total_is_sum_of_components",
        ),
        db.Index("idx_ranking_total", "total_points"),
    )

    def __repr__(self):
        return f"<Ranking user_id={self.user_id} total={self.total_points}>"

    def apply_components(self, match_points, scorer_points, ko_points, bonus_points=None):
        """Set component totals and keep total_points in sync"""
        self.match_points = int(match_points or 0)
        self.scorer_points = int(scorer_points or 0)
        self.ko_points = int(ko_points or 0)
        if bonus_points is not None:
            self.bonus_points = int(bonus_points)
        self.total_points = (
            self.match_points
            + self.scorer_points
            + self.ko_points
            + (self.bonus_points or 0)
        )

    @staticmethod
    def get_leaderboard():
        """
        Rankings ordered for display: total points descending, ties broken by
        earliest profile creation.

        Returns:
            list of dicts with position, user and point components
        """
        from .profile import Profile

        rows = (
            db.session.query(Ranking, Profile)
            .join(Profile, Profile.id == Ranking.user_id)
            .order_by(
                Ranking.total_points.desc(),
                Profile.created_at.asc(),
                Profile.id.asc(),
            )
            .all()
        )

        return [
            {
                "position": index + 1,
                "user": profile.to_dict(),
                **ranking.to_dict(),
            }
            for index, (ranking, profile) in enumerate(rows)
        ]

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "match_points": self.match_points,
            "scorer_points": self.scorer_points,
            "ko_points": self.ko_points,
            "bonus_points": self.bonus_points,
            "total_points": self.total_points,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
