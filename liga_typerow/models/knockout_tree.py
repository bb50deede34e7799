"""Knockout Tree Model - the shared real bracket and its resolution log"""

from datetime import datetime, timezone

from sqlalchemy import update

from liga_typerow import db
from liga_typerow.utils.bracket import (
    ROUND_OF_16_PAIRS,
    ROUND_SIZES,
    ROUNDS,
    BracketSnapshot,
    normalize_round_of_16,
)


class KnockoutTree(db.Model):
    """The real knockout bracket as results become known"""

    __tablename__ = "ko_trees"

    id = db.Column(db.Integer, primary_key=True)

    # [[team1_id, team2_id], ...] for the 8 round-of-16 matches (ids may be null)
    round_of_16 = db.Column(db.JSON, nullable=False)

    # Advancing teams per round, materialized from the resolution log
    quarter_finals = db.Column(db.JSON, nullable=True)
    semi_finals = db.Column(db.JSON, nullable=True)
    final = db.Column(db.JSON, nullable=True)
    winner_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=True)

    # Bumped by every accepted resolution
    version = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    resolutions = db.relationship(
        "KnockoutResolution",
        backref="tree",
        lazy="dynamic",
        cascade="all, delete-orphan",
        order_by="KnockoutResolution.version",
    )
    bets = db.relationship(
        "KnockoutBet", backref="tree", lazy="dynamic", cascade="all, delete-orphan"
    )
    winner = db.relationship("Team", foreign_keys=[winner_id])

    def __repr__(self):
        return f"<KnockoutTree {self.id} v{self.version}>"

    @staticmethod
    def get_current():
        """The league runs a single bracket"""
        return KnockoutTree.query.order_by(KnockoutTree.id.asc()).first()

    @staticmethod
    def create_tree(pairs):
        """Create the bracket from 8 round-of-16 pairs (empty slots allowed)"""
        from .team import Team

        try:
            normalized = normalize_round_of_16(pairs)
        except (TypeError, ValueError) as e:
            return None, str(e)

        team_ids = [team for pair in normalized for team in pair if team is not None]
        if len(team_ids) != len(set(team_ids)):
            return None, "A team can only appear once in the round of 16"

        for team_id in team_ids:
            if not db.session.get(Team, team_id):
                return None, f"Team {team_id} not found"

        tree = KnockoutTree(
            round_of_16=[list(pair) for pair in normalized],
            quarter_finals=[None] * ROUND_SIZES["quarter_finals"],
            semi_finals=[None] * ROUND_SIZES["semi_finals"],
            final=[None] * ROUND_SIZES["final"],
            version=0,
        )
        db.session.add(tree)
        return tree, "Knockout tree created successfully"

    def assign_round_of_16(self, position, team1_id, team2_id):
        """Fill a round-of-16 pair once the group stage decides it"""
        from .team import Team

        if not 0 <= position < ROUND_OF_16_PAIRS:
            return False, f"Round of 16 has no position {position}"

        if self.resolutions.filter_by(round="quarter_finals", slot=position).first():
            return False, f"Round of 16 pair {position} is already decided"

        for team_id in (team1_id, team2_id):
            if team_id is not None and not db.session.get(Team, team_id):
                return False, f"Team {team_id} not found"

        if team1_id is not None and team1_id == team2_id:
            return False, "A pair needs two different teams"

        others = [
            team
            for index, pair in enumerate(self.round_of_16)
            if index != position
            for team in pair
            if team is not None
        ]
        if team1_id in others or team2_id in others:
            return False, "A team can only appear once in the round of 16"

        pairs = [list(pair) for pair in self.round_of_16]
        pairs[position] = [team1_id, team2_id]
        self.round_of_16 = pairs
        return True, "Round of 16 pair updated"

    def snapshot(self):
        """Immutable snapshot of the bracket built from the resolution log"""
        return BracketSnapshot.from_resolutions(
            self.round_of_16,
            [(r.round, r.slot, r.team_id) for r in self.resolutions.all()],
            version=self.version,
        )

    def claim_version(self, expected_version):
        """
        Bump the version if nobody else resolved a slot in the meantime.

        Returns:
            bool: True if the version moved from expected_version
        """
        result = db.session.execute(
            update(KnockoutTree)
            .where(
                KnockoutTree.id == self.id,
                KnockoutTree.version == expected_version,
            )
            .values(version=expected_version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def materialize(self, snapshot):
        """Copy snapshot progression into the reader-facing JSON columns"""
        self.quarter_finals = list(snapshot.resolved["quarter_finals"])
        self.semi_finals = list(snapshot.resolved["semi_finals"])
        self.final = list(snapshot.resolved["final"])
        self.winner_id = snapshot.resolved["winner"][0]

    def to_dict(self):
        return {
            "id": self.id,
            "version": self.version,
            "round_of_16": self.round_of_16,
            "quarter_finals": self.quarter_finals,
            "semi_finals": self.semi_finals,
            "final": self.final,
            "winner_id": self.winner_id,
        }


class KnockoutResolution(db.Model):
    """Append-only log entry: a team advanced from a bracket slot"""

    __tablename__ = "ko_resolutions"

    id = db.Column(db.Integer, primary_key=True)
    ko_tree_id = db.Column(db.Integer, db.ForeignKey("ko_trees.id"), nullable=False)
    round = db.Column(db.String(20), nullable=False)
    slot = db.Column(db.Integer, nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)
    version = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    team = db.relationship("Team")

    __table_args__ = (
        db.UniqueConstraint("ko_tree_id", "round", "slot", name="unique_tree_slot"),
        db.UniqueConstraint("ko_tree_id", "version", name="unique_tree_version"),
        db.CheckConstraint(
            "round IN (" + ", ".join(f"'{name}'" for name in ROUNDS) + ")",
            name="known_round",
        ),
    )

    def __repr__(self):
        return f"<KnockoutResolution tree={self.ko_tree_id} {self.round}[{self.slot}]={self.team_id}>"

    def to_dict(self):
        return {
            "round": self.round,
            "slot": self.slot,
            "team_id": self.team_id,
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
