from datetime import datetime, timezone

from liga_typerow import db


class Team(db.Model):
    __tablename__ = "teams"

    id = db.Column(db.Integer, primary_key=True)

    # Team identification
    name = db.Column(db.String(100), nullable=False)
    short_name = db.Column(db.String(3), nullable=False, unique=True, index=True)

    # Visual elements
    flag_url = db.Column(db.String(500))

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    home_matches = db.relationship(
        "Match",
        foreign_keys="Match.team_a_id",
        backref=db.backref("team_a", lazy="joined"),
        lazy="dynamic",
    )
    away_matches = db.relationship(
        "Match",
        foreign_keys="Match.team_b_id",
        backref=db.backref("team_b", lazy="joined"),
        lazy="dynamic",
    )
    players = db.relationship("Player", backref="team", lazy="dynamic")

    def __repr__(self):
        return f"<Team {self.short_name}>"

    def is_referenced(self):
        """Teams become immutable once a match references them"""
        return self.home_matches.count() > 0 or self.away_matches.count() > 0

    @staticmethod
    def create_team(name, short_name, flag_url=None):
        """Create a team with validation"""
        name = (name or "").strip()
        short_name = (short_name or "").strip().upper()

        if not name:
            return None, "Team name is required"

        if len(short_name) != 3 or not short_name.isalpha():
            return None, "Short name must be exactly 3 letters"

        if Team.query.filter_by(short_name=short_name).first():
            return None, f"Team {short_name} already exists"

        team = Team(name=name, short_name=short_name, flag_url=flag_url)
        db.session.add(team)
        return team, "Team created successfully"

    def update_details(self, name=None, short_name=None, flag_url=None):
        """Update a team that no match references yet"""
        if self.is_referenced():
            return False, f"Team {self.short_name} is referenced by a match and cannot be changed"

        if name is not None:
            self.name = name.strip()
        if short_name is not None:
            short_name = short_name.strip().upper()
            if len(short_name) != 3 or not short_name.isalpha():
                return False, "Short name must be exactly 3 letters"
            self.short_name = short_name
        if flag_url is not None:
            self.flag_url = flag_url

        return True, "Team updated successfully"

    @staticmethod
    def get_by_short_name(short_name):
        return Team.query.filter_by(short_name=short_name.upper()).first()

    def to_dict(self):
        """Convert team to dictionary for API responses"""
        return {
            "id": self.id,
            "name": self.name,
            "short_name": self.short_name,
            "flag_url": self.flag_url,
        }
