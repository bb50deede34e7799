from datetime import datetime, timezone

from liga_typerow import db


class AdminAction(db.Model):
    __tablename__ = "admin_actions"

    id = db.Column(db.Integer, primary_key=True)

    # Who triggered the action ("cli", "scheduler" or the API actor header)
    actor = db.Column(db.String(100), nullable=False, default="system")
    target_user_id = db.Column(
        db.Integer, db.ForeignKey("profiles.id"), nullable=True
    )  # User being acted upon

    # Action type and details
    action_type = db.Column(
        db.String(50), nullable=False
    )  # 'match_result', 'resolve_slot', 'settle_scorers', 'set_bonus', ...
    action_description = db.Column(db.String(500), nullable=False)

    # Related object IDs for context
    match_id = db.Column(db.Integer, db.ForeignKey("matches.id"), nullable=True)
    ko_tree_id = db.Column(db.Integer, db.ForeignKey("ko_trees.id"), nullable=True)

    # Additional context data (JSON)
    action_metadata = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    target_user = db.relationship("Profile", foreign_keys=[target_user_id])

    __table_args__ = (
        db.Index("idx_admin_action_type", "action_type"),
        db.Index("idx_admin_action_created", "created_at"),
    )

    def __repr__(self):
        return f"<AdminAction {self.action_type} by {self.actor}>"

    @staticmethod
    def log_action(
        action_type,
        description,
        actor="system",
        target_user_id=None,
        match_id=None,
        ko_tree_id=None,
        action_metadata=None,
    ):
        """Log an admin action"""
        action = AdminAction(
            actor=actor,
            target_user_id=target_user_id,
            action_type=action_type,
            action_description=description,
            match_id=match_id,
            ko_tree_id=ko_tree_id,
            action_metadata=action_metadata or {},
        )

        db.session.add(action)
        return action

    @staticmethod
    def log_match_result(match, actor="system"):
        """Convenience method for logging result entry"""
        description = (
            f"Result {match.team_a.short_name} {match.team_a_score}:"
            f"{match.team_b_score} {match.team_b.short_name} ({match.phase})"
        )
        return AdminAction.log_action(
            action_type="match_result",
            description=description,
            actor=actor,
            match_id=match.id,
            action_metadata={
                "team_a_score": match.team_a_score,
                "team_b_score": match.team_b_score,
            },
        )

    @staticmethod
    def log_slot_resolution(tree, round_name, slot, team, actor="system"):
        """Convenience method for logging bracket progression"""
        return AdminAction.log_action(
            action_type="resolve_slot",
            description=f"{team.short_name} advances from {round_name}[{slot}]",
            actor=actor,
            ko_tree_id=tree.id,
            action_metadata={
                "round": round_name,
                "slot": slot,
                "team_id": team.id,
                "version": tree.version,
            },
        )

    @staticmethod
    def log_bonus_change(user_id, old_bonus, new_bonus, actor="system"):
        """Convenience method for logging manual bonus points"""
        return AdminAction.log_action(
            action_type="set_bonus",
            description=f"Bonus points {old_bonus} → {new_bonus}",
            actor=actor,
            target_user_id=user_id,
            action_metadata={"old_bonus": old_bonus, "new_bonus": new_bonus},
        )

    def to_dict(self):
        """Convert action to dictionary for API responses"""
        return {
            "id": self.id,
            "actor": self.actor,
            "target_user_id": self.target_user_id,
            "action_type": self.action_type,
            "action_description": self.action_description,
            "action_metadata": self.action_metadata,
            "match_id": self.match_id,
            "ko_tree_id": self.ko_tree_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
