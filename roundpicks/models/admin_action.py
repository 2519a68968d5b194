from datetime import datetime, timezone

from roundpicks import db


class AdminAction(db.Model):
    """Audit trail of administrative operations on rounds, seasons and scoring"""

    __tablename__ = "admin_actions"

    id = db.Column(db.Integer, primary_key=True)

    # Null when the action came from the CLI or the scheduler
    admin_id = db.Column(db.Integer, db.ForeignKey("admins.id"), nullable=True)

    # Action type and details
    action_type = db.Column(
        db.String(50), nullable=False
    )  # 'activate_round', 'lock_round', 'complete_round', 'update_points', etc.
    action_description = db.Column(db.String(500), nullable=False)

    # Related object IDs for context
    round_id = db.Column(db.Integer, db.ForeignKey("rounds.id"), nullable=True)
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=True)

    # Additional context data (JSON)
    action_metadata = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    admin = db.relationship("Admin", backref="actions_performed")

    __table_args__ = (
        db.Index("idx_admin_action_admin", "admin_id"),
        db.Index("idx_admin_action_type", "action_type"),
        db.Index("idx_admin_action_created", "created_at"),
    )

    def __repr__(self):
        who = self.admin.email if self.admin else "system"
        return f"<AdminAction {self.action_type} by {who}>"

    @staticmethod
    def log_action(
        action_type,
        description,
        admin_id=None,
        round_id=None,
        season_id=None,
        action_metadata=None,
    ):
        """Log an admin action in the caller's transaction"""
        action = AdminAction(
            admin_id=admin_id,
            action_type=action_type,
            action_description=description[:500],
            round_id=round_id,
            season_id=season_id,
            action_metadata=action_metadata or {},
        )

        db.session.add(action)
        return action

    def to_dict(self):
        return {
            "id": self.id,
            "action_type": self.action_type,
            "description": self.action_description,
            "admin_id": self.admin_id,
            "round_id": self.round_id,
            "season_id": self.season_id,
            "metadata": self.action_metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
