from datetime import datetime, timezone

from roundpicks import db

season_participants = db.Table(
    "season_participants",
    db.Column(
        "season_id", db.Integer, db.ForeignKey("seasons.id"), primary_key=True
    ),
    db.Column(
        "participant_id",
        db.Integer,
        db.ForeignKey("participants.id"),
        primary_key=True,
    ),
)


class Season(db.Model):
    __tablename__ = "seasons"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)  # e.g., "2025 Formula 1"
    year = db.Column(db.Integer, nullable=True, index=True)

    # Status
    is_active = db.Column(db.Boolean, default=True)
    ended_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Schedule version the season was ended under; scores stay frozen at it
    point_schedule_id = db.Column(
        db.Integer, db.ForeignKey("point_schedules.id"), nullable=True
    )

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    rounds = db.relationship(
        "Round", backref="season", lazy="dynamic", cascade="all, delete-orphan"
    )
    participants = db.relationship(
        "Participant",
        secondary=season_participants,
        backref=db.backref("seasons", lazy="dynamic"),
        order_by="Participant.name",
    )
    point_schedule = db.relationship("PointSchedule")

    __table_args__ = (
        db.Index("idx_season_active", "is_active"),
        db.Index("idx_season_ended", "ended_at"),
    )

    def __repr__(self):
        return f"<Season {self.name}>"

    @property
    def is_ended(self):
        return self.ended_at is not None

    def active_participants(self):
        """Participants still taking part, ordered by name"""
        return [p for p in self.participants if p.is_active]

    def completed_rounds(self):
        """Completed rounds in lock-time order"""
        from .round import Round

        return (
            self.rounds.filter_by(status=Round.STATUS_COMPLETED)
            .order_by(Round.lock_time, Round.id)
            .all()
        )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "year": self.year,
            "is_active": self.is_active,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "point_schedule_version": (
                self.point_schedule.version if self.point_schedule else None
            ),
        }
