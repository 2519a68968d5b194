from datetime import datetime, timezone

from roundpicks import db


class ScoreRecord(db.Model):
    """
    Points awarded to a participant for one completed round.

    Derived data: only the scoring service writes these rows.
    """

    __tablename__ = "score_records"

    id = db.Column(db.Integer, primary_key=True)
    participant_id = db.Column(
        db.Integer, db.ForeignKey("participants.id"), nullable=False
    )
    round_id = db.Column(db.Integer, db.ForeignKey("rounds.id"), nullable=False)

    placement = db.Column(db.Integer, nullable=False)  # 1..5, 6 for sixth or worse
    points = db.Column(db.Integer, nullable=False, default=0)
    schedule_version = db.Column(db.Integer, nullable=False)
    computed_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    participant = db.relationship("Participant")

    __table_args__ = (
        db.UniqueConstraint(
            "participant_id", "round_id", name="unique_participant_round_score"
        ),
        db.Index("idx_score_round", "round_id"),
    )

    def __repr__(self):
        return f"<ScoreRecord participant={self.participant_id} round={self.round_id}: {self.points}>"
