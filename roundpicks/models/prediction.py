from datetime import datetime, timezone

from roundpicks import db


class Prediction(db.Model):
    """A participant's answer for a round; exactly one per (participant, round)"""

    __tablename__ = "predictions"

    id = db.Column(db.Integer, primary_key=True)
    participant_id = db.Column(
        db.Integer, db.ForeignKey("participants.id"), nullable=False
    )
    round_id = db.Column(db.Integer, db.ForeignKey("rounds.id"), nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    items = db.relationship(
        "PredictionValue",
        backref="prediction",
        order_by="PredictionValue.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.UniqueConstraint(
            "participant_id", "round_id", name="unique_participant_round_prediction"
        ),
        db.Index("idx_prediction_round", "round_id"),
    )

    def __repr__(self):
        return f"<Prediction participant={self.participant_id} round={self.round_id}>"

    @property
    def values(self):
        return [item.value for item in self.items]

    def to_dict(self):
        return {
            "participantId": self.participant_id,
            "roundId": self.round_id,
            "values": self.values,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class PredictionValue(db.Model):
    __tablename__ = "prediction_values"

    prediction_id = db.Column(
        db.Integer, db.ForeignKey("predictions.id"), primary_key=True
    )
    position = db.Column(db.Integer, primary_key=True)
    value = db.Column(db.String(255), nullable=False)

    def __repr__(self):
        return f"<PredictionValue {self.position}: {self.value}>"
