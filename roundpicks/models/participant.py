from datetime import datetime, timezone

from roundpicks import db


class Participant(db.Model):
    __tablename__ = "participants"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    # Not unique: a family can share one inbox
    email = db.Column(db.String(120), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    predictions = db.relationship(
        "Prediction",
        backref="participant",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Participant {self.name}>"

    @staticmethod
    def normalize_email(email):
        return (email or "").strip().lower()

    def to_dict(self):
        return {"id": self.id, "name": self.name}
