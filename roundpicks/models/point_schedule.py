from datetime import datetime, timezone

from flask import current_app

from roundpicks import db

TIERS = ("first", "second", "third", "fourth", "fifth", "sixth_plus")


class PointSchedule(db.Model):
    """
    Points per placement. Rows are append-only; the highest version is current.

    Scoring always receives a schedule object, so a recompute is reproducible
    against the exact version it ran with.
    """

    __tablename__ = "point_schedules"

    id = db.Column(db.Integer, primary_key=True)
    version = db.Column(db.Integer, unique=True, nullable=False)

    first = db.Column(db.Integer, nullable=False)
    second = db.Column(db.Integer, nullable=False)
    third = db.Column(db.Integer, nullable=False)
    fourth = db.Column(db.Integer, nullable=False)
    fifth = db.Column(db.Integer, nullable=False)
    sixth_plus = db.Column(db.Integer, nullable=False)

    created_by_admin_id = db.Column(
        db.Integer, db.ForeignKey("admins.id"), nullable=True
    )
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<PointSchedule v{self.version}>"

    @staticmethod
    def current():
        """The newest schedule, seeding the configured default on first use"""
        schedule = PointSchedule.query.order_by(PointSchedule.version.desc()).first()
        if schedule is None:
            schedule = PointSchedule(
                version=1, **current_app.config["DEFAULT_POINT_SCHEDULE"]
            )
            db.session.add(schedule)
            db.session.flush()
        return schedule

    @staticmethod
    def validate(values):
        """
        Check a full tier mapping against the configured bounds.

        Returns:
            A dict of tier to int, or raises ValueError naming the bad tier
        """
        low = current_app.config.get("POINTS_MIN", 0)
        high = current_app.config.get("POINTS_MAX", 20)
        cleaned = {}
        for tier in TIERS:
            if tier not in values or values[tier] is None:
                raise ValueError(f"Missing point value for {tier}")
            raw = values[tier]
            if isinstance(raw, str) and raw.strip().lstrip("-").isdigit():
                raw = int(raw)
            if isinstance(raw, bool) or not isinstance(raw, int):
                raise ValueError(f"Point value for {tier} must be a whole number")
            points = raw
            if points < low or points > high:
                raise ValueError(f"Point value for {tier} must be between {low} and {high}")
            cleaned[tier] = points
        return cleaned

    def points_for(self, placement):
        """Points for a placement 1..5; anything else gets the sixth-plus value"""
        if placement in (1, 2, 3, 4, 5):
            return getattr(self, TIERS[placement - 1])
        return self.sixth_plus

    def as_dict(self):
        return {tier: getattr(self, tier) for tier in TIERS}

    def to_dict(self):
        data = self.as_dict()
        data["version"] = self.version
        return data
