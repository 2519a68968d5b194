from datetime import datetime
from datetime import timezone as dt_timezone

from roundpicks import db


class Round(db.Model):
    __tablename__ = "rounds"

    STATUS_DRAFT = "draft"
    STATUS_ACTIVE = "active"
    STATUS_LOCKED = "locked"
    STATUS_COMPLETED = "completed"
    STATUSES = (STATUS_DRAFT, STATUS_ACTIVE, STATUS_LOCKED, STATUS_COMPLETED)

    PICK_SINGLE = "single"
    PICK_MULTIPLE = "multiple"
    PICK_TYPES = (PICK_SINGLE, PICK_MULTIPLE)

    id = db.Column(db.Integer, primary_key=True)
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False)
    name = db.Column(db.String(100), nullable=False)  # e.g., "Monaco Grand Prix"

    # Pick rules
    pick_type = db.Column(db.String(20), nullable=False, default=PICK_SINGLE)
    num_write_in_picks = db.Column(db.Integer, nullable=False, default=1)
    email_message = db.Column(db.Text, nullable=True)

    # Lock time is a UTC instant; timezone is only for input and display
    lock_time = db.Column(db.DateTime(timezone=True), nullable=False)
    timezone = db.Column(db.String(64), nullable=False, default="UTC")

    status = db.Column(db.String(20), nullable=False, default=STATUS_DRAFT)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(dt_timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(dt_timezone.utc),
        onupdate=lambda: datetime.now(dt_timezone.utc),
    )

    # Relationships
    entrants = db.relationship(
        "RoundEntrant",
        backref="round",
        order_by="RoundEntrant.position",
        cascade="all, delete-orphan",
    )
    results = db.relationship(
        "RoundResult",
        backref="round",
        order_by="RoundResult.place, RoundResult.id",
        cascade="all, delete-orphan",
    )
    predictions = db.relationship(
        "Prediction", backref="round", lazy="dynamic", cascade="all, delete-orphan"
    )
    tokens = db.relationship(
        "AccessToken", backref="round", lazy="dynamic", cascade="all, delete-orphan"
    )
    score_records = db.relationship(
        "ScoreRecord", backref="round", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.Index("idx_round_season", "season_id"),
        db.Index("idx_round_status_lock", "status", "lock_time"),
    )

    def __repr__(self):
        return f"<Round {self.name} ({self.status})>"

    @property
    def lock_time_utc(self):
        from roundpicks.utils.timezone_utils import ensure_utc

        return ensure_utc(self.lock_time)

    def lock_time_passed(self, now=None):
        """True once ``now`` is strictly after the lock instant"""
        from roundpicks.utils.timezone_utils import ensure_utc, get_utc_time

        now = ensure_utc(now) if now is not None else get_utc_time()
        return now > self.lock_time_utc

    def is_locked(self, now=None):
        """
        Whether the round refuses picks at ``now``.

        Locked either explicitly (status locked or completed) or because the lock
        instant has passed, whatever the status says. Every pick write consults
        this, so a round never needs the auto-lock job to run to be closed.
        """
        if self.status in (self.STATUS_LOCKED, self.STATUS_COMPLETED):
            return True
        return self.lock_time_passed(now)

    def accepts_picks(self, now=None):
        return self.status == self.STATUS_ACTIVE and not self.is_locked(now)

    def format_lock_time_local(self, format_str="%a %b %d at %I:%M %p %Z"):
        """Lock time in the round's own timezone, for messages"""
        from roundpicks.utils.timezone_utils import format_lock_time

        return format_lock_time(self.lock_time, self.timezone, format_str)

    @property
    def candidates(self):
        return [entrant.name for entrant in self.entrants]

    @property
    def outcome(self):
        """Mapping of placement (1..5) to entrant names; empty until completed"""
        placements = {}
        for result in self.results:
            placements.setdefault(result.place, []).append(result.entrant_name)
        return placements

    def outcome_list(self):
        return [self.outcome.get(place, []) for place in range(1, 6)]

    def to_dict(self, include_outcome=False):
        data = {
            "id": self.id,
            "seasonId": self.season_id,
            "seasonName": self.season.name if self.season else None,
            "name": self.name,
            "pickType": self.pick_type,
            "numWriteInPicks": self.num_write_in_picks,
            "lockTime": self.lock_time_utc.isoformat(),
            "lockTimeLocal": self.format_lock_time_local(),
            "timezone": self.timezone,
            "status": self.status,
        }

        if include_outcome:
            data["outcome"] = self.outcome_list()
            data["candidates"] = self.candidates

        return data


class RoundEntrant(db.Model):
    """One option of a round's candidate list"""

    __tablename__ = "round_entrants"

    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey("rounds.id"), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.UniqueConstraint("round_id", "name", name="unique_round_entrant"),
    )

    def __repr__(self):
        return f"<RoundEntrant {self.name}>"


class RoundResult(db.Model):
    """An entrant's finishing place; several rows may share a place (tie)"""

    __tablename__ = "round_results"

    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey("rounds.id"), nullable=False)
    place = db.Column(db.Integer, nullable=False)
    entrant_name = db.Column(db.String(100), nullable=False)

    __table_args__ = (
        db.CheckConstraint("place BETWEEN 1 AND 5", name="check_result_place"),
        db.UniqueConstraint(
            "round_id", "place", "entrant_name", name="unique_round_result"
        ),
        db.Index("idx_result_round", "round_id"),
    )

    def __repr__(self):
        return f"<RoundResult {self.place}: {self.entrant_name}>"
