"""Season Winner Model - Podium recorded when a season ends"""

from datetime import datetime, timezone

from roundpicks import db


class SeasonWinner(db.Model):
    """Derived from the leaderboard at season end; removed again on reopen"""

    __tablename__ = "season_winners"

    PODIUM_SIZE = 5

    id = db.Column(db.Integer, primary_key=True)
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False)
    participant_id = db.Column(
        db.Integer, db.ForeignKey("participants.id"), nullable=False
    )

    # Standing at the time the season ended (tied participants share a rank)
    rank = db.Column(db.Integer, nullable=False)
    total_points = db.Column(db.Integer, default=0)
    schedule_version = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    season = db.relationship(
        "Season", backref=db.backref("winners", cascade="all, delete-orphan")
    )
    participant = db.relationship("Participant", backref="season_wins")

    __table_args__ = (
        db.UniqueConstraint(
            "season_id", "participant_id", name="unique_season_winner"
        ),
        db.Index("idx_winner_season", "season_id"),
    )

    def __repr__(self):
        return f"<SeasonWinner season={self.season_id} rank={self.rank}: {self.participant_id}>"

    @staticmethod
    def award_season_winners(season, standings, schedule_version=None):
        """
        Record the podium for an ended season.

        Args:
            season: The season being ended
            standings: Leaderboard rows, already ranked
            schedule_version: Point schedule the final totals were computed with
        """
        SeasonWinner.query.filter_by(season_id=season.id).delete()

        winners = []
        for entry in standings:
            if entry["rank"] > SeasonWinner.PODIUM_SIZE:
                break
            winner = SeasonWinner(
                season_id=season.id,
                participant_id=entry["participantId"],
                rank=entry["rank"],
                total_points=entry["total"],
                schedule_version=schedule_version,
            )
            db.session.add(winner)
            winners.append(winner)

        return winners

    @staticmethod
    def get_season_awards(season_id):
        return (
            SeasonWinner.query.filter_by(season_id=season_id)
            .order_by(SeasonWinner.rank.asc(), SeasonWinner.id.asc())
            .all()
        )

    def to_dict(self):
        return {
            "season_id": self.season_id,
            "participant": self.participant.to_dict() if self.participant else None,
            "rank": self.rank,
            "total_points": self.total_points,
            "schedule_version": self.schedule_version,
        }
