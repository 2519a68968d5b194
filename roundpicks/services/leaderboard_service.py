"""
Leaderboard assembly

Read-only views over ScoreRecords. Only locked and completed rounds count
toward totals; draft and active rounds are left out entirely.
"""

import logging

from roundpicks import db
from roundpicks.models import Round, ScoreRecord, Season
from roundpicks.utils.cache_utils import cached_season_view
from roundpicks.utils.scoring import competition_ranks

logger = logging.getLogger(__name__)

COUNTED_STATUSES = (Round.STATUS_LOCKED, Round.STATUS_COMPLETED)


def _counted_rounds(season):
    return (
        season.rounds.filter(Round.status.in_(COUNTED_STATUSES))
        .order_by(Round.lock_time, Round.id)
        .all()
    )


def _points_by_participant(round_ids, participant_ids):
    if not round_ids or not participant_ids:
        return {}

    rows = (
        db.session.query(ScoreRecord.participant_id, ScoreRecord.round_id, ScoreRecord.points)
        .filter(
            ScoreRecord.round_id.in_(round_ids),
            ScoreRecord.participant_id.in_(participant_ids),
        )
        .all()
    )

    points = {}
    for participant_id, round_id, value in rows:
        points.setdefault(participant_id, {})[round_id] = value
    return points


def assemble(season):
    """
    Rank a season's participants by total points.

    Returns:
        List of {participantId, name, rounds, total, rank}, best first. Ties
        share a rank and the next rank skips past them (1, 1, 3).
    """
    rounds = _counted_rounds(season)
    participants = season.active_participants()
    points = _points_by_participant(
        [r.id for r in rounds], [p.id for p in participants]
    )

    standings = []
    for participant in participants:
        scored = points.get(participant.id, {})
        per_round = {}
        for round_ in rounds:
            if round_.status == Round.STATUS_COMPLETED:
                per_round[str(round_.id)] = scored.get(round_.id, 0)
            else:
                per_round[str(round_.id)] = None
        standings.append(
            {
                "participantId": participant.id,
                "name": participant.name,
                "rounds": per_round,
                "total": sum(scored.values()),
            }
        )

    standings.sort(key=lambda entry: (-entry["total"], entry["name"].lower(), entry["participantId"]))
    for entry, rank in zip(standings, competition_ranks([e["total"] for e in standings])):
        entry["rank"] = rank

    return standings


@cached_season_view("leaderboard")
def get_leaderboard(season_id):
    """Leaderboard payload for the API, cached until scores change"""
    season = db.session.get(Season, season_id)
    if season is None:
        return None

    return {
        "season": season.to_dict(),
        "rounds": [
            {"id": r.id, "name": r.name, "status": r.status} for r in _counted_rounds(season)
        ],
        "standings": assemble(season),
    }


def cumulative_points(season):
    """
    Running totals per participant across completed rounds in lock-time order.

    Each series starts at 0 so a chart has a common origin.
    """
    rounds = season.completed_rounds()
    participants = season.active_participants()
    points = _points_by_participant(
        [r.id for r in rounds], [p.id for p in participants]
    )

    series = []
    for participant in participants:
        scored = points.get(participant.id, {})
        running = [0]
        for round_ in rounds:
            running.append(running[-1] + scored.get(round_.id, 0))
        series.append(
            {"participantId": participant.id, "name": participant.name, "points": running}
        )

    return {
        "rounds": [{"id": r.id, "name": r.name} for r in rounds],
        "series": series,
    }


@cached_season_view("graph")
def get_graph(season_id):
    season = db.session.get(Season, season_id)
    if season is None:
        return None
    return cumulative_points(season)
