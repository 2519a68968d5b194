"""
Scoring service

Turns completed round outcomes into ScoreRecords. Recomputation is total:
a season's records are deleted and rebuilt from its completed rounds, never
patched, so running it twice with the same schedule gives the same rows.
Ended seasons are never rescored; their records stay as they were at end time.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from roundpicks import db
from roundpicks.errors import RecomputeFailure, SeasonEnded, ValidationError
from roundpicks.models import (
    AdminAction,
    PointSchedule,
    Prediction,
    Round,
    ScoreRecord,
    Season,
)
from roundpicks.utils.cache_utils import invalidate_season_cache
from roundpicks.utils.db_utils import lock_row, transaction
from roundpicks.utils.scoring import score_prediction
from roundpicks.utils.timezone_utils import ensure_utc, get_utc_time

logger = logging.getLogger(__name__)


def score_participant(prediction, outcome, schedule):
    """
    Points for one prediction against a round outcome.

    Returns:
        Tuple of (placement, points); placement 6 means sixth or worse
    """
    return score_prediction(prediction.values, outcome, schedule)


def rescore_season(season, schedule=None, now=None):
    """
    Rebuild every ScoreRecord of a season inside the caller's transaction.

    Rounds without an outcome contribute nothing. Participants with no
    prediction for a completed round get no record for it.

    Returns:
        Number of records written
    """
    if season.is_ended:
        raise SeasonEnded(f"Season {season.id} has ended; scores are frozen")

    schedule = schedule or PointSchedule.current()
    now = ensure_utc(now) if now is not None else get_utc_time()

    try:
        round_ids = [
            round_id
            for (round_id,) in db.session.query(Round.id)
            .filter(Round.season_id == season.id)
            .all()
        ]
        if round_ids:
            ScoreRecord.query.filter(ScoreRecord.round_id.in_(round_ids)).delete(
                synchronize_session=False
            )

        written = 0
        for round_ in season.completed_rounds():
            outcome = round_.outcome
            if not outcome:
                continue

            for prediction in Prediction.query.filter_by(round_id=round_.id).all():
                placement, points = score_participant(prediction, outcome, schedule)
                db.session.add(
                    ScoreRecord(
                        participant_id=prediction.participant_id,
                        round_id=round_.id,
                        placement=placement,
                        points=points,
                        schedule_version=schedule.version,
                        computed_at=now,
                    )
                )
                written += 1

        db.session.flush()
    except SQLAlchemyError as e:
        logger.error(f"Rescoring season {season.id} failed: {e}", exc_info=True)
        raise RecomputeFailure(f"Season {season.id} rescoring failed: {e}") from e

    logger.info(
        f"Season {season.id} rescored with schedule v{schedule.version}: {written} record(s)"
    )
    return written


def recompute_season(season_id, schedule=None, admin_id=None, now=None):
    """
    Rescore one season in its own transaction.

    On failure the transaction rolls back, leaving the previous records intact.
    """
    with transaction():
        season = lock_row(Season, season_id)
        if season is None:
            raise ValueError(f"Season {season_id} not found")

        written = rescore_season(season, schedule=schedule, now=now)

        if admin_id is not None:
            AdminAction.log_action(
                "recompute_season",
                f"Recomputed scores for season '{season.name}'",
                admin_id=admin_id,
                season_id=season.id,
                action_metadata={"records": written},
            )

    invalidate_season_cache(season_id)
    return written


def recompute_open_seasons(schedule=None, now=None):
    """
    Rescore every season that has not ended, one transaction per season.

    Every season is attempted; if any fail, RecomputeFailure is raised at the end
    naming them, and the seasons that succeeded keep their new scores.
    """
    season_ids = [
        season_id
        for (season_id,) in db.session.query(Season.id)
        .filter(Season.ended_at.is_(None))
        .order_by(Season.id)
        .all()
    ]

    results = {}
    failed = []
    for season_id in season_ids:
        try:
            results[season_id] = recompute_season(season_id, schedule=schedule, now=now)
        except RecomputeFailure:
            failed.append(season_id)

    if failed:
        raise RecomputeFailure(f"Rescoring failed for season(s) {failed}")

    return results


def update_point_schedule(values, admin_id=None, now=None):
    """
    Store a new point schedule version and rescore every open season with it.

    Args:
        values: Mapping with first..fifth and sixth_plus point values

    Returns:
        The new PointSchedule
    """
    try:
        cleaned = PointSchedule.validate(values or {})
    except ValueError as e:
        raise ValidationError(str(e))

    with transaction():
        previous = PointSchedule.current()
        schedule = PointSchedule(
            version=previous.version + 1,
            created_by_admin_id=admin_id,
            **cleaned,
        )
        db.session.add(schedule)
        db.session.flush()

        AdminAction.log_action(
            "update_points",
            f"Point schedule updated to v{schedule.version}",
            admin_id=admin_id,
            action_metadata={"previous": previous.as_dict(), "current": cleaned},
        )

    logger.info(f"Point schedule v{schedule.version} saved: {cleaned}")

    recompute_open_seasons(schedule=schedule, now=now)
    return schedule
