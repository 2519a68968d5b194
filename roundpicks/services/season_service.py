"""
Season end and reopen

Ending a season freezes it: its ScoreRecords are never rewritten again and it
remembers the point schedule version the final scores were computed with.
"""

import logging

from roundpicks import db
from roundpicks.errors import InvalidTransition, SeasonEnded
from roundpicks.models import AdminAction, PointSchedule, Round, Season, SeasonWinner
from roundpicks.services import leaderboard_service, scoring_service
from roundpicks.utils.cache_utils import invalidate_season_cache
from roundpicks.utils.db_utils import lock_row, transaction
from roundpicks.utils.timezone_utils import ensure_utc, get_utc_time

logger = logging.getLogger(__name__)


def end_season(season, admin_id=None, now=None):
    """
    End a season once every round is completed.

    Rescores with the current schedule, pins that schedule version and records
    the podium.
    """
    now = ensure_utc(now) if now is not None else get_utc_time()

    with transaction():
        season = lock_row(Season, season.id)
        if season.is_ended:
            raise SeasonEnded(f"Season {season.id} already ended")

        unfinished = season.rounds.filter(Round.status != Round.STATUS_COMPLETED).count()
        if unfinished:
            raise InvalidTransition(
                f"Season {season.id} has {unfinished} round(s) not yet completed"
            )

        schedule = PointSchedule.current()
        scoring_service.rescore_season(season, schedule=schedule, now=now)

        standings = leaderboard_service.assemble(season)
        winners = SeasonWinner.award_season_winners(
            season, standings, schedule_version=schedule.version
        )

        season.ended_at = now
        season.point_schedule_id = schedule.id
        season.is_active = False

        AdminAction.log_action(
            "end_season",
            f"Ended season '{season.name}' under point schedule v{schedule.version}",
            admin_id=admin_id,
            season_id=season.id,
            action_metadata={"winners": [w.participant_id for w in winners]},
        )

    invalidate_season_cache(season.id)
    logger.info(f"Season {season.id} ended")
    return season


def reopen_season(season, admin_id=None, now=None):
    """Undo an end: unpin the schedule, drop the podium and rescore"""
    with transaction():
        season = lock_row(Season, season.id)
        if not season.is_ended:
            raise InvalidTransition(f"Season {season.id} has not ended")

        season.ended_at = None
        season.point_schedule_id = None
        season.is_active = True
        SeasonWinner.query.filter_by(season_id=season.id).delete()
        db.session.flush()

        scoring_service.rescore_season(season, now=now)

        AdminAction.log_action(
            "reopen_season",
            f"Reopened season '{season.name}'",
            admin_id=admin_id,
            season_id=season.id,
        )

    invalidate_season_cache(season.id)
    logger.info(f"Season {season.id} reopened")
    return season
