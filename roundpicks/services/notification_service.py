"""
Participant notifications for round lock and completion

Sent after the transition commits. Delivery is best effort: a failed email is
logged and counted, and never undoes the transition.
"""

import logging

from flask import current_app

from roundpicks.models import PointSchedule, Prediction, ScoreRecord
from roundpicks.services import leaderboard_service
from roundpicks.utils.email_service import get_email_service

logger = logging.getLogger(__name__)

STANDINGS_IN_EMAIL = 10


def leaderboard_link(season_id):
    return f"{current_app.config['APP_URL']}/seasons/{season_id}/leaderboard"


def _enabled():
    return current_app.config.get("ROUND_NOTIFICATIONS_ENABLED", True)


def _sixth_plus(season):
    # Ended seasons keep the schedule they were scored with
    schedule = season.point_schedule or PointSchedule.query.order_by(
        PointSchedule.version.desc()
    ).first()
    return schedule.sixth_plus if schedule else 0


def _send(round_, outgoing):
    sent = 0
    for recipient, template_name, data in outgoing:
        try:
            if get_email_service().send_template(recipient, template_name, data):
                sent += 1
        except Exception as e:
            logger.error(f"{template_name} delivery to {recipient} raised: {e}", exc_info=True)

    failed = len(outgoing) - sent
    if failed:
        logger.warning(f"Round {round_.id}: {failed} of {len(outgoing)} notifications not delivered")

    return {"emails_sent": sent, "emails_failed": failed}


def notify_round_locked(round_):
    """Tell every active participant that picks for ``round_`` are closed"""
    if not _enabled():
        return {"emails_sent": 0, "emails_failed": 0}

    season = round_.season
    outgoing = [
        (
            participant.email,
            "round_locked",
            {
                "recipient_name": participant.name,
                "round_name": round_.name,
                "season_name": season.name,
                "leaderboard_link": leaderboard_link(season.id),
            },
        )
        for participant in season.active_participants()
    ]

    logger.info(f"Sending lock notifications for round {round_.id} to {len(outgoing)} participant(s)")
    return _send(round_, outgoing)


def notify_round_completed(round_):
    """
    Send each active participant their result for a completed round.

    The email carries the participant's pick and points, the final placements
    and the top of the season standings.
    """
    if not _enabled():
        return {"emails_sent": 0, "emails_failed": 0}

    season = round_.season
    standings = leaderboard_service.assemble(season)
    top = standings[:STANDINGS_IN_EMAIL]
    records = {r.participant_id: r for r in ScoreRecord.query.filter_by(round_id=round_.id).all()}
    predictions = {p.participant_id: p for p in Prediction.query.filter_by(round_id=round_.id).all()}
    sixth_plus = _sixth_plus(season)

    outgoing = []
    for participant in season.active_participants():
        record = records.get(participant.id)
        prediction = predictions.get(participant.id)
        outgoing.append(
            (
                participant.email,
                "round_completed",
                {
                    "recipient_name": participant.name,
                    "round_name": round_.name,
                    "season_name": season.name,
                    "pick": prediction.values[0] if prediction and prediction.values else None,
                    "points": record.points if record else 0,
                    "results": round_.outcome_list(),
                    "sixth_plus_points": sixth_plus,
                    "standings": [
                        {
                            "rank": entry["rank"],
                            "name": entry["name"],
                            "total": entry["total"],
                            "is_you": entry["participantId"] == participant.id,
                        }
                        for entry in top
                    ],
                    "leaderboard_link": leaderboard_link(season.id),
                },
            )
        )

    logger.info(
        f"Sending completion results for round {round_.id} to {len(outgoing)} participant(s)"
    )
    return _send(round_, outgoing)

