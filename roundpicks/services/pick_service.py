"""
Pick store

One Prediction per (participant, round), holding an ordered list of values.
Submission re-checks the lock inside the writing transaction, after taking a
row lock on the round, so a pick can never land after the round is locked.
"""

import logging

from flask import current_app

from roundpicks import db
from roundpicks.errors import (
    EmptySubmission,
    InvalidCandidate,
    InvalidSubmission,
    InvalidTransition,
    RoundLocked,
    TokenNotFound,
)
from roundpicks.models import AdminAction, Participant, Prediction, PredictionValue, Round
from roundpicks.utils.db_utils import lock_row, transaction
from roundpicks.utils.timezone_utils import ensure_utc, get_utc_time

logger = logging.getLogger(__name__)


def clean_values(round_, values):
    """
    Normalize submitted values for a round's pick type.

    Values are trimmed. Single-pick rounds need exactly one value from the
    candidate list (exact, case-sensitive). Write-in rounds drop blank entries
    and accept 1..num_write_in_picks values of free text.
    """
    if values is None:
        raise EmptySubmission("No values submitted")
    if not isinstance(values, (list, tuple)):
        raise InvalidSubmission("Values must be a list")

    max_length = current_app.config.get("MAX_PICK_LENGTH", 100)
    max_values = current_app.config.get("MAX_PICK_VALUES", 10)

    cleaned = []
    for value in values:
        if value is None:
            continue
        if not isinstance(value, str):
            raise InvalidSubmission("Each value must be text")
        value = value.strip()
        if not value:
            continue
        if len(value) > max_length:
            raise InvalidSubmission(f"Value longer than {max_length} characters")
        cleaned.append(value)

    if not cleaned:
        raise EmptySubmission(f"No non-blank values for round {round_.id}")

    if round_.pick_type == Round.PICK_SINGLE:
        if len(cleaned) != 1:
            raise InvalidSubmission(f"Round {round_.id} takes exactly one pick")
        if cleaned[0] not in round_.candidates:
            raise InvalidCandidate(f"'{cleaned[0]}' is not a candidate of round {round_.id}")
    else:
        allowed = min(round_.num_write_in_picks or 1, max_values)
        if len(cleaned) > allowed:
            raise InvalidSubmission(
                f"Round {round_.id} takes at most {allowed} picks, got {len(cleaned)}"
            )

    return cleaned


def get_prediction(participant_id, round_id):
    return Prediction.query.filter_by(
        participant_id=participant_id, round_id=round_id
    ).first()


def _check_participant(round_, participant_id):
    participant = db.session.get(Participant, participant_id)
    if (
        participant is None
        or not participant.is_active
        or participant not in round_.season.participants
    ):
        raise InvalidSubmission(
            f"Participant {participant_id} is not in season {round_.season_id}"
        )
    return participant


def _store_values(round_, participant_id, cleaned, now):
    """
    Write cleaned values into the caller's transaction.

    Returns:
        Tuple of (prediction, changed); identical values are left untouched
    """
    prediction = get_prediction(participant_id, round_.id)
    if prediction is None:
        prediction = Prediction(participant_id=participant_id, round_id=round_.id)
        db.session.add(prediction)
    elif prediction.values == cleaned:
        logger.debug(f"Identical pick resubmitted for round {round_.id} by {participant_id}")
        return prediction, False
    else:
        # Delete the old rows before inserting new ones with the same keys
        prediction.items.clear()
        prediction.updated_at = now
        db.session.flush()

    prediction.items.extend(
        PredictionValue(position=position, value=value)
        for position, value in enumerate(cleaned)
    )
    db.session.flush()
    return prediction, True


def submit_pick(participant_id, round_id, values, now=None):
    """
    Create or replace a participant's prediction for a round.

    Resubmitting identical values leaves the stored prediction untouched;
    different values replace the whole list.

    Raises:
        RoundLocked: the round is not open at ``now``
        InvalidCandidate, EmptySubmission, InvalidSubmission: bad values

    Returns:
        The stored Prediction
    """
    now = ensure_utc(now) if now is not None else get_utc_time()

    with transaction():
        round_ = lock_row(Round, round_id)
        if round_ is None:
            raise TokenNotFound(f"Round {round_id} no longer exists")

        # Authoritative check: runs after the row lock, inside the write
        if not round_.accepts_picks(now):
            raise RoundLocked(
                f"Pick for round {round_id} refused: status={round_.status}, "
                f"lock_time={round_.lock_time_utc.isoformat()}"
            )

        _check_participant(round_, participant_id)
        cleaned = clean_values(round_, values)
        prediction, changed = _store_values(round_, participant_id, cleaned, now)

    if changed:
        logger.info(
            f"Pick saved for participant {participant_id} in round {round_id} "
            f"({len(cleaned)} value(s))"
        )
    return prediction


def admin_submit_pick(participant_id, round_id, values, admin_id=None, now=None):
    """
    Enter or correct a pick on a participant's behalf.

    Ignores the lock time and an explicit lock, so late picks can be recorded
    before the outcome is entered. Draft and completed rounds are refused;
    correcting a completed round means reopening it first. Values are
    validated exactly as for a participant's own submission.

    Raises:
        InvalidTransition: the round is a draft or already completed
        InvalidCandidate, EmptySubmission, InvalidSubmission: bad values
    """
    now = ensure_utc(now) if now is not None else get_utc_time()

    with transaction():
        round_ = lock_row(Round, round_id)
        if round_ is None:
            raise TokenNotFound(f"Round {round_id} no longer exists")

        if round_.status not in (Round.STATUS_ACTIVE, Round.STATUS_LOCKED):
            raise InvalidTransition(
                f"Picks for round {round_id} cannot be entered from status {round_.status}"
            )

        participant = _check_participant(round_, participant_id)
        cleaned = clean_values(round_, values)
        prediction, changed = _store_values(round_, participant_id, cleaned, now)

        if changed:
            AdminAction.log_action(
                "admin_pick",
                f"Entered pick for {participant.name} in round '{round_.name}'",
                admin_id=admin_id,
                round_id=round_.id,
                season_id=round_.season_id,
                action_metadata={"participant_id": participant_id, "values": cleaned},
            )

    logger.info(
        f"Admin {admin_id} entered pick for participant {participant_id} in round {round_id}"
    )
    return prediction
