"""
Round lifecycle: draft -> active -> locked -> completed

Every transition takes a row lock on the round and re-reads its state inside
the transaction that changes it. Completing a round rescores its season in the
same transaction, so a completed round is never visible with stale scores.
"""

import logging
from datetime import datetime

from flask import current_app

from roundpicks import db
from roundpicks.errors import (
    InvalidOutcome,
    InvalidTransition,
    RoundLocked,
    SeasonEnded,
    ValidationError,
)
from roundpicks.models import (
    AdminAction,
    Participant,
    Prediction,
    Round,
    RoundEntrant,
    RoundResult,
    SeasonWinner,
)
from roundpicks.services import notification_service, scoring_service, token_service
from roundpicks.utils.cache_utils import invalidate_season_cache
from roundpicks.utils.db_utils import lock_row, transaction
from roundpicks.utils.timezone_utils import (
    ensure_utc,
    get_utc_time,
    is_valid_timezone,
    localize_to_utc,
)

logger = logging.getLogger(__name__)

PLACE_KEYS = ("first", "second", "third", "fourth", "fifth")


def _now(now=None):
    return ensure_utc(now) if now is not None else get_utc_time()


def is_locked(round_, now=None):
    """True when the round no longer accepts picks at ``now``"""
    return round_.is_locked(_now(now))


def _clean_names(names):
    cleaned = []
    for name in names or []:
        if not isinstance(name, str):
            raise ValidationError("Entrant names must be text")
        name = name.strip()
        if name and name not in cleaned:
            cleaned.append(name)
    return cleaned


def create_round(season, name, lock_time, timezone_name=None, pick_type=Round.PICK_SINGLE,
                 entrants=None, num_write_in_picks=1, email_message=None, admin_id=None):
    """
    Create a draft round.

    A naive ``lock_time`` is wall-clock time in ``timezone_name`` and is stored
    as the equivalent UTC instant.
    """
    if season.is_ended:
        raise SeasonEnded(f"Season {season.id} has ended")

    name = (name or "").strip()
    if not name:
        raise ValidationError("Round name is required")

    timezone_name = timezone_name or current_app.config.get("TIMEZONE", "UTC")
    if not is_valid_timezone(timezone_name):
        raise ValidationError(f"Unknown timezone: {timezone_name}")

    if pick_type not in Round.PICK_TYPES:
        raise ValidationError(f"Unknown pick type: {pick_type}")

    if not isinstance(lock_time, datetime):
        raise ValidationError("Lock time must be a date and time")

    entrant_names = _clean_names(entrants)
    max_values = current_app.config.get("MAX_PICK_VALUES", 10)

    if pick_type == Round.PICK_SINGLE:
        if not entrant_names:
            raise ValidationError("A single-pick round needs at least one entrant")
        num_write_in_picks = 1
    else:
        try:
            num_write_in_picks = int(num_write_in_picks)
        except (TypeError, ValueError):
            raise ValidationError("Number of write-in picks must be a whole number")
        if not 1 <= num_write_in_picks <= max_values:
            raise ValidationError(
                f"Number of write-in picks must be between 1 and {max_values}"
            )

    with transaction():
        round_ = Round(
            season_id=season.id,
            name=name,
            pick_type=pick_type,
            num_write_in_picks=num_write_in_picks,
            lock_time=localize_to_utc(lock_time, timezone_name),
            timezone=timezone_name,
            email_message=(email_message or "").strip() or None,
            status=Round.STATUS_DRAFT,
        )
        round_.entrants = [
            RoundEntrant(name=entrant, position=position)
            for position, entrant in enumerate(entrant_names)
        ]
        db.session.add(round_)
        db.session.flush()

        AdminAction.log_action(
            "create_round",
            f"Created round '{name}' locking {round_.format_lock_time_local()}",
            admin_id=admin_id,
            round_id=round_.id,
            season_id=season.id,
            action_metadata={"pick_type": pick_type, "entrants": len(entrant_names)},
        )

    logger.info(f"Round {round_.id} '{name}' created in season {season.id}")
    return round_


def _recipient_groups(season, participant_ids=None):
    """
    Group active season participants by inbox.

    Returns a list of (email, participants) pairs. When ``participant_ids`` is
    given, only inboxes holding at least one of them are returned.
    """
    groups = {}
    for participant in season.active_participants():
        key = Participant.normalize_email(participant.email)
        groups.setdefault(key, []).append(participant)

    if participant_ids is not None:
        wanted = set(participant_ids)
        groups = {
            email: members
            for email, members in groups.items()
            if any(p.id in wanted for p in members)
        }

    return sorted(groups.items())


def _create_links(round_, groups, created_ip=None):
    """Create one token per inbox; a shared inbox gets one email-owned token"""
    outgoing = []
    for email, members in groups:
        if len(members) > 1:
            value = token_service.create_pick_token(round_, email=email, created_ip=created_ip)
            recipient_name = " & ".join(p.name for p in members)
        else:
            value = token_service.create_pick_token(
                round_, participant=members[0], created_ip=created_ip
            )
            recipient_name = members[0].name
        outgoing.append((members[0].email, recipient_name, value))
    return outgoing


def _deliver_links(round_, outgoing):
    sent = 0
    for recipient, recipient_name, value in outgoing:
        if token_service.send_pick_link(round_, value, recipient, recipient_name):
            sent += 1

    failed = len(outgoing) - sent
    if failed:
        logger.warning(f"Round {round_.id}: {failed} of {len(outgoing)} pick links not delivered")

    return {"links_issued": len(outgoing), "emails_sent": sent, "emails_failed": failed}


def activate_round(round_, admin_id=None, created_ip=None, now=None):
    """
    Open a draft round for picks and email every participant their link.

    Tokens are committed with the status change; email delivery happens after
    commit and its failures leave the tokens valid.
    """
    now = _now(now)

    with transaction():
        round_ = lock_row(Round, round_.id)
        if round_.season.is_ended:
            raise SeasonEnded(f"Season {round_.season_id} has ended")
        if round_.status != Round.STATUS_DRAFT:
            raise InvalidTransition(
                f"Round {round_.id} cannot be activated from status {round_.status}"
            )
        if round_.lock_time_passed(now):
            raise InvalidTransition(f"Round {round_.id} lock time has already passed")

        round_.status = Round.STATUS_ACTIVE
        outgoing = _create_links(round_, _recipient_groups(round_.season), created_ip)

        AdminAction.log_action(
            "activate_round",
            f"Activated round '{round_.name}' and issued {len(outgoing)} link(s)",
            admin_id=admin_id,
            round_id=round_.id,
            season_id=round_.season_id,
        )

    logger.info(f"Round {round_.id} activated")
    return _deliver_links(round_, outgoing)


def resend_links(round_, participant_ids=None, admin_id=None, created_ip=None, now=None):
    """
    Re-issue pick links, invalidating the ones they replace.

    Without ``participant_ids``, every active participant who has not picked yet
    gets a fresh link.
    """
    now = _now(now)

    with transaction():
        round_ = lock_row(Round, round_.id)
        if round_.status == Round.STATUS_DRAFT:
            raise InvalidTransition(f"Round {round_.id} has not been activated")
        if round_.is_locked(now):
            raise RoundLocked(f"Round {round_.id} is locked; links not resent")

        if participant_ids is None:
            picked = {
                participant_id
                for (participant_id,) in db.session.query(Prediction.participant_id)
                .filter(Prediction.round_id == round_.id)
                .all()
            }
            participant_ids = [
                p.id for p in round_.season.active_participants() if p.id not in picked
            ]

        outgoing = _create_links(
            round_, _recipient_groups(round_.season, participant_ids), created_ip
        )

        AdminAction.log_action(
            "resend_links",
            f"Resent {len(outgoing)} link(s) for round '{round_.name}'",
            admin_id=admin_id,
            round_id=round_.id,
            season_id=round_.season_id,
            action_metadata={"participant_ids": list(participant_ids)},
        )

    return _deliver_links(round_, outgoing)


def lock_round(round_, admin_id=None):
    """Explicitly lock an active round ahead of its lock time"""
    with transaction():
        round_ = lock_row(Round, round_.id)
        if round_.status != Round.STATUS_ACTIVE:
            raise InvalidTransition(
                f"Round {round_.id} cannot be locked from status {round_.status}"
            )

        round_.status = Round.STATUS_LOCKED

        AdminAction.log_action(
            "lock_round",
            f"Locked round '{round_.name}'",
            admin_id=admin_id,
            round_id=round_.id,
            season_id=round_.season_id,
        )

    invalidate_season_cache(round_.season_id)
    logger.info(f"Round {round_.id} locked")
    notification_service.notify_round_locked(round_)
    return round_


def lock_expired_rounds(now=None):
    """
    Mark active rounds whose lock time has passed as locked.

    Picks are already refused past the lock time; this makes the status match.
    Returns the ids of the rounds locked.
    """
    now = _now(now)

    with transaction():
        candidates = [
            round_id
            for (round_id,) in db.session.query(Round.id)
            .filter(Round.status == Round.STATUS_ACTIVE, Round.lock_time < now)
            .all()
        ]

        locked = []
        for round_id in candidates:
            round_ = lock_row(Round, round_id)
            if round_.status == Round.STATUS_ACTIVE and round_.lock_time_passed(now):
                round_.status = Round.STATUS_LOCKED
                locked.append(round_)
                AdminAction.log_action(
                    "auto_lock",
                    f"Round '{round_.name}' locked at its lock time",
                    round_id=round_.id,
                    season_id=round_.season_id,
                )

    for season_id in {r.season_id for r in locked}:
        invalidate_season_cache(season_id)

    if locked:
        logger.info(f"Auto-locked {len(locked)} round(s): {[r.id for r in locked]}")

    for round_ in locked:
        notification_service.notify_round_locked(round_)

    return [r.id for r in locked]


def parse_outcome(data):
    """
    Accept either ``{"outcome": [[...], ...]}`` or ``{"first": [...], ...}``.

    A bare string at a placement is treated as a one-name list.
    """
    if not isinstance(data, dict):
        raise InvalidOutcome("Outcome must be an object")

    if "outcome" in data:
        placements = data["outcome"]
        if not isinstance(placements, list):
            raise InvalidOutcome("Outcome must be a list of placements")
    else:
        placements = [data.get(key) for key in PLACE_KEYS]

    outcome = []
    for names in placements:
        if names is None:
            names = []
        elif isinstance(names, str):
            names = [names]
        elif not isinstance(names, list):
            raise InvalidOutcome("Each placement must be a list of names")
        outcome.append(names)
    return outcome


def normalize_outcome(round_, outcome):
    """
    Validate a ranked outcome against the round's entrants.

    Args:
        round_: The round being completed
        outcome: List of placements (1st first); each a list of entrant names,
            several names at one placement being a tie

    Returns:
        Mapping of placement to canonical entrant names
    """
    if len(outcome) > len(PLACE_KEYS):
        raise InvalidOutcome(f"At most {len(PLACE_KEYS)} placements can be recorded")

    canonical = {name.lower(): name for name in round_.candidates}
    seen = set()
    placements = {}

    for place, names in enumerate(outcome, start=1):
        for name in names:
            if not isinstance(name, str):
                raise InvalidOutcome("Entrant names must be text")
            name = name.strip()
            if not name:
                continue

            if canonical:
                if name.lower() not in canonical:
                    raise InvalidOutcome(f"'{name}' is not an entrant of round {round_.id}")
                name = canonical[name.lower()]

            if name.lower() in seen:
                raise InvalidOutcome(f"'{name}' appears at more than one placement")
            seen.add(name.lower())
            placements.setdefault(place, []).append(name)

    if not placements.get(1):
        raise InvalidOutcome("A first-place finisher is required")

    return placements


def complete_round(round_, outcome, admin_id=None, now=None):
    """
    Record a locked round's outcome and rescore its season.

    An active round whose lock time has passed is locked on the way. Any other
    status is an invalid transition.
    """
    now = _now(now)

    with transaction():
        round_ = lock_row(Round, round_.id)
        if round_.season.is_ended:
            raise SeasonEnded(f"Season {round_.season_id} has ended")

        if round_.status == Round.STATUS_ACTIVE and round_.lock_time_passed(now):
            round_.status = Round.STATUS_LOCKED

        if round_.status != Round.STATUS_LOCKED:
            raise InvalidTransition(
                f"Round {round_.id} cannot be completed from status {round_.status}"
            )

        placements = normalize_outcome(round_, outcome)

        round_.results = [
            RoundResult(place=place, entrant_name=name)
            for place in sorted(placements)
            for name in placements[place]
        ]
        round_.status = Round.STATUS_COMPLETED
        round_.completed_at = now
        db.session.flush()

        scored = scoring_service.rescore_season(round_.season, now=now)

        AdminAction.log_action(
            "complete_round",
            f"Completed round '{round_.name}'",
            admin_id=admin_id,
            round_id=round_.id,
            season_id=round_.season_id,
            action_metadata={"outcome": round_.outcome_list(), "scored": scored},
        )

    invalidate_season_cache(round_.season_id)
    logger.info(f"Round {round_.id} completed; season {round_.season_id} rescored")
    notification_service.notify_round_completed(round_)
    return round_


def reopen_round(round_, admin_id=None, now=None):
    """
    Return a completed round to locked so its outcome can be entered again.

    Clears the outcome and any season winners derived from it, then rescores.
    """
    now = _now(now)

    with transaction():
        round_ = lock_row(Round, round_.id)
        if round_.season.is_ended:
            raise SeasonEnded(f"Season {round_.season_id} has ended; reopen the season first")
        if round_.status != Round.STATUS_COMPLETED:
            raise InvalidTransition(
                f"Round {round_.id} cannot be reopened from status {round_.status}"
            )

        round_.results = []
        round_.status = Round.STATUS_LOCKED
        round_.completed_at = None
        SeasonWinner.query.filter_by(season_id=round_.season_id).delete()
        db.session.flush()

        scoring_service.rescore_season(round_.season, now=now)

        AdminAction.log_action(
            "reopen_round",
            f"Reopened round '{round_.name}'",
            admin_id=admin_id,
            round_id=round_.id,
            season_id=round_.season_id,
        )

    invalidate_season_cache(round_.season_id)
    logger.info(f"Round {round_.id} reopened")
    return round_
