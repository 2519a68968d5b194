"""
Participant pick endpoints, authenticated by the magic-link token in the URL.

Every failure a participant can hit (unknown, expired or locked link) answers
403 with the same body shape; only ``code`` tells them apart.
"""

import logging

from flask import jsonify, request

from roundpicks import limiter
from roundpicks.errors import InvalidSubmission, TokenNotFound
from roundpicks.models import Round
from roundpicks.routes.picks import bp
from roundpicks.services import pick_service, token_service
from roundpicks.utils.logging_config import mask_token

logger = logging.getLogger(__name__)


def _resolve_participants(token):
    access = token_service.resolve(token)
    participants = token_service.participants_for(access)
    if not participants:
        raise TokenNotFound(f"Token {mask_token(token)} resolves to no active participant")
    return access, participants


@bp.route("/validate/<token>", methods=["GET"])
@limiter.limit("60 per minute")
def validate_token(token):
    """Describe the round a link is for, with any pick already made"""
    access, participants = _resolve_participants(token)
    round_ = access.round

    data = {
        "valid": True,
        "isSharedEmail": access.is_shared_email,
        "round": round_.to_dict(),
        "candidates": round_.candidates if round_.pick_type == Round.PICK_SINGLE else [],
    }

    if access.is_shared_email:
        data["participants"] = []
        for participant in participants:
            prediction = pick_service.get_prediction(participant.id, round_.id)
            entry = participant.to_dict()
            entry["currentPick"] = prediction.values if prediction else None
            data["participants"].append(entry)
        data["currentPick"] = None
    else:
        participant = participants[0]
        prediction = pick_service.get_prediction(participant.id, round_.id)
        data["participant"] = participant.to_dict()
        data["currentPick"] = prediction.values if prediction else None

    return jsonify(data)


@bp.route("/<token>", methods=["POST"])
@limiter.limit("30 per minute")
def submit_pick(token):
    """Create or replace the pick for the link's participant"""
    access, participants = _resolve_participants(token)
    data = request.get_json(silent=True) or {}

    if access.is_shared_email:
        try:
            participant_id = int(data.get("participant_id"))
        except (TypeError, ValueError):
            raise InvalidSubmission("Shared-inbox submission without a valid participant_id")
        if participant_id not in {p.id for p in participants}:
            raise InvalidSubmission(
                f"Participant {participant_id} is not covered by token {mask_token(token)}"
            )
    else:
        participant_id = participants[0].id

    prediction = pick_service.submit_pick(participant_id, access.round_id, data.get("values"))

    return jsonify(
        {
            "message": "Your pick has been saved",
            "participantId": participant_id,
            "values": prediction.values,
        }
    )
