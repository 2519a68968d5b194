"""
Magic-link token service

Issues and resolves the bearer tokens embedded in emailed links. Plaintext
values leave this module exactly once, at issue time; only SHA-256 hashes are
stored.

Pick tokens are reusable until their round locks or they expire. Admin login
tokens are single-use.
"""

import logging
from datetime import timedelta

from flask import current_app

from roundpicks import db
from roundpicks.errors import (
    RoundLocked,
    TokenAlreadyConsumed,
    TokenExpired,
    TokenNotFound,
)
from roundpicks.models import AccessToken, Admin, Participant
from roundpicks.utils.db_utils import transaction
from roundpicks.utils.email_service import get_email_service
from roundpicks.utils.logging_config import mask_token
from roundpicks.utils.timezone_utils import ensure_utc, get_utc_time

logger = logging.getLogger(__name__)


def _now(now=None):
    return ensure_utc(now) if now is not None else get_utc_time()


def pick_link(value):
    return f"{current_app.config['APP_URL']}/pick/{value}"


def admin_login_link(value):
    return f"{current_app.config['APP_URL']}/auth/magic/{value}"


def _store(kind, expires_at, participant_id=None, email=None, admin_id=None,
           round_id=None, created_ip=None):
    """
    Replace the identity's outstanding tokens of this kind with a fresh one.

    Runs in the caller's transaction (flush only) so the delete and the insert
    commit together. Returns the plaintext value.
    """
    outstanding = AccessToken.query.filter_by(kind=kind, round_id=round_id)
    if participant_id is not None:
        outstanding = outstanding.filter_by(participant_id=participant_id)
    elif admin_id is not None:
        outstanding = outstanding.filter_by(admin_id=admin_id)
    else:
        outstanding = outstanding.filter(
            AccessToken.participant_id.is_(None), AccessToken.email == email
        )
    replaced = outstanding.delete(synchronize_session=False)

    value = AccessToken.generate_value()
    db.session.add(
        AccessToken(
            token_hash=AccessToken.hash_value(value),
            kind=kind,
            participant_id=participant_id,
            email=email,
            admin_id=admin_id,
            round_id=round_id,
            expires_at=expires_at,
            created_ip=created_ip,
        )
    )
    db.session.flush()

    if replaced:
        logger.debug(f"Replaced {replaced} outstanding {kind} token(s) for round {round_id}")

    return value


def create_pick_token(round_, participant=None, email=None, created_ip=None):
    """
    Create a pick token for one participant, or for a shared inbox address.

    The token expires at the round's lock time. Caller commits.
    """
    if participant is None and not email:
        raise ValueError("A pick token needs a participant or an email address")

    return _store(
        AccessToken.KIND_PICK,
        expires_at=round_.lock_time_utc,
        participant_id=participant.id if participant else None,
        email=None if participant else Participant.normalize_email(email),
        round_id=round_.id,
        created_ip=created_ip,
    )


def send_pick_link(round_, value, recipient, recipient_name):
    """Email a pick link. Best effort: returns False instead of raising."""
    try:
        sent = get_email_service().send_template(
            recipient,
            "pick_link",
            {
                "recipient_name": recipient_name,
                "round_name": round_.name,
                "season_name": round_.season.name,
                "link": pick_link(value),
                "lock_time_local": round_.format_lock_time_local(),
                "email_message": round_.email_message,
            },
        )
    except Exception as e:
        # Delivery is an outside collaborator; its failure must not undo the token
        logger.error(f"Pick link delivery to {recipient} raised: {e}", exc_info=True)
        sent = False

    if not sent:
        logger.warning(
            f"Pick link for round {round_.id} not delivered to {recipient}; "
            f"token remains valid and can be resent"
        )
    return sent


def issue_pick_token(round_, participant=None, email=None, recipient_name=None,
                     created_ip=None):
    """
    Issue a pick token in its own transaction and email it once.

    Returns:
        The plaintext token. It cannot be recovered afterwards.
    """
    with transaction():
        value = create_pick_token(
            round_, participant=participant, email=email, created_ip=created_ip
        )

    recipient = participant.email if participant else email
    send_pick_link(
        round_, value, recipient, recipient_name or (participant.name if participant else recipient)
    )
    logger.info(f"Issued pick token {mask_token(value)} for round {round_.id}")
    return value


def issue_admin_login(email, created_ip=None, now=None):
    """
    Issue a single-use sign-in link to an active administrator.

    Returns the plaintext value, or None when the address is not an active
    admin. Callers must answer the same way in both cases.
    """
    admin = Admin.find_active_by_email(email)
    if admin is None:
        logger.info("Admin sign-in link requested for an unknown address")
        return None

    minutes = current_app.config.get("ADMIN_LOGIN_TOKEN_MINUTES", 15)
    with transaction():
        value = _store(
            AccessToken.KIND_ADMIN_LOGIN,
            expires_at=_now(now) + timedelta(minutes=minutes),
            admin_id=admin.id,
            created_ip=created_ip,
        )

    try:
        sent = get_email_service().send_template(
            admin.email,
            "admin_login",
            {
                "recipient_name": admin.name,
                "link": admin_login_link(value),
                "expires_minutes": minutes,
            },
        )
    except Exception as e:
        logger.error(f"Admin sign-in delivery raised: {e}", exc_info=True)
        sent = False

    if not sent:
        logger.warning(f"Admin sign-in link not delivered to admin {admin.id}")

    return value


def _lookup(value):
    if not value:
        return None

    token = AccessToken.query.filter_by(token_hash=AccessToken.hash_value(value)).first()
    if token is not None:
        return token

    # Tokens issued before hashing was introduced hold the raw value
    if current_app.config.get("LEGACY_PLAINTEXT_TOKENS", False):
        token = AccessToken.query.filter_by(token_hash=value).first()
        if token is not None:
            logger.info(f"Legacy plaintext token {mask_token(value)} matched")
        return token

    return None


def resolve(value, kind=AccessToken.KIND_PICK, now=None):
    """
    Resolve a presented token to its stored row.

    Pick tokens are left untouched so the link can be reused. Admin login tokens
    are consumed by the first successful resolution.

    Raises:
        TokenNotFound: no token of this kind matches
        RoundLocked: a pick token whose round no longer accepts picks
        TokenExpired: the token expired (it is deleted)
        TokenAlreadyConsumed: a single-use token was already used
    """
    now = _now(now)
    token = _lookup(value)

    if token is None or token.kind != kind:
        raise TokenNotFound(f"No {kind} token matches {mask_token(value)}")

    # A link outliving its round reports the lock, not its own expiry
    if kind == AccessToken.KIND_PICK and token.round is not None and token.round.is_locked(now):
        raise RoundLocked(f"Token {mask_token(value)} is for locked round {token.round_id}")

    if token.is_expired(now):
        token_id = token.id
        with transaction():
            AccessToken.query.filter_by(id=token_id).delete(synchronize_session=False)
        raise TokenExpired(f"Token {mask_token(value)} (id {token_id}) expired")

    if kind == AccessToken.KIND_ADMIN_LOGIN:
        with transaction():
            # Conditional update so two concurrent redemptions cannot both win
            claimed = AccessToken.query.filter(
                AccessToken.id == token.id, AccessToken.consumed_at.is_(None)
            ).update({"consumed_at": now}, synchronize_session=False)
        if not claimed:
            raise TokenAlreadyConsumed(f"Admin token {mask_token(value)} already used")

    return token


def participants_for(token):
    """
    Participants a pick token may act for.

    A participant token covers one participant; a shared-inbox token covers
    every active season participant registered with that address.
    """
    round_ = token.round
    if round_ is None:
        return []

    season_participants = round_.season.active_participants()

    if token.participant_id is not None:
        return [p for p in season_participants if p.id == token.participant_id]

    return [
        p
        for p in season_participants
        if Participant.normalize_email(p.email) == token.email
    ]


def purge_expired_tokens(now=None):
    """Delete expired and consumed tokens. Returns the number removed."""
    now = _now(now)
    with transaction():
        removed = AccessToken.query.filter(
            db.or_(AccessToken.expires_at < now, AccessToken.consumed_at.isnot(None))
        ).delete(synchronize_session=False)

    if removed:
        logger.info(f"Purged {removed} expired or used token(s)")
    return removed
