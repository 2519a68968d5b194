import hashlib
import secrets
from datetime import datetime, timezone

from roundpicks import db


class AccessToken(db.Model):
    """
    A magic-link credential. Only the SHA-256 hash of the value is stored.

    Two kinds share this table. Pick tokens bind an identity to a round and stay
    usable until the round locks or the token expires. Admin login tokens are
    single-use: resolving one stamps ``consumed_at``.
    """

    __tablename__ = "access_tokens"

    KIND_PICK = "pick"
    KIND_ADMIN_LOGIN = "admin_login"
    KINDS = (KIND_PICK, KIND_ADMIN_LOGIN)

    id = db.Column(db.Integer, primary_key=True)
    token_hash = db.Column(db.String(255), unique=True, nullable=False, index=True)
    kind = db.Column(db.String(20), nullable=False, default=KIND_PICK)

    # Owning identity: a participant, a shared inbox address, or an admin
    participant_id = db.Column(
        db.Integer, db.ForeignKey("participants.id"), nullable=True
    )
    email = db.Column(db.String(120), nullable=True, index=True)
    admin_id = db.Column(db.Integer, db.ForeignKey("admins.id"), nullable=True)

    round_id = db.Column(db.Integer, db.ForeignKey("rounds.id"), nullable=True)

    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    consumed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_ip = db.Column(db.String(45), nullable=True)  # audit only
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    participant = db.relationship("Participant")
    admin = db.relationship("Admin")

    __table_args__ = (
        db.Index("idx_token_identity_round", "kind", "participant_id", "round_id"),
        db.Index("idx_token_email_round", "kind", "email", "round_id"),
        db.Index("idx_token_expires", "expires_at"),
    )

    def __repr__(self):
        return f"<AccessToken {self.kind} round={self.round_id}>"

    @staticmethod
    def generate_value():
        return secrets.token_hex(32)

    @staticmethod
    def hash_value(value):
        return hashlib.sha256(value.encode("utf-8")).hexdigest()

    @property
    def is_shared_email(self):
        return self.participant_id is None and self.email is not None

    def is_expired(self, now=None):
        """Expired only once ``now`` is strictly after ``expires_at``"""
        from roundpicks.utils.timezone_utils import ensure_utc, get_utc_time

        now = ensure_utc(now) if now is not None else get_utc_time()
        return now > ensure_utc(self.expires_at)
