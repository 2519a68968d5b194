from datetime import datetime, timezone

from flask_login import UserMixin

from roundpicks import db


class Admin(UserMixin, db.Model):
    __tablename__ = "admins"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)

    # Account status
    is_active = db.Column(db.Boolean, default=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    last_login = db.Column(db.DateTime(timezone=True))

    def __repr__(self):
        return f"<Admin {self.email}>"

    @staticmethod
    def find_active_by_email(email):
        email = (email or "").strip().lower()
        if not email:
            return None
        return Admin.query.filter(
            db.func.lower(Admin.email) == email, Admin.is_active.is_(True)
        ).first()

    def to_dict(self):
        return {"id": self.id, "name": self.name, "email": self.email}
