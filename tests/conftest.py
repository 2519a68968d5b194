"""
Round Pick'em - Test Configuration
Pytest fixtures: an in-memory application, a captured email outbox, and
factories for seasons, participants and rounds.
"""

from datetime import datetime, timedelta, timezone

import pytest

from roundpicks import create_app, db
from roundpicks.models import Admin, Participant, Season
from roundpicks.services import round_service

# Every round in the suite locks at this instant unless a test says otherwise
LOCK = datetime(2030, 6, 1, 12, 0, tzinfo=timezone.utc)
BEFORE_LOCK = LOCK - timedelta(hours=1)
AFTER_LOCK = LOCK + timedelta(minutes=1)


class FakeEmailSender:
    """Stands in for the SMTP delivery collaborator"""

    def __init__(self):
        self.outbox = []
        self.fail = False

    def send_template(self, recipient, template_name, template_data):
        self.outbox.append((recipient, template_name, template_data))
        return not self.fail

    def tokens(self, template_name="pick_link"):
        """Plaintext tokens from the links sent so far, oldest first"""
        return [
            data["link"].rsplit("/", 1)[1]
            for _, name, data in self.outbox
            if name == template_name
        ]

    def token_for(self, recipient, template_name="pick_link"):
        for to, name, data in reversed(self.outbox):
            if to == recipient and name == template_name:
                return data["link"].rsplit("/", 1)[1]
        return None


@pytest.fixture
def app():
    app = create_app("testing")
    app.extensions["email_sender"] = FakeEmailSender()

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def outbox(app):
    return app.extensions["email_sender"]


@pytest.fixture
def season(app):
    season = Season(name="2030 Championship", year=2030)
    season.participants = [
        Participant(name="Alice", email="alice@roundpicks.io"),
        Participant(name="Bob", email="bob@roundpicks.io"),
        Participant(name="Cara", email="cara@roundpicks.io"),
    ]
    db.session.add(season)
    db.session.commit()
    return season


@pytest.fixture
def participants(season):
    return {p.name: p for p in season.participants}


@pytest.fixture
def make_round(season):
    """Create (and by default activate) a round locking at LOCK"""

    def _make(
        name="Monaco",
        pick_type="single",
        entrants=("A", "B", "C"),
        lock_time=LOCK,
        num_write_in_picks=1,
        activate=True,
        target_season=None,
    ):
        round_ = round_service.create_round(
            target_season or season,
            name=name,
            lock_time=lock_time,
            timezone_name="UTC",
            pick_type=pick_type,
            entrants=list(entrants),
            num_write_in_picks=num_write_in_picks,
        )
        if activate:
            round_service.activate_round(round_, now=lock_time - timedelta(days=2))
        return round_

    return _make


@pytest.fixture
def admin(app):
    admin = Admin(name="Olive Operator", email="olive@roundpicks.io")
    db.session.add(admin)
    db.session.commit()
    return admin


@pytest.fixture
def admin_client(client, admin, outbox):
    """A test client signed in through the real magic-link flow"""
    response = client.post("/auth/magic-link", json={"email": admin.email})
    assert response.status_code == 202

    token = outbox.token_for(admin.email, "admin_login")
    response = client.get(f"/auth/magic/{token}")
    assert response.status_code == 200
    return client
