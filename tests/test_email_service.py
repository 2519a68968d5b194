"""
Tests for SMTP delivery and email templates.
"""

import smtplib

import pytest

from roundpicks.utils.email_service import TEMPLATES, EmailService, get_email_service

PICK_DATA = {
    "recipient_name": "Alice",
    "round_name": "Monaco",
    "season_name": "2030 Championship",
    "link": "http://picks.test/pick/abc123",
    "lock_time_local": "Sat Jun 01 at 12:00 PM UTC",
    "email_message": "Good luck!",
}


class FakeSMTP:
    sent = []

    def __init__(self, host, port):
        self.host = host
        self.port = port

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, username, password):
        pass

    def sendmail(self, sender, recipients, body):
        FakeSMTP.sent.append((sender, recipients, body))


@pytest.fixture
def smtp(app, monkeypatch):
    app.config.update(MAIL_USERNAME="mailer", MAIL_PASSWORD="secret", FROM_EMAIL="picks@roundpicks.io")
    FakeSMTP.sent = []
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


class TestEmailService:
    def test_pick_link_delivered(self, smtp):
        assert EmailService().send_template("alice@roundpicks.io", "pick_link", PICK_DATA)

        sender, recipients, body = smtp.sent[0]
        assert sender == "picks@roundpicks.io"
        assert recipients == ["alice@roundpicks.io"]
        assert "Make your pick: Monaco" in body

    def test_missing_credentials_reports_failure(self, app, smtp):
        app.config["MAIL_PASSWORD"] = None

        assert EmailService().send_template("alice@roundpicks.io", "pick_link", PICK_DATA) is False
        assert smtp.sent == []

    def test_smtp_error_reports_failure(self, smtp, monkeypatch):
        def refuse(self, *args):
            raise smtplib.SMTPRecipientsRefused({})

        monkeypatch.setattr(FakeSMTP, "sendmail", refuse)

        assert EmailService().send_template("alice@roundpicks.io", "pick_link", PICK_DATA) is False

    def test_unknown_template(self, app):
        with pytest.raises(ValueError):
            EmailService().send_template("alice@roundpicks.io", "newsletter", {})

    def test_registered_sender_takes_precedence(self, app, outbox):
        assert get_email_service() is outbox


class TestTemplates:
    def test_html_values_are_escaped(self):
        data = dict(PICK_DATA, recipient_name="<b>Alice</b>", email_message="Tom & Jerry <3")

        subject, body_text, body_html = TEMPLATES["pick_link"](data)

        assert "&lt;b&gt;Alice&lt;/b&gt;" in body_html
        assert "<b>Alice</b>" not in body_html
        assert "Tom &amp; Jerry &lt;3" in body_html
        # Plain text is sent as written
        assert "<b>Alice</b>" in body_text

    def test_round_locked(self):
        subject, body_text, body_html = TEMPLATES["round_locked"](
            {
                "recipient_name": "Alice",
                "round_name": "Monaco",
                "season_name": "2030 Championship",
                "leaderboard_link": "http://picks.test/seasons/1/leaderboard",
            }
        )

        assert subject == "Monaco picks are now locked"
        assert "http://picks.test/seasons/1/leaderboard" in body_text
        assert 'href="http://picks.test/seasons/1/leaderboard"' in body_html

    def test_round_completed(self):
        subject, body_text, body_html = TEMPLATES["round_completed"](
            {
                "recipient_name": "Cara",
                "round_name": "Monaco",
                "season_name": "2030 Championship",
                "pick": None,
                "points": 0,
                "results": [["A"], ["B", "C"], [], [], []],
                "sixth_plus_points": 1,
                "standings": [
                    {"rank": 1, "name": "Alice", "total": 6, "is_you": False},
                    {"rank": 2, "name": "Cara & co", "total": 0, "is_you": True},
                ],
                "leaderboard_link": "http://picks.test/seasons/1/leaderboard",
            }
        )

        assert subject == "Monaco complete - you earned 0 points"
        assert "Your pick: no pick - 0 points" in body_text
        assert "1st: A" in body_text
        assert "2nd: B, C" in body_text
        assert "3rd" not in body_text
        assert "2. Cara & co (You) - 0 points" in body_text
        assert "Cara &amp; co (You)" in body_html

    def test_single_point_subject(self):
        subject, _, _ = TEMPLATES["round_completed"](
            {
                "recipient_name": "Bob",
                "round_name": "Monaco",
                "season_name": "2030 Championship",
                "pick": "C",
                "points": 1,
                "results": [["A"]],
                "sixth_plus_points": 1,
                "standings": [],
                "leaderboard_link": "http://picks.test/seasons/1/leaderboard",
            }
        )
        assert subject == "Monaco complete - you earned 1 point"
