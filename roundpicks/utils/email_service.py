"""
Email Service for Round Pick'em

Outbound delivery of magic links and round notifications. Delivery is best
effort: callers log a failed send and carry on, because a link stays valid and
can be resent.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app
from markupsafe import escape

logger = logging.getLogger(__name__)


def _pick_link_template(data):
    subject = f"Make your pick: {data['round_name']}"
    message = f"\n{data['email_message']}\n" if data.get("email_message") else ""
    body_text = f"""
Hi {data['recipient_name']},

Picks are open for {data['round_name']} ({data['season_name']}).
{message}
Make or update your pick here:
{data['link']}

Picks lock {data['lock_time_local']}. You can come back to this link to change
your pick any time before then.
"""
    html_message = (
        f"<p>{escape(data['email_message'])}</p>" if data.get("email_message") else ""
    )
    body_html = f"""
<html>
<body>
    <h2>{escape(data['round_name'])}</h2>
    <p>Hi {escape(data['recipient_name'])},</p>
    <p>Picks are open for <strong>{escape(data['round_name'])}</strong> ({escape(data['season_name'])}).</p>
    {html_message}
    <p><a href="{escape(data['link'])}" style="background-color: #28a745; color: white; padding: 10px 20px; text-decoration: none; border-radius: 5px;">Make Your Pick</a></p>
    <p style="color: #666; font-size: 14px;">Or copy this link: <br><span style="word-break: break-all;">{escape(data['link'])}</span></p>
    <p><small>Picks lock {escape(data['lock_time_local'])}.</small></p>
</body>
</html>
"""
    return subject, body_text, body_html


def _admin_login_template(data):
    subject = "Your admin sign-in link"
    body_text = f"""
Hi {data['recipient_name']},

Use the link below to sign in. It works once and expires in {data['expires_minutes']} minutes.
{data['link']}

If you didn't request this, you can ignore this email.
"""
    body_html = f"""
<html>
<body>
    <p>Hi {escape(data['recipient_name'])},</p>
    <p><a href="{escape(data['link'])}">Sign in</a></p>
    <p><small>This link works once and expires in {data['expires_minutes']} minutes.</small></p>
</body>
</html>
"""
    return subject, body_text, body_html


def _round_locked_template(data):
    subject = f"{data['round_name']} picks are now locked"
    body_text = f"""
Hi {data['recipient_name']},

The deadline for {data['round_name']} ({data['season_name']}) has passed, so picks
can no longer be submitted.

Follow the standings here:
{data['leaderboard_link']}
"""
    body_html = f"""
<html>
<body>
    <p>Hi {escape(data['recipient_name'])},</p>
    <div style="background: #fff3cd; border-left: 4px solid #ffc107; padding: 15px; margin: 20px 0;">
        <h3 style="margin-top: 0;">{escape(data['round_name'])} picks are now locked</h3>
        <p>The deadline has passed, so picks can no longer be submitted.</p>
    </div>
    <p><a href="{escape(data['leaderboard_link'])}">View Leaderboard</a></p>
</body>
</html>
"""
    return subject, body_text, body_html


def _ordinal(place):
    return {1: "1st", 2: "2nd", 3: "3rd"}.get(place, f"{place}th")


def _round_completed_template(data):
    points = data["points"]
    subject = f"{data['round_name']} complete - you earned {points} point{'s' if points != 1 else ''}"

    results = [
        f"{_ordinal(place)}: {', '.join(names)}"
        for place, names in enumerate(data["results"], start=1)
        if names
    ]
    standings = [
        f"{entry['rank']}. {entry['name']}{' (You)' if entry['is_you'] else ''} - {entry['total']} points"
        for entry in data["standings"]
    ]
    pick = data["pick"] or "no pick"

    body_text = "\n".join(
        [
            f"Hi {data['recipient_name']},",
            "",
            f"{data['round_name']} ({data['season_name']}) is complete.",
            f"Your pick: {pick} - {points} points",
            "",
            "Final results:",
            *results,
            f"All other picks received {data['sixth_plus_points']} points",
            "",
            "Standings:",
            *standings,
            "",
            data["leaderboard_link"],
        ]
    )
    body_html = f"""
<html>
<body>
    <p>Hi {escape(data['recipient_name'])},</p>
    <p><strong>{escape(data['round_name'])}</strong> ({escape(data['season_name'])}) is complete.</p>
    <p>Your pick: <strong>{escape(pick)}</strong> - {points} points</p>
    <h3>Final results</h3>
    <p>{'<br>'.join(escape(line) for line in results)}</p>
    <h3>Standings</h3>
    <p>{'<br>'.join(escape(line) for line in standings)}</p>
    <p><a href="{escape(data['leaderboard_link'])}">View Leaderboard</a></p>
</body>
</html>
"""
    return subject, body_text, body_html


TEMPLATES = {
    "pick_link": _pick_link_template,
    "admin_login": _admin_login_template,
    "round_locked": _round_locked_template,
    "round_completed": _round_completed_template,
}


class EmailService:
    """Handles all email sending functionality"""

    def __init__(self):
        self.smtp_server = current_app.config.get("MAIL_SERVER") or "localhost"
        self.smtp_port = current_app.config.get("MAIL_PORT", 587)
        self.smtp_username = current_app.config.get("MAIL_USERNAME")
        self.smtp_password = current_app.config.get("MAIL_PASSWORD")
        self.from_email = current_app.config.get("FROM_EMAIL") or "noreply@roundpicks.local"
        self.from_name = current_app.config.get("FROM_NAME", "Round Pick'em")
        self.use_tls = current_app.config.get("MAIL_USE_TLS", True)

    def _create_message(self, to_email, subject, body_text, body_html=None):
        """Create email message"""
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email

        msg.attach(MIMEText(body_text, "plain"))

        if body_html:
            msg.attach(MIMEText(body_html, "html"))

        return msg

    def _send_email(self, message):
        """Send email message"""
        try:
            if not self.smtp_username or not self.smtp_password:
                logger.warning("SMTP credentials not configured. Email not sent.")
                return False

            with smtplib.SMTP(self.smtp_server, self.smtp_port) as server:
                if self.use_tls:
                    server.starttls()
                server.login(self.smtp_username, self.smtp_password)
                server.sendmail(self.from_email, [message["To"]], message.as_string())

            logger.info(f"Email sent successfully to {message['To']}")
            return True

        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {message['To']}: {str(e)}")
            return False

    def send_template(self, recipient, template_name, template_data):
        """
        Render a named template and deliver it.

        Returns True on success and False on any delivery failure.
        """
        if template_name not in TEMPLATES:
            raise ValueError(f"Unknown email template: {template_name}")

        subject, body_text, body_html = TEMPLATES[template_name](template_data)
        message = self._create_message(recipient, subject, body_text, body_html)
        return self._send_email(message)


def get_email_service():
    """Return the configured delivery collaborator (tests may register their own)"""
    sender = current_app.extensions.get("email_sender")
    if sender is not None:
        return sender
    return EmailService()
