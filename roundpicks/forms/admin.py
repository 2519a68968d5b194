from datetime import datetime

from flask import current_app
from flask_wtf import FlaskForm
from wtforms import Field, IntegerField, SelectField, StringField, TextAreaField
from wtforms.validators import (
    DataRequired,
    InputRequired,
    Length,
    NumberRange,
    Optional,
    ValidationError,
)

from roundpicks.models import Round
from roundpicks.utils.timezone_utils import is_valid_timezone


class ListField(Field):
    """Collects every value posted under one name (a JSON array)"""

    def process_formdata(self, valuelist):
        self.data = list(valuelist)

    def _value(self):
        return self.data or []

    def process_data(self, value):
        self.data = list(value) if value else []


class RoundForm(FlaskForm):
    season_id = IntegerField("Season", validators=[InputRequired()])
    name = StringField(
        "Round Name",
        validators=[
            DataRequired(),
            Length(max=100, message="Round name cannot exceed 100 characters"),
        ],
    )
    pick_type = SelectField(
        "Pick Type",
        choices=[(kind, kind.title()) for kind in Round.PICK_TYPES],
        default=Round.PICK_SINGLE,
    )
    num_write_in_picks = IntegerField(
        "Number of Picks", validators=[Optional(), NumberRange(min=1)], default=1
    )
    # ISO 8601; without an offset it is read as local time in ``timezone``
    lock_time = StringField("Lock Time", validators=[DataRequired()])
    timezone = StringField("Timezone", validators=[Optional(), Length(max=64)])
    entrants = ListField("Entrants")
    email_message = TextAreaField(
        "Email Message",
        validators=[
            Optional(),
            Length(max=2000, message="Message cannot exceed 2000 characters"),
        ],
    )

    def validate_lock_time(self, field):
        try:
            datetime.fromisoformat(str(field.data).strip())
        except ValueError:
            raise ValidationError("Lock time must be an ISO 8601 date and time")

    def validate_timezone(self, field):
        if field.data and not is_valid_timezone(field.data):
            raise ValidationError(f"Unknown timezone: {field.data}")

    @property
    def lock_time_value(self):
        return datetime.fromisoformat(str(self.lock_time.data).strip())


class PointsInRange:
    """NumberRange with bounds read from POINTS_MIN and POINTS_MAX at validation time"""

    def __call__(self, form, field):
        low = current_app.config.get("POINTS_MIN", 0)
        high = current_app.config.get("POINTS_MAX", 20)
        NumberRange(low, high)(form, field)


class PointScheduleForm(FlaskForm):
    # 0 is a valid value; the range check rejects a missing one
    first = IntegerField("1st Place", validators=[PointsInRange()])
    second = IntegerField("2nd Place", validators=[PointsInRange()])
    third = IntegerField("3rd Place", validators=[PointsInRange()])
    fourth = IntegerField("4th Place", validators=[PointsInRange()])
    fifth = IntegerField("5th Place", validators=[PointsInRange()])
    sixth_plus = IntegerField(
        "6th Place or Worse", validators=[PointsInRange()]
    )

    def values(self):
        return {
            "first": self.first.data,
            "second": self.second.data,
            "third": self.third.data,
            "fourth": self.fourth.data,
            "fifth": self.fifth.data,
            "sixth_plus": self.sixth_plus.data,
        }


class ResendLinksForm(FlaskForm):
    participant_ids = ListField("Participants")

    def validate_participant_ids(self, field):
        try:
            field.data = [int(value) for value in field.data]
        except (TypeError, ValueError):
            raise ValidationError("Participant ids must be whole numbers")


class AdminPickForm(FlaskForm):
    participant_id = IntegerField("Participant", validators=[InputRequired()])
    values = ListField("Picks")
