from flask_wtf import FlaskForm
from wtforms import StringField
from wtforms.validators import DataRequired, Email, Length


class MagicLinkForm(FlaskForm):
    email = StringField(
        "Email", validators=[DataRequired(), Email(), Length(max=120)]
    )
