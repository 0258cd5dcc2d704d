from wtforms import IntegerField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, NumberRange, Optional as Opt

from ..utils import ApiForm


class AssignForm(ApiForm):
    task_id = IntegerField("Task", validators=[DataRequired()])
    contractor_id = IntegerField("Contractor", validators=[DataRequired()])


class StatusForm(ApiForm):
    status = StringField("Status", validators=[DataRequired(), Length(max=50)])


class ReviewForm(ApiForm):
    rating = IntegerField("Rating", validators=[DataRequired(), NumberRange(min=1, max=5)])
    feedback = TextAreaField("Feedback", validators=[Opt(), Length(max=2000)])
