from wtforms import StringField, TextAreaField, DecimalField, IntegerField
from wtforms.validators import DataRequired, Length, NumberRange, Optional as Opt, ValidationError

from ..utils import ApiForm, JSONListField


def _urls(form, field):
    for url in field.data or []:
        if not isinstance(url, str) or not url.strip() or len(url) > 500:
            raise ValidationError("Images must be a list of URLs.")


class TaskForm(ApiForm):
    name = StringField("Name", validators=[DataRequired(), Length(min=3, max=255)])
    description = TextAreaField("Description", validators=[DataRequired(), Length(min=12, max=5000)])
    price = DecimalField("Price", places=2, validators=[NumberRange(min=0, max=1_000_000)])
    category_id = IntegerField("Category", validators=[DataRequired()])
    images = JSONListField("Images", validators=[_urls])


class TaskUpdateForm(ApiForm):
    name = StringField("Name", validators=[Opt(), Length(min=3, max=255)])
    description = TextAreaField("Description", validators=[Opt(), Length(min=12, max=5000)])
    price = DecimalField("Price", places=2, validators=[Opt(), NumberRange(min=0, max=1_000_000)])
    category_id = IntegerField("Category", validators=[Opt()])
    images = JSONListField("Images", validators=[_urls])
