from wtforms import IntegerField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, Optional as Opt, ValidationError

from ..utils import ApiForm, JSONListField


class ConversationForm(ApiForm):
    participant_ids = JSONListField("Participants")
    task_id = IntegerField("Task", validators=[Opt()])

    def validate_participant_ids(self, field):
        if not field.data:
            raise ValidationError("Add at least one participant.")
        if not all(str(x).isdigit() for x in field.data):
            raise ValidationError("Participant ids must be numbers.")


class MessageForm(ApiForm):
    conversation_id = IntegerField("Conversation", validators=[DataRequired()])
    content = TextAreaField("Message", validators=[Opt(), Length(max=5000)])
    image_url = StringField("Image", validators=[Opt(), Length(max=500)])


class ReadForm(ApiForm):
    conversation_id = IntegerField("Conversation", validators=[DataRequired()])
