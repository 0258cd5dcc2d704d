from wtforms import IntegerField
from wtforms.validators import DataRequired, ValidationError

from ..utils import ApiForm, JSONListField


def _item_objects(form, field):
    for it in field.data or []:
        if not isinstance(it, dict):
            raise ValidationError("Each item must be an object with name, quantity and price.")


class InvoiceForm(ApiForm):
    assignment_id = IntegerField("Assignment", validators=[DataRequired()])
    items = JSONListField("Items", validators=[_item_objects])


class InvoiceBatchForm(ApiForm):
    ids = JSONListField("Invoices")

    def validate_ids(self, field):
        if not field.data:
            raise ValidationError("Select at least one invoice.")
        if not all(str(x).isdigit() for x in field.data):
            raise ValidationError("Invoice ids must be numbers.")
