from wtforms import IntegerField, StringField
from wtforms.validators import DataRequired, Length, Optional as Opt, ValidationError

from ..utils import ApiForm, JSONListField


class PaymentForm(ApiForm):
    invoice_ids = JSONListField("Invoices")
    payment_method = StringField("Payment method", validators=[Opt(), Length(max=20)])

    def validate_invoice_ids(self, field):
        if not field.data:
            raise ValidationError("Select at least one invoice.")
        if not all(str(x).isdigit() for x in field.data):
            raise ValidationError("Invoice ids must be numbers.")


class PayPalCaptureForm(ApiForm):
    order_id = StringField("Order", validators=[DataRequired(), Length(max=120)])


class CartItemForm(ApiForm):
    invoice_id = IntegerField("Invoice", validators=[DataRequired()])


class CheckoutForm(ApiForm):
    payment_method = StringField("Payment method", validators=[Opt(), Length(max=20)])
