# neigh/blueprints/auth/forms.py
from __future__ import annotations

from wtforms import StringField, PasswordField, BooleanField, SelectField
from wtforms.validators import (
    DataRequired,
    Email,
    Length,
    EqualTo,
    Optional as Opt,
    Regexp,
    ValidationError,
)

from ..utils import ApiForm, JSONObjectField
from ...models.user import User


# ---------------------
# Validators / Helpers
# ---------------------

PASSWORD_VALIDATORS = [
    DataRequired(),
    Length(min=8, message="Password must be at least 8 characters."),
    Regexp(r"^(?=.*[A-Za-z])(?=.*\d).+$", message="Use letters and numbers."),
]

PAYMENT_CHOICES = [("", "None"), ("STRIPE", "Stripe"), ("PAYPAL", "PayPal")]


def _email_exists(email: str) -> bool:
    return User.query.filter(User.email == email.lower().strip()).first() is not None


# -------------
# Auth Forms
# -------------

class RegisterForm(ApiForm):
    name = StringField("Full name", validators=[DataRequired(), Length(min=2, max=120)])
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    phone = StringField("Phone", validators=[Opt(), Length(max=50)])
    password = PasswordField("Password", validators=PASSWORD_VALIDATORS)
    password2 = PasswordField("Confirm password", validators=[Opt(), EqualTo("password", message="Passwords must match.")])

    def validate_email(self, field):
        if _email_exists(field.data):
            raise ValidationError("This email is already registered.")


class LoginForm(ApiForm):
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired()])
    remember = BooleanField("Keep me signed in")


class ForgotPasswordForm(ApiForm):
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])


class ResetPasswordForm(ApiForm):
    password = PasswordField("New password", validators=PASSWORD_VALIDATORS)
    password2 = PasswordField("Confirm password", validators=[DataRequired(), EqualTo("password", message="Passwords must match.")])


class ProfileForm(ApiForm):
    name = StringField("Full name", validators=[Opt(), Length(min=2, max=120)])
    phone = StringField("Phone", validators=[Opt(), Length(max=50)])
    image = StringField("Image URL", validators=[Opt(), Length(max=500)])
    address = JSONObjectField("Address")
    payment_method = SelectField("Payment method", choices=PAYMENT_CHOICES, validators=[Opt()])
    language = StringField("Language", validators=[Opt(), Length(max=10)])

    def validate_address(self, field):
        if field.data is not None and not isinstance(field.data, dict):
            raise ValidationError("Address must be an object.")
