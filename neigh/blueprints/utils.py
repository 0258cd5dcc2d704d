# neigh/blueprints/utils.py
from flask import jsonify, request, current_app
from flask_wtf import FlaskForm
from wtforms import Field

from ..services.errors import ValidationFailed


class ApiForm(FlaskForm):
    """FlaskForm fed from JSON bodies (Flask-WTF wraps ``request.get_json()``).

    CSRF is checked globally by CSRFProtect through the ``X-CSRFToken``
    header, so the per-form token is off.
    """
    class Meta:
        csrf = False

    def validate_or_raise(self):
        if not self.validate_on_submit():
            raise ValidationFailed("Invalid input", details=self.errors)
        return self


class JSONListField(Field):
    """Collects every value posted under the key (a JSON array arrives as a
    multi-value key)."""

    def process_formdata(self, valuelist):
        self.data = list(valuelist)

    def _value(self):
        return self.data or []


class JSONObjectField(Field):
    def process_formdata(self, valuelist):
        self.data = valuelist[0] if valuelist else None


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def page_arg() -> int:
    try:
        return max(int(request.args.get("page", 1)), 1)
    except (TypeError, ValueError):
        return 1


def paginated(pagination, serialize=lambda x: x.to_dict()):
    return jsonify({
        "items": [serialize(x) for x in pagination.items],
        "page": pagination.page,
        "pages": pagination.pages,
        "per_page": pagination.per_page,
        "total": pagination.total,
    })


def log_action(action: str, **fields):
    current_app.logger.info("%s %s", action, " ".join(f"{k}={v}" for k, v in fields.items()))
