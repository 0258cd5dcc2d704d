# neigh/blueprints/payments/routes.py
from flask import jsonify, request, current_app
from flask_login import login_required, current_user

from ...extensions import csrf
from ...services import cart as cart_service
from ...services import payments as payment_service
from ..utils import page_arg, paginated
from . import payments_bp
from .forms import CartItemForm, CheckoutForm, PaymentForm, PayPalCaptureForm


def _payment(payment_id: int):
    return payment_service.get_payment(current_user, payment_id)


@payments_bp.get("/payments/config")
def config():
    return jsonify({
        "methods": current_app.config.get("PAYMENT_METHODS", []),
        "stripe_publishable_key": current_app.config.get("STRIPE_PUBLISHABLE_KEY"),
        "paypal_client_id": current_app.config.get("PAYPAL_CLIENT_ID"),
        "currency": current_app.config.get("PAYPAL_CURRENCY", "USD"),
    })


# -----------------
# Create / list
# -----------------

@payments_bp.post("/payments/create")
@login_required
def create():
    form = PaymentForm().validate_or_raise()
    payment, created = payment_service.create_payment(
        current_user,
        form.invoice_ids.data,
        form.payment_method.data or None,
        idempotency_key=request.headers.get("Idempotency-Key"),
    )
    return jsonify({"payment": payment.to_dict(), "created": created}), (201 if created else 200)


@payments_bp.get("/payments")
@login_required
def index():
    return paginated(payment_service.payments_for_user(current_user, page_arg()))


@payments_bp.get("/payments/summary")
@login_required
def summary():
    return jsonify({
        "as_client": payment_service.summary_as_client(current_user),
        "as_contractor": payment_service.summary_as_contractor(current_user),
    })


@payments_bp.get("/payments/<int:payment_id>")
@login_required
def detail(payment_id):
    return jsonify({"payment": _payment(payment_id).to_dict()})


@payments_bp.post("/payments/<int:payment_id>/cancel")
@login_required
def cancel(payment_id):
    p = payment_service.cancel_payment(current_user, _payment(payment_id))
    return jsonify({"payment": p.to_dict()})


# -----------------
# Stripe
# -----------------

@payments_bp.post("/payments/<int:payment_id>/stripe-intent")
@login_required
def stripe_intent(payment_id):
    return jsonify(payment_service.create_stripe_intent(current_user, _payment(payment_id)))


@payments_bp.post("/payments/<int:payment_id>/stripe-confirm")
@login_required
def stripe_confirm(payment_id):
    p = payment_service.confirm_stripe_payment(current_user, _payment(payment_id))
    return jsonify({"payment": p.to_dict()})


@payments_bp.post("/webhooks/stripe")
@csrf.exempt
def stripe_webhook():
    try:
        settled = payment_service.handle_stripe_event(
            request.get_data(), request.headers.get("Stripe-Signature", "")
        )
    except ValueError as e:
        current_app.logger.warning("Rejected Stripe webhook: %s", e)
        return jsonify({"error": "Invalid payload"}), 400
    return jsonify({"received": True, "settled": settled})


# -----------------
# PayPal
# -----------------

@payments_bp.post("/payments/<int:payment_id>/paypal-create")
@login_required
def paypal_create(payment_id):
    return jsonify(payment_service.create_paypal_order(current_user, _payment(payment_id)))


@payments_bp.post("/payments/<int:payment_id>/paypal-capture")
@login_required
def paypal_capture(payment_id):
    form = PayPalCaptureForm().validate_or_raise()
    p = payment_service.capture_paypal_order(current_user, _payment(payment_id), form.order_id.data)
    return jsonify({"payment": p.to_dict()})


# -----------------
# Cart
# -----------------

@payments_bp.get("/cart")
@login_required
def cart():
    return jsonify({"cart": cart_service.get_cart(current_user).to_dict()})


@payments_bp.post("/cart/invoices")
@login_required
def cart_add():
    form = CartItemForm().validate_or_raise()
    c = cart_service.add_invoice(current_user, form.invoice_id.data)
    return jsonify({"cart": c.to_dict()}), 201


@payments_bp.delete("/cart/invoices/<int:invoice_id>")
@login_required
def cart_remove(invoice_id):
    return jsonify({"cart": cart_service.remove_invoice(current_user, invoice_id).to_dict()})


@payments_bp.post("/cart/checkout")
@login_required
def cart_checkout():
    form = CheckoutForm().validate_or_raise()
    payment, created = payment_service.checkout_cart(
        current_user,
        form.payment_method.data or None,
        idempotency_key=request.headers.get("Idempotency-Key"),
    )
    return jsonify({"payment": payment.to_dict(), "created": created}), (201 if created else 200)
