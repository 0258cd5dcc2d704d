# neigh/services/payments.py
"""Checkout of one or more unpaid invoices through Stripe or PayPal.

A payment is created server-side under an idempotency key (the
``Idempotency-Key`` header, or one derived from the payer and the invoice
set), so a double submit returns the first payment instead of a second one.
Settlement (:func:`mark_payment_paid`) is idempotent too: webhook, return
URL and manual confirmation may all race to settle the same payment.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from flask import current_app
from flask_babel import gettext as _
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models.invoice import Invoice
from ..models.payment import Payment
from ..models.user import User
from . import cart, chat, gateways
from .billing_notifications import email_payment_received
from .errors import Conflict, GatewayError, NotFound, PermissionDenied, ValidationFailed

log = logging.getLogger(__name__)

STRIPE = "STRIPE"
PAYPAL = "PAYPAL"


def _methods() -> list[str]:
    return [m.upper() for m in current_app.config.get("PAYMENT_METHODS", [STRIPE, PAYPAL])]


def derive_key(invoice_ids) -> str:
    return "inv:" + ",".join(str(i) for i in sorted(invoice_ids))


def payment_total(invoices) -> Decimal:
    return sum((Decimal(str(inv.total_price)) for inv in invoices), Decimal("0.00"))


# -----------------
# Create / cancel
# -----------------

def create_payment(user: User, invoice_ids, method: str | None = None,
                   idempotency_key: str | None = None) -> tuple[Payment, bool]:
    """Returns ``(payment, created)``."""
    method = (method or user.payment_method or current_app.config.get("DEFAULT_PAYMENT_METHOD") or STRIPE).upper()
    if method not in _methods():
        raise ValidationFailed(_("Unsupported payment method: %(method)s", method=method))

    try:
        ids = sorted({int(x) for x in (invoice_ids or [])})
    except (TypeError, ValueError):
        raise ValidationFailed(_("Invalid invoice id"))
    if not ids:
        raise ValidationFailed(_("Select at least one invoice to pay"))

    key = (idempotency_key or "").strip()[:120] or derive_key(ids)
    existing = Payment.query.filter_by(user_id=user.id, idempotency_key=key).first()
    if existing:
        _check_same_invoices(existing, ids)
        return _reuse(existing, method), False

    invoices = Invoice.query.filter(Invoice.id.in_(ids)).all()
    if len(invoices) != len(ids):
        raise NotFound(_("Invoice not found"))
    for inv in invoices:
        if inv.client_id != user.id:
            raise PermissionDenied(_("You can only pay your own invoices"))
        if inv.is_paid:
            raise ValidationFailed(_("Invoice %(number)s is already paid", number=inv.invoice_number))
        if inv.payment is not None and inv.payment.is_pending:
            raise Conflict(
                _("Invoice %(number)s is already part of a pending payment", number=inv.invoice_number),
                details={"payment_id": inv.payment_id},
            )

    payment = Payment(
        user_id=user.id,
        amount=payment_total(invoices),
        currency=current_app.config.get("PAYPAL_CURRENCY", "USD"),
        payment_method=method,
        idempotency_key=key,
        invoice_ids=ids,
        status="pending",
    )
    for inv in invoices:
        inv.payment = payment
    db.session.add(payment)
    try:
        db.session.commit()
    except IntegrityError:
        # concurrent request with the same key got there first
        db.session.rollback()
        existing = Payment.query.filter_by(user_id=user.id, idempotency_key=key).first()
        if existing is None:
            raise
        _check_same_invoices(existing, ids)
        return existing, False

    log.info("payment %s created by user %s for invoices %s amount=%s via %s",
             payment.id, user.id, ids, payment.amount, method)
    return payment, True


def _check_same_invoices(payment: Payment, ids: list[int]):
    if sorted(payment.invoice_ids or []) != ids:
        log.warning("payment %s: idempotency key reused for invoices %s (opened for %s)",
                    payment.id, ids, payment.invoice_ids)
        raise Conflict(
            _("This idempotency key was already used for a different set of invoices"),
            details={"payment_id": payment.id, "invoice_ids": list(payment.invoice_ids or [])},
        )


def _reuse(payment: Payment, method: str) -> Payment:
    if payment.is_pending and payment.payment_method != method:
        # switching gateway drops the previous gateway session
        _void_gateway_session(payment)
        payment.payment_method = method
        payment.gateway_ref = None
        db.session.commit()
    return payment


def cancel_payment(user: User, payment: Payment) -> Payment:
    _check_owner(user, payment)
    if not payment.is_pending:
        raise ValidationFailed(_("Only pending payments can be cancelled"))
    _void_gateway_session(payment)

    for inv in list(payment.invoices):
        inv.payment = None
    if payment.gateway_ref:
        payment.payment_result = {**(payment.payment_result or {}),
                                  "voided": {"method": payment.payment_method, "ref": payment.gateway_ref}}
        payment.gateway_ref = None
    payment.status = "cancelled"
    # frees the key so the same invoices can be checked out again
    payment.idempotency_key = f"{payment.idempotency_key}:cancelled:{payment.id}"[:120]
    db.session.commit()
    log.info("payment %s cancelled by user %s", payment.id, user.id)
    return payment


def _void_gateway_session(payment: Payment):
    """Stop the gateway from taking money for a payment about to be cancelled.

    A Stripe intent that already succeeded is settled instead and the cancel
    is refused. PayPal orders only move money when we capture them, and
    capturing needs the stored order id, which the cancel drops.
    """
    if payment.payment_method != STRIPE or not payment.gateway_ref:
        return
    intent = gateways.retrieve_stripe_intent(payment.gateway_ref)
    status = intent.get("status")
    if status == "succeeded":
        mark_payment_paid(payment, {"provider": "stripe", "intent": intent})
        raise Conflict(_("This payment has already been completed"), details={"payment_id": payment.id})
    if status != "canceled":
        gateways.cancel_stripe_intent(payment.gateway_ref)


# -----------------
# Lookup
# -----------------

def _check_owner(user: User, payment: Payment):
    if payment.user_id != user.id:
        raise PermissionDenied(_("This payment belongs to another user"))


def get_payment(user: User, payment_id: int) -> Payment:
    p = Payment.query.get(payment_id)
    if not p:
        raise NotFound(_("Payment not found"))
    if p.user_id != user.id and not getattr(user, "is_admin", False):
        raise PermissionDenied(_("This payment belongs to another user"))
    return p


def payments_for_user(user: User, page: int = 1):
    return (Payment.query.filter_by(user_id=user.id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .paginate(page=max(int(page or 1), 1),
                      per_page=current_app.config.get("PAGE_SIZE", 20), error_out=False))


def all_payments(page: int = 1, status: str | None = None):
    qry = Payment.query
    if status:
        qry = qry.filter_by(status=status)
    return (qry.order_by(Payment.created_at.desc(), Payment.id.desc())
            .paginate(page=max(int(page or 1), 1),
                      per_page=current_app.config.get("PAGE_SIZE", 20), error_out=False))


def checkout_cart(user: User, method: str | None = None,
                  idempotency_key: str | None = None) -> tuple[Payment, bool]:
    ids = [inv.id for inv in cart.get_cart(user).invoices]
    if not ids:
        raise ValidationFailed(_("Your cart is empty"))
    return create_payment(user, ids, method, idempotency_key)


# -----------------
# Summaries
# -----------------

def _monthly(rows) -> list[dict]:
    months: dict[str, Decimal] = {}
    for when, amount in rows:
        key = f"{when:%Y-%m}"
        months[key] = months.get(key, Decimal("0.00")) + Decimal(str(amount))
    return [{"month": m, "amount": str(v)} for m, v in sorted(months.items())]


def _summary(rows) -> dict:
    rows = [(when, Decimal(str(amount))) for when, amount in rows if when is not None]
    return {
        "total_amount": str(sum((a for _w, a in rows), Decimal("0.00"))),
        "count": len(rows),
        "monthly": _monthly(rows),
    }


def summary_as_client(user: User) -> dict:
    """Settled payments the user made, by month paid."""
    rows = (db.session.query(Payment.paid_at, Payment.amount)
            .filter(Payment.user_id == user.id, Payment.status == "paid")
            .order_by(Payment.paid_at)
            .all())
    return _summary(rows)


def summary_as_contractor(user: User) -> dict:
    """Invoices paid to the user, by month paid."""
    rows = (db.session.query(Invoice.paid_at, Invoice.total_price)
            .filter(Invoice.contractor_id == user.id, Invoice.status == "paid")
            .order_by(Invoice.paid_at)
            .all())
    return _summary(rows)


def sales_summary(latest: int = 6) -> dict:
    """Marketplace-wide settled volume for the admin overview."""
    rows = (db.session.query(Payment.paid_at, Payment.amount)
            .filter(Payment.status == "paid")
            .order_by(Payment.paid_at)
            .all())
    recent = Payment.query.order_by(Payment.created_at.desc(), Payment.id.desc()).limit(latest).all()
    return {**_summary(rows), "latest_payments": [p.to_dict() for p in recent]}


def _payable(user: User, payment: Payment):
    _check_owner(user, payment)
    if payment.is_paid:
        raise ValidationFailed(_("This payment is already completed"))
    if not payment.is_pending:
        raise ValidationFailed(_("This payment was cancelled"))


# -----------------
# Stripe
# -----------------

def create_stripe_intent(user: User, payment: Payment) -> dict:
    _payable(user, payment)
    if payment.payment_method != STRIPE:
        payment.payment_method = STRIPE
        payment.gateway_ref = None

    intent = None
    if payment.gateway_ref:
        intent = gateways.retrieve_stripe_intent(payment.gateway_ref)
        if intent.get("status") in ("canceled",):
            intent = None
    if intent is None:
        intent = gateways.create_stripe_intent(
            amount=payment.amount,
            payment_id=payment.id,
            idempotency_key=f"payment-{payment.id}-{gateways.to_cents(payment.amount)}",
        )
        payment.gateway_ref = intent["id"]
        payment.payment_result = {"intent": {k: v for k, v in intent.items() if k != "client_secret"}}
    db.session.commit()

    return {
        "payment_id": payment.id,
        "payment_intent_id": intent["id"],
        "client_secret": intent.get("client_secret"),
        "publishable_key": current_app.config.get("STRIPE_PUBLISHABLE_KEY"),
        "amount": str(payment.amount),
    }


def confirm_stripe_payment(user: User, payment: Payment) -> Payment:
    """Pull the intent status from Stripe; settles when it succeeded."""
    _check_owner(user, payment)
    if payment.is_paid:
        return payment
    if payment.payment_method != STRIPE or not payment.gateway_ref:
        raise ValidationFailed(_("No card payment was started for this payment"))

    intent = gateways.retrieve_stripe_intent(payment.gateway_ref)
    if str(intent.get("metadata", {}).get("payment_id")) != str(payment.id):
        log.error("Stripe intent %s does not belong to payment %s", payment.gateway_ref, payment.id)
        raise ValidationFailed(_("Payment intent does not match this payment"))
    if intent.get("status") != "succeeded":
        raise ValidationFailed(_("The card payment has not succeeded yet"),
                               details={"status": intent.get("status")})

    mark_payment_paid(payment, {"provider": "stripe", "intent": intent})
    return payment


SETTLING_EVENTS = ("payment_intent.succeeded", "charge.succeeded")


def handle_stripe_event(payload: bytes, signature: str) -> bool:
    """Webhook entry. Returns True when the event settled a payment."""
    event = gateways.construct_stripe_event(payload, signature)
    etype = event.get("type")
    if etype not in SETTLING_EVENTS:
        log.info("Stripe event %s (%s) ignored", event.get("id"), etype)
        return False

    obj = event.get("object") or {}
    payment = None
    pid = (obj.get("metadata") or {}).get("payment_id")
    if pid and str(pid).isdigit():
        payment = Payment.query.get(int(pid))
    if payment is None:
        intent_id = obj.get("payment_intent") if etype == "charge.succeeded" else obj.get("id")
        if intent_id:
            payment = Payment.query.filter_by(gateway_ref=intent_id).first()
    if payment is None:
        log.warning("Stripe event %s: no matching payment (metadata=%s)", event.get("id"), obj.get("metadata"))
        return False

    return mark_payment_paid(payment, {"provider": "stripe", "event_id": event.get("id"), "event": etype})


# -----------------
# PayPal
# -----------------

def create_paypal_order(user: User, payment: Payment) -> dict:
    _payable(user, payment)
    _void_gateway_session(payment)
    payment.payment_method = PAYPAL
    order = gateways.create_paypal_order(amount=payment.amount, payment_id=payment.id)
    payment.gateway_ref = order.get("id")
    payment.payment_result = {"order": order}
    db.session.commit()
    return {"payment_id": payment.id, "order_id": order.get("id"), "status": order.get("status"),
            "links": order.get("links", [])}


def capture_paypal_order(user: User, payment: Payment, order_id: str) -> Payment:
    _check_owner(user, payment)
    if payment.is_paid:
        return payment
    if not payment.is_pending:
        raise ValidationFailed(_("This payment was cancelled"))
    if payment.payment_method != PAYPAL or not order_id or order_id != payment.gateway_ref:
        raise ValidationFailed(_("Order does not match this payment"))

    data = gateways.capture_paypal_order(order_id)
    status = (data.get("status") or "").upper()
    if status != "COMPLETED":
        payment.payment_result = {**(payment.payment_result or {}), "capture": data}
        db.session.commit()
        log.warning("PayPal capture for payment %s returned %s", payment.id, status)
        raise GatewayError(_("PayPal did not complete the payment"), details={"status": status})

    mark_payment_paid(payment, {"provider": "paypal", "capture": data})
    return payment


# -----------------
# Settlement
# -----------------

def mark_payment_paid(payment: Payment, result: dict | None = None) -> bool:
    """Settle a payment and its invoices exactly once.

    Returns False when it was already settled (no side effects repeat).
    A cancelled payment the gateway settles anyway takes its original
    invoices back when they are still open; otherwise it is flagged
    ``refund_due`` and settles nothing.
    """
    if payment.is_paid:
        return False
    if payment.status == "cancelled" and not _reattach_invoices(payment):
        return _flag_for_refund(payment, result)

    now = datetime.utcnow()
    updated = (
        Payment.query
        .filter(Payment.id == payment.id, Payment.is_paid.is_(False))
        .update({Payment.is_paid: True, Payment.status: "paid", Payment.paid_at: now,
                 Payment.payment_result: result or {}},
                synchronize_session=False)
    )
    if not updated:
        db.session.rollback()
        db.session.refresh(payment)
        return False
    Invoice.query.filter(Invoice.payment_id == payment.id).update(
        {Invoice.status: "paid", Invoice.paid_at: now}, synchronize_session=False)
    db.session.commit()
    db.session.refresh(payment)
    for inv in payment.invoices:
        db.session.refresh(inv)
    log.info("payment %s settled (%s invoices, amount=%s)", payment.id, len(payment.invoices), payment.amount)
    cart.drop_invoices([inv.id for inv in payment.invoices])

    for inv in payment.invoices:
        chat.post_system_message(
            payment.user, inv.assignment,
            _("Invoice %(number)s was paid", number=inv.invoice_number),
            chat.EVENT_PAYMENT_RECEIVED,
            {"invoice_id": inv.id, "payment_id": payment.id},
        )
    email_payment_received(payment)
    return True


def _reattach_invoices(payment: Payment) -> bool:
    ids = list(payment.invoice_ids or [])
    invoices = Invoice.query.filter(Invoice.id.in_(ids)).all() if ids else []
    if len(invoices) != len(ids) or not invoices:
        return False
    for inv in invoices:
        if inv.is_paid or inv.payment_id not in (None, payment.id):
            return False
    for inv in invoices:
        inv.payment = payment
    db.session.flush()
    log.warning("payment %s settled by gateway after it was cancelled; invoices %s re-attached", payment.id, ids)
    return True


def _flag_for_refund(payment: Payment, result: dict | None) -> bool:
    updated = (
        Payment.query
        .filter(Payment.id == payment.id, Payment.is_paid.is_(False))
        .update({Payment.is_paid: True, Payment.status: "refund_due", Payment.paid_at: datetime.utcnow(),
                 Payment.payment_result: result or {}},
                synchronize_session=False)
    )
    db.session.commit()
    db.session.refresh(payment)
    if updated:
        log.error("payment %s settled by gateway after it was cancelled and its invoices were paid "
                  "or re-checked out elsewhere; refund due (amount=%s)", payment.id, payment.amount)
    return False
