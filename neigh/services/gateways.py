# neigh/services/gateways.py
"""Thin wrappers over the Stripe SDK and the PayPal Orders v2 REST API.

Everything here returns plain dicts and raises :class:`GatewayError`; no
database access happens in this module.
"""
from __future__ import annotations
import time, requests
import logging
from decimal import Decimal

import stripe
from flask import current_app
from flask_babel import gettext as _

from .errors import GatewayError

log = logging.getLogger(__name__)

_token_cache: dict[str, tuple[str, float]] = {}  # {"key": (token, expiry_ts)}


def _get(obj, key, default=None):
    try:
        val = obj[key]
    except (KeyError, TypeError, AttributeError):
        return default
    return default if val is None else val


def to_cents(amount) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1")))


# -----------------
# Stripe
# -----------------

def _stripe():
    key = current_app.config.get("STRIPE_SECRET_KEY")
    if not key:
        raise GatewayError(_("Stripe is not configured"))
    stripe.api_key = key
    return stripe


def _intent_dict(intent) -> dict:
    return {
        "id": _get(intent, "id"),
        "status": _get(intent, "status"),
        "client_secret": _get(intent, "client_secret"),
        "amount": _get(intent, "amount"),
        "currency": _get(intent, "currency"),
        "metadata": dict(_get(intent, "metadata", {}) or {}),
    }


def create_stripe_intent(*, amount, payment_id: int, idempotency_key: str | None = None) -> dict:
    s = _stripe()
    try:
        intent = s.PaymentIntent.create(
            amount=to_cents(amount),
            currency=current_app.config.get("STRIPE_CURRENCY", "usd"),
            metadata={"payment_id": str(payment_id)},
            automatic_payment_methods={"enabled": True},
            idempotency_key=idempotency_key,
        )
    except stripe.StripeError as e:
        log.exception("Stripe PaymentIntent.create failed (payment=%s): %s", payment_id, e)
        raise GatewayError(_("Could not start the card payment. Please try again."))
    log.info("Stripe intent %s created for payment %s", _get(intent, "id"), payment_id)
    return _intent_dict(intent)


def retrieve_stripe_intent(intent_id: str) -> dict:
    s = _stripe()
    try:
        intent = s.PaymentIntent.retrieve(intent_id)
    except stripe.StripeError as e:
        log.exception("Stripe PaymentIntent.retrieve failed (%s): %s", intent_id, e)
        raise GatewayError(_("Could not verify the card payment. Please try again."))
    return _intent_dict(intent)


def cancel_stripe_intent(intent_id: str) -> dict:
    s = _stripe()
    try:
        intent = s.PaymentIntent.cancel(intent_id)
    except stripe.StripeError as e:
        log.exception("Stripe PaymentIntent.cancel failed (%s): %s", intent_id, e)
        raise GatewayError(_("Could not cancel the card payment. Please try again."))
    log.info("Stripe intent %s cancelled", intent_id)
    return _intent_dict(intent)


def construct_stripe_event(payload: bytes, signature: str) -> dict:
    """Verify a webhook delivery. Raises ``ValueError`` on a bad payload or
    signature so the route can answer 400."""
    secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not secret:
        raise GatewayError(_("Stripe webhooks are not configured"))
    try:
        event = stripe.Webhook.construct_event(payload, signature, secret)
    except stripe.SignatureVerificationError as e:
        log.error("Invalid Stripe webhook signature: %s", e)
        raise ValueError("invalid signature")

    obj = _get(_get(event, "data", {}), "object", {})
    return {
        "id": _get(event, "id"),
        "type": _get(event, "type"),
        "object": {
            "id": _get(obj, "id"),
            "status": _get(obj, "status"),
            "payment_intent": _get(obj, "payment_intent"),
            "metadata": dict(_get(obj, "metadata", {}) or {}),
        },
    }


# -----------------
# PayPal (Orders v2)
# -----------------

def _paypal_base() -> str:
    return (current_app.config.get("PAYPAL_API_URL") or "https://api-m.sandbox.paypal.com").rstrip("/")


def _paypal_token() -> str:
    """Fetch or reuse the client-credentials access token."""
    cid = current_app.config.get("PAYPAL_CLIENT_ID")
    sec = current_app.config.get("PAYPAL_APP_SECRET")
    if not cid or not sec:
        raise GatewayError(_("PayPal is not configured"))
    cache_key = f"{cid}|{_paypal_base()}"
    tok, exp = _token_cache.get(cache_key, (None, 0))
    now = time.time()
    if tok and now < exp - 60:
        return tok

    try:
        resp = requests.post(
            f"{_paypal_base()}/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(cid, sec),
            headers={"Accept": "application/json"},
            timeout=20,
        )
        resp.raise_for_status()
        data = resp.json()
    except requests.RequestException as e:
        log.exception("PayPal token request failed: %s", e)
        raise GatewayError(_("Could not reach PayPal. Please try again."))

    token = data["access_token"]
    _token_cache[cache_key] = (token, now + int(data.get("expires_in", 300)))
    return token


def _paypal_call(method: str, path: str, payload: dict | None = None) -> dict:
    token = _paypal_token()
    try:
        r = requests.request(
            method,
            f"{_paypal_base()}{path}",
            json=payload,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
            timeout=20,
        )
        log.info("PayPal %s %s status=%s", method, path, r.status_code)
        if r.status_code >= 400:
            log.error("PayPal error %s | body=%s", r.status_code, r.text[:500])
        r.raise_for_status()
        return r.json()
    except requests.RequestException as e:
        log.exception("PayPal %s %s failed: %s", method, path, e)
        raise GatewayError(_("PayPal request failed. Please try again."))


def create_paypal_order(*, amount, payment_id: int) -> dict:
    payload = {
        "intent": "CAPTURE",
        "purchase_units": [{
            "reference_id": str(payment_id),
            "amount": {
                "currency_code": current_app.config.get("PAYPAL_CURRENCY", "USD"),
                "value": f"{Decimal(str(amount)):.2f}",
            },
        }],
    }
    data = _paypal_call("POST", "/v2/checkout/orders", payload)
    log.info("PayPal order %s created for payment %s", data.get("id"), payment_id)
    return data


def capture_paypal_order(order_id: str) -> dict:
    return _paypal_call("POST", f"/v2/checkout/orders/{order_id}/capture")
