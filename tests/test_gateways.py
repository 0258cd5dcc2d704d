import pytest
import requests

from neigh.services import gateways
from neigh.services.errors import GatewayError


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code
        self.text = str(payload)

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


@pytest.fixture(autouse=True)
def clear_token_cache():
    gateways._token_cache.clear()
    yield
    gateways._token_cache.clear()


def test_paypal_order_reuses_token(ctx, monkeypatch):
    token_calls = []
    api_calls = []

    def fake_post(url, **kwargs):
        token_calls.append(url)
        return FakeResponse({"access_token": "tok-1", "expires_in": 3600})

    def fake_request(method, url, **kwargs):
        api_calls.append((method, url, kwargs["json"], kwargs["headers"]["Authorization"]))
        return FakeResponse({"id": "ORDER-1", "status": "CREATED", "links": []})

    monkeypatch.setattr(gateways.requests, "post", fake_post)
    monkeypatch.setattr(gateways.requests, "request", fake_request)

    gateways.create_paypal_order(amount="125", payment_id=7)
    gateways.create_paypal_order(amount="125", payment_id=7)

    assert len(token_calls) == 1
    assert token_calls[0].endswith("/v1/oauth2/token")
    method, url, payload, auth = api_calls[0]
    assert (method, auth) == ("POST", "Bearer tok-1")
    assert url.endswith("/v2/checkout/orders")
    assert payload["purchase_units"][0]["amount"] == {"currency_code": "USD", "value": "125.00"}
    assert payload["purchase_units"][0]["reference_id"] == "7"


def test_paypal_http_error_becomes_gateway_error(ctx, monkeypatch):
    monkeypatch.setattr(gateways.requests, "post",
                        lambda url, **kw: FakeResponse({"access_token": "tok", "expires_in": 3600}))
    monkeypatch.setattr(gateways.requests, "request",
                        lambda method, url, **kw: FakeResponse({"name": "UNPROCESSABLE_ENTITY"}, 422))
    with pytest.raises(GatewayError):
        gateways.capture_paypal_order("ORDER-1")


def test_paypal_not_configured(ctx):
    ctx.config["PAYPAL_CLIENT_ID"] = ""
    with pytest.raises(GatewayError):
        gateways.create_paypal_order(amount="1", payment_id=1)


def test_stripe_intent_uses_cents_and_metadata(ctx, monkeypatch):
    seen = {}

    def fake_create(**kwargs):
        seen.update(kwargs)
        return {"id": "pi_1", "status": "requires_payment_method", "client_secret": "pi_1_secret",
                "amount": kwargs["amount"], "currency": kwargs["currency"], "metadata": kwargs["metadata"]}

    monkeypatch.setattr(gateways.stripe.PaymentIntent, "create", fake_create)
    intent = gateways.create_stripe_intent(amount="125.00", payment_id=3, idempotency_key="payment-3-12500")
    assert seen["amount"] == 12500
    assert seen["currency"] == "usd"
    assert seen["idempotency_key"] == "payment-3-12500"
    assert intent["metadata"] == {"payment_id": "3"}
    assert intent["client_secret"] == "pi_1_secret"


def test_stripe_error_becomes_gateway_error(ctx, monkeypatch):
    def fail(**kwargs):
        raise gateways.stripe.StripeError("card network down")

    monkeypatch.setattr(gateways.stripe.PaymentIntent, "create", fail)
    with pytest.raises(GatewayError):
        gateways.create_stripe_intent(amount="1.00", payment_id=1)
