import time
from types import SimpleNamespace

import pytest
import stripe

from dynqr.services import checkout, ledger, payment_sessions

from conftest import auth_headers


class FakeStripe:
    def __init__(self):
        self.calls = []

    def customer_create(self, **kwargs):
        self.calls.append(("Customer.create", kwargs))
        return SimpleNamespace(id="cus_test")

    def session_create(self, **kwargs):
        self.calls.append(("checkout.Session.create", kwargs))
        return SimpleNamespace(id="cs_test_abc", url="https://checkout.stripe.com/c/pay/cs_test_abc")

    def subscription_modify(self, subscription_id, **kwargs):
        self.calls.append(("Subscription.modify", subscription_id, kwargs))
        return SimpleNamespace(id=subscription_id)

    def subscription_cancel(self, subscription_id, **kwargs):
        self.calls.append(("Subscription.cancel", subscription_id, kwargs))
        return SimpleNamespace(id=subscription_id, status="canceled")


@pytest.fixture
def fake_stripe(monkeypatch):
    fake = FakeStripe()
    monkeypatch.setattr(stripe.Customer, "create", fake.customer_create)
    monkeypatch.setattr(stripe.checkout.Session, "create", fake.session_create)
    monkeypatch.setattr(stripe.Subscription, "modify", fake.subscription_modify)
    monkeypatch.setattr(stripe.Subscription, "cancel", fake.subscription_cancel)
    return fake


@pytest.fixture
def headers(client, app):
    headers = auth_headers(app)
    client.post("/users", json={"email": "alice@example.com"}, headers=headers)
    return headers


def test_checkout_opens_payment_session(client, app, headers, fake_stripe):
    started = int(time.time())
    resp = client.post("/subscription/checkout", json={"tier": "pro"}, headers=headers)

    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data == {
        "session_id": "cs_test_abc",
        "checkout_url": "https://checkout.stripe.com/c/pay/cs_test_abc",
        "tier": "Pro",
    }

    _, session_kwargs = fake_stripe.calls[1]
    assert session_kwargs["mode"] == "subscription"
    assert session_kwargs["line_items"] == [{"price": "price_pro", "quantity": 1}]
    assert session_kwargs["client_reference_id"] == "auth0_alice"
    # Stripe expires the checkout well before the session may be purged
    assert started <= session_kwargs["expires_at"] - 3600 <= time.time()

    with app.app_context():
        record = payment_sessions.get("cs_test_abc")
        assert record.intended_tier == "Pro"
        assert record.consumed is False
        # Nothing changes until the provider confirms payment
        assert ledger.get("auth0_alice").tier == "Free"


def test_free_tier_cannot_be_purchased(client, headers, fake_stripe):
    resp = client.post("/subscription/checkout", json={"tier": "Free"}, headers=headers)

    assert resp.status_code == 400
    assert fake_stripe.calls == []


def test_unknown_tier(client, headers, fake_stripe):
    resp = client.post("/subscription/checkout", json={"tier": "gold"}, headers=headers)

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "ValidationError"


def test_stripe_failure_is_internal_error(client, headers, monkeypatch):
    def boom(**kwargs):
        raise stripe.StripeError("card network down")

    monkeypatch.setattr(stripe.Customer, "create", boom)

    resp = client.post("/subscription/checkout", json={"tier": "Lite"}, headers=headers)

    assert resp.status_code == 500
    assert resp.get_json()["code"] == "InternalError"


def test_cancel_without_paid_subscription(client, headers, fake_stripe):
    resp = client.post("/subscription/cancel", headers=headers)

    assert resp.status_code == 404
    assert fake_stripe.calls == []


def test_cancel_and_resume_at_period_end(client, app, headers, fake_stripe):
    with app.app_context():
        ledger.set_provider_subscription_id("auth0_alice", "sub_999")

    assert client.post("/subscription/cancel", headers=headers).status_code == 200
    assert client.post("/subscription/resume", headers=headers).status_code == 200

    assert fake_stripe.calls == [
        ("Subscription.modify", "sub_999", {"cancel_at_period_end": True}),
        ("Subscription.modify", "sub_999", {"cancel_at_period_end": False}),
    ]
    with app.app_context():
        # Status only moves when the webhook confirms
        assert ledger.get("auth0_alice").status == "Active"


def test_checkout_expiry_is_clamped_to_stripe_bounds(app):
    with app.app_context():
        app.config["CHECKOUT_SESSION_EXPIRY"] = 60
        assert checkout.checkout_expiry_seconds() == 30 * 60
        app.config["CHECKOUT_SESSION_EXPIRY"] = 7 * 24 * 3600
        assert checkout.checkout_expiry_seconds() == 24 * 3600


def test_immediate_cancel(client, app, headers, fake_stripe):
    with app.app_context():
        ledger.set_provider_subscription_id("auth0_alice", "sub_999")

    resp = client.post("/subscription/cancel?immediate=1&invoice_now=1", headers=headers)

    assert resp.status_code == 200
    assert resp.get_json()["message"] == "Subscription cancelled."
    assert fake_stripe.calls == [
        ("Subscription.cancel", "sub_999", {"prorate": True, "invoice_now": True}),
    ]


def test_immediate_cancel_without_paid_subscription(client, headers, fake_stripe):
    resp = client.post("/subscription/cancel?immediate=true", headers=headers)

    assert resp.status_code == 404
    assert fake_stripe.calls == []
