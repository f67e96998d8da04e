"""
Pytest fixtures for Stripe adapter tests.

Stripe responses are built as SimpleNamespace objects so attribute access
matches the SDK's objects without any network.
"""

from types import SimpleNamespace
from unittest.mock import patch

import pytest
import stripe

from payments.adapters import StripeAdapter


@pytest.fixture
def adapter():
    return StripeAdapter(api_key="sk_test_adapter", timeout=5)


@pytest.fixture
def stripe_session_object():
    def _create(**overrides):
        values = {
            "id": "cs_test_123",
            "url": "https://checkout.stripe.com/c/pay/cs_test_123",
            "status": "open",
            "payment_status": "unpaid",
            "payment_intent": None,
            "amount_total": 5500,
            "customer": "cus_123",
            "metadata": {"order_id": "order-1", "tip_cents": "500"},
        }
        values.update(overrides)
        return SimpleNamespace(**values)

    return _create


@pytest.fixture
def card_payment_method():
    return SimpleNamespace(
        id="pm_123",
        type="card",
        card=SimpleNamespace(brand="visa", last4="4242"),
    )


@pytest.fixture
def mock_checkout_session():
    with patch("stripe.checkout.Session") as mock:
        yield mock


@pytest.fixture
def mock_stripe_refund():
    with patch("stripe.Refund") as mock:
        mock.create.return_value = SimpleNamespace(
            id="re_123",
            amount=20000,
            currency="usd",
            status="succeeded",
            payment_intent="pi_123",
            metadata={"order_id": "order-1"},
        )
        yield mock


@pytest.fixture
def card_error():
    def _create(decline_code="generic_decline"):
        error = stripe.CardError("Your card was declined.", None, "card_declined")
        error.decline_code = decline_code
        return error

    return _create
