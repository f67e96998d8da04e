"""
Pytest fixtures for webhook tests.

Event payloads here are trimmed Stripe event envelopes with only the
fields the handlers read.
"""

import json

import pytest


@pytest.fixture
def checkout_completed_payload():
    return {
        "id": "evt_test_checkout",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_test_pending",
                "object": "checkout.session",
                "status": "complete",
                "payment_status": "paid",
                "payment_intent": "pi_test_pending",
                "amount_total": 5000,
                "metadata": {"order_id": "", "tip_cents": "0"},
            }
        },
    }


@pytest.fixture
def intent_succeeded_payload():
    return {
        "id": "evt_test_pi_succeeded",
        "type": "payment_intent.succeeded",
        "data": {
            "object": {
                "id": "pi_test_pending",
                "object": "payment_intent",
                "status": "succeeded",
                "amount": 5000,
                "amount_received": 5000,
                "currency": "usd",
                "metadata": {"payment_type": "deposit", "tip_cents": "0"},
                "payment_method": "pm_test_card",
            }
        },
    }


@pytest.fixture
def intent_failed_payload():
    return {
        "id": "evt_test_pi_failed",
        "type": "payment_intent.payment_failed",
        "data": {
            "object": {
                "id": "pi_test_pending",
                "object": "payment_intent",
                "status": "requires_payment_method",
                "amount": 5000,
                "currency": "usd",
                "metadata": {},
                "last_payment_error": {"message": "Your card was declined."},
            }
        },
    }


@pytest.fixture
def charge_refunded_payload():
    return {
        "id": "evt_test_charge_refunded",
        "type": "charge.refunded",
        "data": {
            "object": {
                "id": "ch_test_123",
                "object": "charge",
                "payment_intent": "pi_test_paid",
                "amount_refunded": 2000,
                "refunds": {
                    "data": [
                        {
                            "id": "re_test_dashboard",
                            "amount": 2000,
                            "status": "succeeded",
                            "reason": "requested_by_customer",
                        }
                    ]
                },
            }
        },
    }


@pytest.fixture
def post_webhook(client):
    """POST a JSON event to the webhook endpoint."""

    def _post(payload, signature=None):
        headers = {"HTTP_STRIPE_SIGNATURE": signature} if signature else {}
        body = payload if isinstance(payload, (bytes, str)) else json.dumps(payload)
        return client.post(
            "/api/v1/payments/webhooks/stripe/",
            data=body,
            content_type="application/json",
            **headers,
        )

    return _post
