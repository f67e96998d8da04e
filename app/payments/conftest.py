"""
Pytest fixtures shared by every payments test package.

Fixtures cover orders and ledger entries in the states the services care
about, plus an injected StripeAdapter mock so no test talks to Stripe.

Usage:
    def test_refund(cancellable_paid_order, stripe_adapter, make_intent):
        stripe_adapter.retrieve_payment_intent.return_value = make_intent()
        ...
"""

import pytest

from bookings.tests.factories import OrderFactory
from payments.adapters import (
    CheckoutSessionResult,
    CustomerResult,
    PaymentIntentResult,
    PaymentMethodDetails,
    RefundResult,
)
from payments.services import StripeBackedService
from payments.tests.factories import PaymentFactory, SucceededPaymentFactory


# =============================================================================
# Order and Ledger Fixtures
# =============================================================================


@pytest.fixture
def order(db):
    """Draft order five days out with nothing paid."""
    return OrderFactory()


@pytest.fixture
def pending_payment(db, order):
    """Pending deposit checkout for ``order``."""
    return PaymentFactory(
        order=order,
        stripe_checkout_session_id="cs_test_pending",
        stripe_payment_intent_id="pi_test_pending",
    )


@pytest.fixture
def paid_order(db):
    """
    Order with a 5000-cent deposit already reconciled.

    The order's paid counters match the succeeded ledger entry.
    """
    order = OrderFactory(deposit_paid_cents=5000)
    SucceededPaymentFactory(
        order=order,
        amount_cents=5000,
        stripe_checkout_session_id="cs_test_paid",
        stripe_payment_intent_id="pi_test_paid",
    )
    return order


# =============================================================================
# Stripe Fixtures
# =============================================================================


@pytest.fixture
def stripe_adapter(mocker):
    """
    MagicMock standing in for StripeAdapter in every Stripe-backed service.

    create_customer returns cus_test_123 by default.
    """
    adapter = mocker.MagicMock(name="StripeAdapter")
    adapter.create_customer.return_value = CustomerResult(id="cus_test_123")
    StripeBackedService.set_stripe_adapter(adapter)
    yield adapter
    StripeBackedService.set_stripe_adapter(None)


@pytest.fixture
def card():
    return PaymentMethodDetails(id="pm_test_card", type="card", brand="visa", last4="4242")


@pytest.fixture
def make_session(card):
    """Build a CheckoutSessionResult; paid sessions carry a card by default."""

    def _make(
        session_id="cs_test_pending",
        status="complete",
        payment_status="paid",
        payment_intent_id="pi_test_pending",
        amount_total_cents=5000,
        metadata=None,
        payment_method=card,
        url=None,
    ):
        return CheckoutSessionResult(
            id=session_id,
            url=url,
            status=status,
            payment_status=payment_status,
            payment_intent_id=payment_intent_id,
            amount_total_cents=amount_total_cents,
            metadata=metadata or {},
            payment_method=payment_method if payment_status == "paid" else None,
        )

    return _make


@pytest.fixture
def make_intent(card):
    def _make(
        intent_id="pi_test_paid",
        status="succeeded",
        amount_cents=5000,
        metadata=None,
        payment_method=card,
        last_error=None,
    ):
        return PaymentIntentResult(
            id=intent_id,
            status=status,
            amount_cents=amount_cents,
            currency="usd",
            amount_received_cents=amount_cents if status == "succeeded" else 0,
            metadata=metadata or {},
            payment_method=payment_method,
            last_error=last_error,
        )

    return _make


@pytest.fixture
def make_refund():
    def _make(refund_id="re_test_123", amount_cents=5000, status="succeeded"):
        return RefundResult(
            id=refund_id,
            amount_cents=amount_cents,
            currency="usd",
            status=status,
            payment_intent_id="pi_test_paid",
        )

    return _make


# =============================================================================
# Redis Fixtures
# =============================================================================


@pytest.fixture
def mock_redis(mocker):
    """
    Mock Redis client for distributed lock tests.

    Returns a MagicMock configured for basic lock operations.
    """
    mock_client = mocker.MagicMock()
    mock_client.set.return_value = True
    mock_client.get.return_value = None
    mock_client.delete.return_value = 1
    mock_client.eval.return_value = 1

    mocker.patch("payments.locks.get_redis_connection", return_value=mock_client)

    return mock_client
