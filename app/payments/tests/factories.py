"""
Factory Boy factories for payment test data.

Usage:
    from payments.tests.factories import PaymentFactory, SucceededPaymentFactory

    pending = PaymentFactory(order=order)
    paid = SucceededPaymentFactory(order=order, amount_cents=5000)
"""

import uuid

import factory
from django.utils import timezone

from bookings.tests.factories import OrderFactory
from payments.models import Payment, ReconciliationMiss, RefundRecord, WebhookEvent
from payments.state_machines import (
    PaymentKind,
    PaymentStatus,
    ReconciliationSource,
    RefundSource,
    WebhookEventStatus,
)


class PaymentFactory(factory.django.DjangoModelFactory):
    """Pending deposit with a checkout session and intent."""

    class Meta:
        model = Payment

    order = factory.SubFactory(OrderFactory)
    kind = PaymentKind.DEPOSIT
    amount_cents = 5000
    tip_cents = 0
    currency = "usd"
    status = PaymentStatus.PENDING
    stripe_checkout_session_id = factory.LazyFunction(lambda: f"cs_test_{uuid.uuid4().hex[:16]}")
    stripe_payment_intent_id = factory.LazyFunction(lambda: f"pi_test_{uuid.uuid4().hex[:16]}")


class SucceededPaymentFactory(PaymentFactory):
    status = PaymentStatus.SUCCEEDED
    paid_at = factory.LazyFunction(timezone.now)
    card_brand = "visa"
    card_last4 = "4242"
    payment_method_type = "card"


class RefundRecordFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = RefundRecord

    order = factory.SubFactory(OrderFactory)
    amount_cents = 5000
    reason = "Customer cancellation: plans changed"
    stripe_refund_id = factory.LazyFunction(lambda: f"re_test_{uuid.uuid4().hex[:16]}")
    status = "succeeded"
    refunded_by = "customer"
    source = RefundSource.CANCELLATION


class WebhookEventFactory(factory.django.DjangoModelFactory):
    """
    Stored event envelope.

    Pass ``data_object`` to set the payload's data.object.
    """

    class Meta:
        model = WebhookEvent
        exclude = ["data_object"]

    stripe_event_id = factory.LazyFunction(lambda: f"evt_test_{uuid.uuid4().hex[:16]}")
    event_type = "checkout.session.completed"
    data_object = factory.LazyFunction(dict)
    payload = factory.LazyAttribute(
        lambda o: {
            "id": o.stripe_event_id,
            "type": o.event_type,
            "data": {"object": o.data_object},
        }
    )
    signature_verified = True
    status = WebhookEventStatus.PENDING
    retry_count = 0


class ReconciliationMissFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = ReconciliationMiss

    order = factory.SubFactory(OrderFactory)
    stripe_checkout_session_id = factory.LazyFunction(lambda: f"cs_test_{uuid.uuid4().hex[:16]}")
    source = ReconciliationSource.SUCCESS_PAGE
    error_message = "Stripe unavailable"
    attempts = 1
