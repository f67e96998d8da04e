"""
Tests for payment models.

Tests cover:
- Ledger constraints (one pending per kind, amount sign)
- Refund entries are immutable
- Queryset totals
- WebhookEvent and ReconciliationMiss helpers
"""

import pytest
from django.db import IntegrityError, transaction

from payments.exceptions import InvalidStateTransitionError
from payments.models import Payment, ReconciliationMiss
from payments.models.webhook_event import MAX_PROCESSING_ATTEMPTS
from payments.state_machines import PaymentKind, PaymentStatus, WebhookEventStatus
from payments.tests.factories import (
    PaymentFactory,
    ReconciliationMissFactory,
    SucceededPaymentFactory,
    WebhookEventFactory,
)


@pytest.mark.django_db
class TestPaymentConstraints:
    def test_one_pending_entry_per_kind(self, order):
        PaymentFactory(order=order)

        with pytest.raises(IntegrityError), transaction.atomic():
            PaymentFactory(order=order)

    def test_pending_deposit_and_balance_can_coexist(self, order):
        PaymentFactory(order=order, kind=PaymentKind.DEPOSIT)
        PaymentFactory(order=order, kind=PaymentKind.BALANCE)

        assert Payment.objects.for_order(order).pending().count() == 2

    def test_failed_entries_do_not_block_new_pending(self, order):
        PaymentFactory(order=order, status=PaymentStatus.FAILED)
        PaymentFactory(order=order)

        assert Payment.objects.for_order(order).count() == 2

    def test_refund_amount_must_be_negative(self, order):
        with pytest.raises(IntegrityError), transaction.atomic():
            PaymentFactory(
                order=order,
                kind=PaymentKind.REFUND,
                amount_cents=500,
                status=PaymentStatus.SUCCEEDED,
            )

    def test_charge_amount_must_be_positive(self, order):
        with pytest.raises(IntegrityError), transaction.atomic():
            PaymentFactory(order=order, amount_cents=-500)


@pytest.mark.django_db
class TestPaymentBehaviour:
    def test_refund_entry_cannot_be_modified(self, paid_order):
        entry = PaymentFactory(
            order=paid_order,
            kind=PaymentKind.REFUND,
            amount_cents=-5000,
            status=PaymentStatus.SUCCEEDED,
            stripe_checkout_session_id=None,
        )
        entry.description = "edited"

        with pytest.raises(InvalidStateTransitionError):
            entry.save()

    def test_card_descriptor(self):
        payment = Payment(card_brand="visa", card_last4="4242", payment_method_type="card")
        assert payment.card_descriptor == "Visa ending in 4242"

    def test_card_descriptor_falls_back_to_type(self):
        payment = Payment(payment_method_type="us_bank_account")
        assert payment.card_descriptor == "us_bank_account"

    def test_succeeded_total_excludes_refunds_and_failures(self, paid_order):
        SucceededPaymentFactory(order=paid_order, kind=PaymentKind.BALANCE, amount_cents=2500)
        PaymentFactory(order=paid_order, kind=PaymentKind.BALANCE, status=PaymentStatus.FAILED)
        PaymentFactory(
            order=paid_order,
            kind=PaymentKind.REFUND,
            amount_cents=-1000,
            status=PaymentStatus.SUCCEEDED,
            stripe_checkout_session_id=None,
        )

        assert Payment.objects.for_order(paid_order).succeeded_total() == 7500

    def test_latest_refundable_skips_entries_without_intent(self, paid_order):
        SucceededPaymentFactory(
            order=paid_order,
            kind=PaymentKind.BALANCE,
            amount_cents=1000,
            stripe_payment_intent_id=None,
        )

        latest = Payment.objects.for_order(paid_order).latest_refundable()

        assert latest.stripe_payment_intent_id == "pi_test_paid"


@pytest.mark.django_db
class TestWebhookEvent:
    def test_get_object_and_id(self):
        event = WebhookEventFactory(data_object={"id": "cs_123", "status": "complete"})

        assert event.get_object()["status"] == "complete"
        assert event.get_object_id() == "cs_123"

    def test_malformed_payload_has_empty_object(self):
        event = WebhookEventFactory(payload={"data": "nope"})

        assert event.get_object() == {}
        assert event.get_object_id() is None

    def test_can_retry_until_attempts_exhausted(self):
        event = WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=1)
        assert event.can_retry

        event.retry_count = MAX_PROCESSING_ATTEMPTS
        assert not event.can_retry

    def test_mark_processing_counts_attempt(self):
        event = WebhookEventFactory()

        event.mark_processing()

        assert event.status == WebhookEventStatus.PROCESSING
        assert event.retry_count == 1


@pytest.mark.django_db
class TestReconciliationMiss:
    def test_record_attempt(self):
        miss = ReconciliationMissFactory()

        miss.record_attempt("timeout")

        miss.refresh_from_db()
        assert miss.attempts == 2
        assert miss.error_message == "timeout"

    def test_resolved_misses_are_not_retryable(self):
        miss = ReconciliationMissFactory()
        miss.mark_resolved()

        assert not ReconciliationMiss.objects.retryable().exists()
