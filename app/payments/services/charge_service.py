"""
Off-session charges against the card saved at checkout.

Checkout sessions save the customer's card for later use. This service
charges that card for a deposit or balance without sending the customer
back to Stripe:

    1. Validate input and the order's saved customer and card
    2. Insert the pending ledger entry (order_id and payment_type go into
       the intent metadata, so a webhook racing step 3 still finds it)
    3. Create and confirm the PaymentIntent with off_session=True
    4. Apply the intent through ReconciliationService, the same
       transition the payment_intent.* webhooks use

A decline marks the entry failed and re-raises. An intent Stripe leaves
in processing stays pending for the webhook to finish.

Usage:
    from payments.services import ChargeService

    outcome = ChargeService.charge_saved_card(order.id, 15000, kind="balance")
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction

from bookings.models import Order
from core.exceptions import ConflictError
from payments.adapters import CreatePaymentIntentParams, IdempotencyKeyGenerator
from payments.exceptions import (
    PaymentNotFoundError,
    PaymentValidationError,
    StripeError,
)
from payments.models import Payment
from payments.services.base import StripeBackedService
from payments.services.reconciliation_service import (
    ReconcileOutcome,
    ReconciliationService,
)
from payments.state_machines import PaymentKind, PaymentStatus

if TYPE_CHECKING:
    from toolkit.settings_provider import AdminSettingsProvider


NO_SAVED_CARD_MESSAGE = "No payment method on file for this order"


class ChargeService(StripeBackedService):
    """Charges saved cards; shares the one-pending-per-kind rule with checkout."""

    @classmethod
    def charge_saved_card(
        cls,
        order_id: uuid.UUID | str,
        amount_cents: int,
        kind: str = PaymentKind.BALANCE,
        tip_cents: int = 0,
        description: str = "",
        provider: AdminSettingsProvider | None = None,
    ) -> ReconcileOutcome:
        """
        Charge ``amount_cents`` (+ ``tip_cents``) to the order's saved card.

        Raises:
            PaymentValidationError: Bad amount or kind, or no saved card
            PaymentNotFoundError: Order does not exist
            ConfigurationError: Stripe credentials missing (no writes)
            ConflictError: A payment of this kind is already pending
            StripeError: Stripe declined or failed; the entry is marked failed
        """
        if amount_cents is None or amount_cents <= 0:
            raise PaymentValidationError(
                "Amount must be greater than zero",
                details={"amount_cents": amount_cents},
            )
        if tip_cents < 0:
            raise PaymentValidationError(
                "Tip cannot be negative",
                details={"tip_cents": tip_cents},
            )
        if kind not in (PaymentKind.DEPOSIT, PaymentKind.BALANCE):
            raise PaymentValidationError(
                "Unsupported payment type",
                details={"payment_type": kind},
            )

        order = Order.objects.filter(pk=order_id).first()
        if order is None:
            raise PaymentNotFoundError(
                "Order not found",
                details={"order_id": str(order_id)},
            )
        if not order.stripe_customer_id or not order.stripe_payment_method_id:
            raise PaymentValidationError(
                NO_SAVED_CARD_MESSAGE,
                details={"order_id": str(order.pk)},
            )

        adapter = cls.get_stripe_adapter(provider)

        log_context = {
            "order_id": str(order.pk),
            "amount_cents": amount_cents,
            "tip_cents": tip_cents,
            "payment_type": kind,
        }

        attempt = Payment.objects.filter(order=order, kind=kind).count()
        payment = cls._insert_pending(order, kind, amount_cents, tip_cents, log_context)

        metadata = {
            "order_id": str(order.pk),
            "payment_type": kind,
            "tip_cents": str(tip_cents),
        }
        try:
            intent = adapter.create_off_session_payment_intent(
                CreatePaymentIntentParams(
                    amount_cents=amount_cents + tip_cents,
                    customer_id=order.stripe_customer_id,
                    payment_method_id=order.stripe_payment_method_id,
                    idempotency_key=IdempotencyKeyGenerator.generate(
                        f"charge_{kind}", order.pk, attempt
                    ),
                    description=description or payment.description,
                    metadata=metadata,
                )
            )
        except StripeError as e:
            ReconciliationService.mark_failed(payment, e.message)
            cls.get_logger().warning(
                "Off-session charge failed",
                extra={**log_context, "error": e.message, "error_code": e.error_code},
            )
            raise

        Payment.objects.filter(pk=payment.pk, stripe_payment_intent_id__isnull=True).update(
            stripe_payment_intent_id=intent.id
        )
        outcome = ReconciliationService.apply_intent_outcome(intent)

        cls.get_logger().info(
            "Off-session charge created",
            extra={
                **log_context,
                "payment_id": str(payment.pk),
                "payment_intent_id": intent.id,
                "intent_status": intent.status,
                "status": outcome.status,
            },
        )
        return outcome

    @classmethod
    def _insert_pending(
        cls,
        order: Order,
        kind: str,
        amount_cents: int,
        tip_cents: int,
        log_context: dict,
    ) -> Payment:
        try:
            with transaction.atomic():
                return Payment.objects.create(
                    order=order,
                    kind=kind,
                    amount_cents=amount_cents,
                    tip_cents=tip_cents,
                    status=PaymentStatus.PENDING,
                    description=f"{PaymentKind(kind).label} for order {order.short_id}",
                )
        except IntegrityError as e:
            cls.get_logger().warning("Charge refused, payment already pending", extra=log_context)
            raise ConflictError(
                "A payment is already in progress for this order",
                details={"order_id": str(order.pk), "payment_type": kind},
            ) from e
