"""
Checkout Intent Manager.

Creates a Stripe Checkout Session for an order payment and records it as a
pending ledger entry:

    1. Resolve Stripe credentials (fail fast, nothing written yet)
    2. Create or reuse the order's Stripe customer
    3. Supersede an outstanding pending entry of the same kind
    4. Create the session (payment line + optional tip line)
    5. Insert the pending Payment with session and intent references

Usage:
    from payments.services import CheckoutService

    intent = CheckoutService.create_intent(
        order_id=order.id,
        amount_cents=5000,
        tip_cents=500,
    )
    return redirect(intent.url)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import urlencode

from django.conf import settings
from django.db import IntegrityError, transaction
from django.urls import reverse

from bookings.models import Order
from core.exceptions import ConflictError
from payments.adapters import (
    CreateCheckoutSessionParams,
    IdempotencyKeyGenerator,
    LineItem,
)
from payments.exceptions import (
    PaymentNotFoundError,
    PaymentValidationError,
    StripeError,
)
from payments.models import Payment
from payments.services.base import StripeBackedService
from payments.services.reconciliation_service import ReconciliationService
from payments.state_machines import PaymentKind, PaymentStatus

if TYPE_CHECKING:
    from payments.adapters import StripeAdapter
    from toolkit.settings_provider import AdminSettingsProvider


PAYMENT_LINE_DESCRIPTION = "Bounce Party Club rental payment"
TIP_LINE_NAME = "Tip for Crew"
TIP_LINE_DESCRIPTION = "Gratuity for service"
SUPERSEDED_REASON = "Superseded"


@dataclass
class CheckoutIntent:
    """What the caller needs to redirect the customer."""

    session_id: str
    url: str
    payment: Payment


class CheckoutService(StripeBackedService):
    """
    Opens checkout sessions.

    At most one pending entry per (order, kind) exists at any time; the
    database constraint payment_one_pending_per_kind backs this up when two
    requests race.
    """

    @classmethod
    def create_intent(
        cls,
        order_id: uuid.UUID | str,
        amount_cents: int,
        tip_cents: int = 0,
        customer_email: str | None = None,
        customer_name: str | None = None,
        kind: str = PaymentKind.DEPOSIT,
        provider: AdminSettingsProvider | None = None,
    ) -> CheckoutIntent:
        """
        Create a checkout session for ``amount_cents`` (+ ``tip_cents``).

        Raises:
            PaymentValidationError: Non-positive amount, negative tip or
                unsupported kind
            PaymentNotFoundError: Order does not exist
            ConfigurationError: Stripe credentials missing (no writes)
            ConflictError: A pending session for this kind was already paid,
                or a concurrent request inserted one first
            StripeError: Stripe rejected a call
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

        adapter = cls.get_stripe_adapter(provider)

        log_context = {
            "order_id": str(order.pk),
            "amount_cents": amount_cents,
            "tip_cents": tip_cents,
            "payment_type": kind,
        }
        cls.get_logger().info("Creating checkout intent", extra=log_context)

        customer_id = cls._ensure_customer(
            adapter,
            order,
            email=customer_email or order.customer_email,
            name=customer_name or order.customer_name,
        )

        cls._supersede_pending(adapter, order, kind)

        attempt = Payment.objects.filter(order=order, kind=kind).count()
        line_items = [
            LineItem(
                name=f"Payment for Order {order.short_id}",
                amount_cents=amount_cents,
                description=PAYMENT_LINE_DESCRIPTION,
            )
        ]
        if tip_cents > 0:
            line_items.append(
                LineItem(
                    name=TIP_LINE_NAME,
                    amount_cents=tip_cents,
                    description=TIP_LINE_DESCRIPTION,
                )
            )

        session = adapter.create_checkout_session(
            CreateCheckoutSessionParams(
                customer_id=customer_id,
                line_items=line_items,
                success_url=cls.build_success_url(order.pk),
                cancel_url=cls.build_cancel_url(order.pk),
                idempotency_key=IdempotencyKeyGenerator.generate(
                    f"checkout_{kind}", order.pk, attempt
                ),
                metadata={"order_id": str(order.pk), "tip_cents": str(tip_cents)},
                payment_intent_metadata={
                    "order_id": str(order.pk),
                    "payment_type": kind,
                    "tip_cents": str(tip_cents),
                },
            )
        )

        try:
            with transaction.atomic():
                payment = Payment.objects.create(
                    order=order,
                    kind=kind,
                    amount_cents=amount_cents,
                    tip_cents=tip_cents,
                    status=PaymentStatus.PENDING,
                    description=f"{PaymentKind(kind).label} for order {order.short_id}",
                    stripe_checkout_session_id=session.id,
                    stripe_payment_intent_id=session.payment_intent_id,
                )
        except IntegrityError as e:
            cls.get_logger().warning(
                "Concurrent checkout for the same payment type",
                extra={**log_context, "session_id": session.id},
            )
            raise ConflictError(
                "A payment is already in progress for this order",
                details={"order_id": str(order.pk), "payment_type": kind},
            ) from e

        cls.get_logger().info(
            "Checkout session created",
            extra={
                **log_context,
                "payment_id": str(payment.pk),
                "session_id": session.id,
                "payment_intent_id": session.payment_intent_id,
            },
        )
        return CheckoutIntent(session_id=session.id, url=session.url, payment=payment)

    # =========================================================================
    # Redirect targets
    # =========================================================================

    @classmethod
    def build_success_url(cls, order_id: uuid.UUID | str) -> str:
        # Stripe substitutes {CHECKOUT_SESSION_ID}; it must stay unescaped
        query = urlencode({"orderId": str(order_id)})
        return (
            f"{settings.SITE_URL.rstrip('/')}{reverse('payments:checkout-success')}"
            f"?{query}&session_id={{CHECKOUT_SESSION_ID}}"
        )

    @classmethod
    def build_cancel_url(cls, order_id: uuid.UUID | str) -> str:
        query = urlencode({"orderId": str(order_id)})
        return f"{settings.SITE_URL.rstrip('/')}{reverse('payments:checkout-cancel')}?{query}"

    # =========================================================================
    # Internals
    # =========================================================================

    @classmethod
    def _ensure_customer(
        cls,
        adapter: StripeAdapter,
        order: Order,
        email: str,
        name: str,
    ) -> str:
        """Return the order's Stripe customer, creating and persisting it once."""
        if order.stripe_customer_id:
            return order.stripe_customer_id

        customer = adapter.create_customer(
            email=email,
            name=name,
            metadata={"order_id": str(order.pk)},
            idempotency_key=IdempotencyKeyGenerator.generate("create_customer", order.pk),
        )

        # Keep whichever customer was stored first if two requests raced
        rows = Order.objects.filter(pk=order.pk, stripe_customer_id="").update(
            stripe_customer_id=customer.id
        )
        if rows != 1:
            return Order.objects.values_list("stripe_customer_id", flat=True).get(pk=order.pk)

        order.stripe_customer_id = customer.id
        cls.get_logger().info(
            "Stripe customer created",
            extra={"order_id": str(order.pk), "customer_id": customer.id},
        )
        return customer.id

    @classmethod
    def _supersede_pending(
        cls,
        adapter: StripeAdapter,
        order: Order,
        kind: str,
    ) -> None:
        """
        Resolve an outstanding pending entry of ``kind`` before a new one.

        Paid sessions are reconciled and the new checkout is refused; open
        sessions are expired; anything else is marked failed.
        """
        pending = Payment.objects.for_order(order).pending().filter(kind=kind).first()
        if pending is None:
            return

        if not pending.stripe_checkout_session_id:
            ReconciliationService.mark_failed(pending, SUPERSEDED_REASON)
            return

        session = adapter.retrieve_checkout_session(pending.stripe_checkout_session_id)

        if session.is_paid:
            ReconciliationService.apply_session(session, payment=pending)
            raise cls._already_paid(order, session.id)

        if session.status == "open":
            try:
                adapter.expire_checkout_session(session.id)
            except StripeError:
                # A session completing between retrieve and expire must not
                # be marked failed
                session = adapter.retrieve_checkout_session(session.id)
                if session.is_paid:
                    ReconciliationService.apply_session(session, payment=pending)
                    raise cls._already_paid(order, session.id)
            ReconciliationService.mark_failed(pending, SUPERSEDED_REASON)
        else:
            ReconciliationService.mark_failed(pending, "Checkout session expired")

        cls.get_logger().info(
            "Superseded pending checkout",
            extra={
                "order_id": str(order.pk),
                "payment_id": str(pending.pk),
                "session_id": session.id,
            },
        )

    @staticmethod
    def _already_paid(order: Order, session_id: str) -> ConflictError:
        return ConflictError(
            "This payment has already been completed",
            details={"order_id": str(order.pk), "session_id": session_id},
        )
