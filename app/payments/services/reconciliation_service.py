"""
Reconciliation of checkout outcomes into the ledger and the order.

Two ingress paths feed this service, in no particular order and possibly
more than once:

    Push: Stripe webhooks (checkout.session.completed,
          payment_intent.succeeded, payment_intent.payment_failed)
    Pull: the success page and the payment-status poll re-fetch the
          checkout session from Stripe

Both locate the ledger entry and apply a compare-and-swap:

    UPDATE payments SET status = <target> WHERE id = <id> AND status = 'pending'

Only the writer whose update matched a row applies side effects (order
credit, tip, card descriptor, status advance). Every later arrival finds
the entry already resolved and changes nothing.

Usage:
    from payments.services import ReconciliationService

    outcome = ReconciliationService.reconcile_session(session_id, source)
    if outcome.is_paid:
        ...
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from django_fsm import can_proceed

from bookings.models import Order
from core.exceptions import ConfigurationError
from payments.adapters import parse_cents
from payments.exceptions import (
    PaymentNotFoundError,
    ReconciliationMissError,
    StripeError,
)
from payments.models import Payment, ReconciliationMiss
from payments.services.base import StripeBackedService
from payments.state_machines import PaymentKind, PaymentStatus, ReconciliationSource

if TYPE_CHECKING:
    from payments.adapters import (
        CheckoutSessionResult,
        PaymentIntentResult,
        PaymentMethodDetails,
    )
    from toolkit.settings_provider import AdminSettingsProvider


PAYMENT_RECEIVED_TEMPLATE = "booking_received_admin"


@dataclass
class ReconcileOutcome:
    """
    Result of applying one payment signal.

    Attributes:
        payment: The ledger entry, or None when no entry matched
        status: Ledger status after the call
        transitioned: True only for the call that moved the entry out of
            pending
    """

    payment: Payment | None
    status: str | None
    transitioned: bool = False

    @property
    def is_paid(self) -> bool:
        return self.status == PaymentStatus.SUCCEEDED


class ReconciliationService(StripeBackedService):
    """
    Idempotent ledger transitions for deposits and balance payments.

    Monotonic rule:
        pending -> succeeded
        pending -> failed
        succeeded/failed -> (no change)
    """

    # =========================================================================
    # Pull path
    # =========================================================================

    @classmethod
    def reconcile_session(
        cls,
        session_id: str,
        source: str = ReconciliationSource.SUCCESS_PAGE,
        provider: AdminSettingsProvider | None = None,
    ) -> ReconcileOutcome:
        """
        Re-fetch a checkout session from Stripe and apply its outcome.

        Raises:
            PaymentNotFoundError: No ledger entry carries this session id
            ReconciliationMissError: Stripe could not be asked; the miss is
                recorded for retry
        """
        payment = (
            Payment.objects.select_related("order")
            .filter(stripe_checkout_session_id=session_id)
            .first()
        )
        if payment is None:
            raise PaymentNotFoundError(
                "Payment not found",
                details={"session_id": session_id},
            )

        if not payment.is_pending:
            cls._resolve_misses(session_id)
            return ReconcileOutcome(payment=payment, status=payment.status)

        try:
            adapter = cls.get_stripe_adapter(provider)
            session = adapter.retrieve_checkout_session(session_id)
        except (ConfigurationError, StripeError) as e:
            cls.record_miss(payment.order_id, session_id, source, e.message)
            cls.get_logger().warning(
                "Reconciliation miss",
                extra={
                    "order_id": str(payment.order_id),
                    "session_id": session_id,
                    "source": source,
                    "error": e.message,
                },
            )
            raise ReconciliationMissError(
                "Could not verify checkout session with Stripe",
                details={"session_id": session_id, "source": source},
            ) from e

        outcome = cls.apply_session(session, payment=payment)
        cls._resolve_misses(session_id)
        return outcome

    @classmethod
    def reconcile_order(
        cls,
        order_id: uuid.UUID | str,
        source: str = ReconciliationSource.STATUS_POLL,
        provider: AdminSettingsProvider | None = None,
    ) -> list[ReconcileOutcome]:
        """
        Reconcile every pending checkout session of an order.

        Misses are recorded and skipped so one unreachable session does not
        hide the others.
        """
        session_ids = list(
            Payment.objects.filter(order_id=order_id, status=PaymentStatus.PENDING)
            .exclude(stripe_checkout_session_id__isnull=True)
            .order_by("created_at")
            .values_list("stripe_checkout_session_id", flat=True)
        )

        outcomes = []
        for session_id in session_ids:
            try:
                outcomes.append(cls.reconcile_session(session_id, source, provider))
            except ReconciliationMissError:
                continue
        return outcomes

    # =========================================================================
    # Signal application (shared by push and pull)
    # =========================================================================

    @classmethod
    def apply_session(
        cls,
        session: CheckoutSessionResult,
        payment: Payment | None = None,
    ) -> ReconcileOutcome:
        """Apply a checkout session's state to its ledger entry."""
        if payment is None:
            payment = Payment.objects.filter(stripe_checkout_session_id=session.id).first()
        if payment is None:
            cls.get_logger().warning(
                "No ledger entry for checkout session",
                extra={"session_id": session.id},
            )
            return ReconcileOutcome(payment=None, status=None)

        if session.is_paid:
            return cls.mark_succeeded(
                payment,
                amount_total_cents=session.amount_total_cents,
                tip_cents=session.tip_cents,
                payment_intent_id=session.payment_intent_id,
                payment_method=session.payment_method,
            )

        if session.status == "expired":
            return cls.mark_failed(payment, "Checkout session expired")

        return ReconcileOutcome(payment=payment, status=payment.status)

    @classmethod
    def apply_intent_outcome(cls, intent: PaymentIntentResult) -> ReconcileOutcome:
        """
        Apply a PaymentIntent's state to its ledger entry.

        The entry is matched by intent id, falling back to the pending
        entry named by the intent's order_id/payment_type metadata when
        the session did not expose the intent at creation time.
        """
        payment = cls._find_by_intent(intent)
        if payment is None:
            cls.get_logger().warning(
                "Unknown payment intent",
                extra={
                    "payment_intent_id": intent.id,
                    "order_id": intent.metadata.get("order_id"),
                },
            )
            return ReconcileOutcome(payment=None, status=None)

        if intent.succeeded:
            tip = intent.metadata.get("tip_cents")
            return cls.mark_succeeded(
                payment,
                amount_total_cents=intent.amount_received_cents or intent.amount_cents,
                tip_cents=parse_cents(tip) if tip is not None else None,
                payment_intent_id=intent.id,
                payment_method=intent.payment_method,
            )

        if intent.status in ("requires_payment_method", "canceled"):
            return cls.mark_failed(
                payment,
                intent.last_error or f"Payment {intent.status}",
                payment_intent_id=intent.id,
            )

        return ReconcileOutcome(payment=payment, status=payment.status)

    # =========================================================================
    # Transitions
    # =========================================================================

    @classmethod
    def mark_succeeded(
        cls,
        payment: Payment,
        amount_total_cents: int | None = None,
        tip_cents: int | None = None,
        payment_intent_id: str | None = None,
        payment_method: PaymentMethodDetails | None = None,
    ) -> ReconcileOutcome:
        """
        Move a pending entry to succeeded and credit the order once.

        ``amount_total_cents`` is what the customer paid including any tip;
        the order is credited with that total minus the tip.
        """
        now = timezone.now()
        tip = payment.tip_cents if tip_cents is None else tip_cents
        if amount_total_cents:
            net = max(0, amount_total_cents - tip)
        else:
            net = payment.amount_cents

        updates = {
            "status": PaymentStatus.SUCCEEDED,
            "paid_at": now,
            "updated_at": now,
            "tip_cents": tip,
        }
        if payment_intent_id:
            updates["stripe_payment_intent_id"] = payment_intent_id
        if payment_method:
            updates["payment_method_type"] = payment_method.type
            updates["card_brand"] = payment_method.brand
            updates["card_last4"] = payment_method.last4

        with transaction.atomic():
            rows = Payment.objects.filter(
                pk=payment.pk, status=PaymentStatus.PENDING
            ).update(**updates)

            if rows != 1:
                payment.refresh_from_db()
                cls.get_logger().info(
                    "Ledger entry already resolved",
                    extra={"payment_id": str(payment.pk), "status": payment.status},
                )
                return ReconcileOutcome(payment=payment, status=payment.status)

            if net != payment.amount_cents:
                cls.get_logger().warning(
                    "Paid amount differs from ledger amount",
                    extra={
                        "payment_id": str(payment.pk),
                        "ledger_amount_cents": payment.amount_cents,
                        "net_paid_cents": net,
                    },
                )

            cls._credit_order(payment, net, tip, payment_method)
            order_id = str(payment.order_id)
            transaction.on_commit(lambda: cls._queue_payment_alert(order_id))

        payment.refresh_from_db()
        cls.get_logger().info(
            "Payment reconciled as succeeded",
            extra={
                "payment_id": str(payment.pk),
                "order_id": str(payment.order_id),
                "payment_intent_id": payment.stripe_payment_intent_id,
                "net_paid_cents": net,
                "tip_cents": tip,
            },
        )
        return ReconcileOutcome(
            payment=payment, status=PaymentStatus.SUCCEEDED, transitioned=True
        )

    @classmethod
    def mark_failed(
        cls,
        payment: Payment,
        reason: str,
        payment_intent_id: str | None = None,
    ) -> ReconcileOutcome:
        """Move a pending entry to failed. The order is not touched."""
        now = timezone.now()
        updates = {
            "status": PaymentStatus.FAILED,
            "failed_at": now,
            "failure_reason": reason[:500],
            "updated_at": now,
        }
        if payment_intent_id:
            updates["stripe_payment_intent_id"] = payment_intent_id

        rows = Payment.objects.filter(
            pk=payment.pk, status=PaymentStatus.PENDING
        ).update(**updates)
        payment.refresh_from_db()

        if rows != 1:
            return ReconcileOutcome(payment=payment, status=payment.status)

        cls.get_logger().info(
            "Payment marked failed",
            extra={
                "payment_id": str(payment.pk),
                "order_id": str(payment.order_id),
                "reason": reason,
            },
        )
        return ReconcileOutcome(
            payment=payment, status=PaymentStatus.FAILED, transitioned=True
        )

    # =========================================================================
    # Reconciliation misses
    # =========================================================================

    @classmethod
    def record_miss(
        cls,
        order_id: uuid.UUID | str,
        session_id: str,
        source: str,
        error_message: str,
    ) -> ReconciliationMiss:
        """Create a miss row, or count another attempt on the open one."""
        miss = (
            ReconciliationMiss.objects.unresolved()
            .filter(stripe_checkout_session_id=session_id)
            .first()
        )
        if miss is not None:
            miss.record_attempt(error_message)
            return miss

        return ReconciliationMiss.objects.create(
            order_id=order_id,
            stripe_checkout_session_id=session_id,
            source=source,
            error_message=error_message[:1000],
        )

    @classmethod
    def _resolve_misses(cls, session_id: str) -> None:
        for miss in ReconciliationMiss.objects.unresolved().filter(
            stripe_checkout_session_id=session_id
        ):
            miss.mark_resolved()

    # =========================================================================
    # Internals
    # =========================================================================

    @classmethod
    def _credit_order(
        cls,
        payment: Payment,
        net_cents: int,
        tip_cents: int,
        payment_method: PaymentMethodDetails | None,
    ) -> None:
        """Atomic increments on the order, then the status advance."""
        paid_field = (
            "deposit_paid_cents"
            if payment.kind == PaymentKind.DEPOSIT
            else "balance_paid_cents"
        )
        order_updates = {
            paid_field: F(paid_field) + net_cents,
            "tip_cents": F("tip_cents") + tip_cents,
            "version": F("version") + 1,
            "updated_at": timezone.now(),
        }
        if payment_method and payment_method.id:
            order_updates["stripe_payment_method_id"] = payment_method.id

        Order.objects.filter(pk=payment.order_id).update(**order_updates)

        if payment.kind == PaymentKind.DEPOSIT:
            order = Order.objects.select_for_update().get(pk=payment.order_id)
            cls._advance_order(order)

    @classmethod
    def _advance_order(cls, order: Order) -> None:
        """A paid deposit confirms an invoiced order, otherwise queues it for review."""
        previous = order.status
        if order.invoice_sent_at and can_proceed(order.confirm):
            order.confirm()
        elif can_proceed(order.submit_for_review):
            order.submit_for_review()
        else:
            return

        order.save(update_fields=["status", "updated_at"])
        cls.get_logger().info(
            "Order advanced after payment",
            extra={
                "order_id": str(order.pk),
                "from_status": previous,
                "to_status": order.status,
            },
        )

    @classmethod
    def _find_by_intent(cls, intent: PaymentIntentResult) -> Payment | None:
        payment = (
            Payment.objects.exclude(kind=PaymentKind.REFUND)
            .filter(stripe_payment_intent_id=intent.id)
            .order_by("-created_at")
            .first()
        )
        if payment is not None:
            return payment

        order_id = intent.metadata.get("order_id")
        kind = intent.metadata.get("payment_type")
        if not order_id or kind not in (PaymentKind.DEPOSIT, PaymentKind.BALANCE):
            return None

        try:
            order_uuid = uuid.UUID(str(order_id))
        except ValueError:
            return None

        return (
            Payment.objects.filter(
                order_id=order_uuid,
                kind=kind,
                status=PaymentStatus.PENDING,
                stripe_payment_intent_id__isnull=True,
            )
            .order_by("-created_at")
            .first()
        )

    @classmethod
    def _queue_payment_alert(cls, order_id: str) -> None:
        """Tell the operator a booking was paid. Queue failures are logged only."""
        from notifications.tasks import send_order_alert

        try:
            send_order_alert.delay(order_id, PAYMENT_RECEIVED_TEMPLATE)
        except Exception:
            cls.get_logger().warning(
                "Failed to queue payment alert",
                extra={"order_id": order_id},
                exc_info=True,
            )
