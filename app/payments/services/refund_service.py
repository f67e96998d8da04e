"""
Refund Executor.

Refunds what an order has paid and not yet had back, against the most
recent succeeded charge, once per cancellation decision.

Two-phase pattern, all under the per-order lock ``refund:order:<id>``:

    1. DB read (row-locked order): refundAmount = succeeded - refunded
    2. Stripe, outside any transaction: confirm the intent succeeded,
       create the refund with an idempotency key tied to the refunded
       total seen in step 1
    3. DB write: refund ledger entry, RefundRecord, F() increment of
       total_refunded_cents

A retry after a failure in step 3 reuses the same idempotency key, so
Stripe returns the refund it already made instead of issuing a second one.

Usage:
    from payments.services import RefundService

    outcome = RefundService.execute(order.id, decision, reason)
    response["refundResult"] = outcome.to_dict()
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F
from django.utils import timezone
from redis.exceptions import RedisError

from bookings.models import Order
from core.exceptions import ConfigurationError
from payments.adapters import IdempotencyKeyGenerator
from payments.exceptions import (
    LockAcquisitionError,
    PaymentNotFoundError,
    StripeError,
)
from payments.locks import DistributedLock, order_lock_key
from payments.models import Payment, RefundRecord
from payments.services.base import StripeBackedService
from payments.state_machines import PaymentKind, PaymentStatus, RefundSource

if TYPE_CHECKING:
    from typing import Any

    from payments.adapters import StripeAdapter
    from payments.refund_policy import RefundDecision
    from toolkit.settings_provider import AdminSettingsProvider


# =============================================================================
# Constants
# =============================================================================

REFUND_LOCK_TTL = 120
REFUND_LOCK_TIMEOUT = 10.0

REFUND_FAILED_MESSAGE = "Refund processing failed, please contact support"
NO_REFUNDABLE_PAYMENT_MESSAGE = "No refundable payment found for this order"

REFUND_REJECTED_STATUSES = frozenset({"failed", "canceled"})


# =============================================================================
# Result Type
# =============================================================================


@dataclass
class RefundOutcome:
    """
    Result of one executor run.

    refunded is False both for no-ops (nothing left to refund) and for
    failures; failures carry ``error``.
    """

    refunded: bool
    amount_cents: int = 0
    stripe_refund_id: str | None = None
    status: str | None = None
    error: str | None = None

    @property
    def is_noop(self) -> bool:
        return not self.refunded and self.error is None

    def to_dict(self) -> dict[str, Any]:
        if self.refunded:
            return {
                "refunded": True,
                "amount": self.amount_cents,
                "refundId": self.stripe_refund_id,
                "status": self.status,
            }
        result: dict[str, Any] = {"refunded": False, "amount": self.amount_cents}
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class _RefundPlan:
    order: Order
    amount_cents: int
    source: Payment | None
    already_refunded_cents: int


# =============================================================================
# Refund Service
# =============================================================================


class RefundService(StripeBackedService):
    """
    Issues cancellation refunds.

    Safety:
        - Distributed lock serializes executors for one order
        - select_for_update makes the refundable-amount read consistent
        - Stripe is never called inside a transaction
        - Idempotency key (order, refunded-so-far) dedupes retries
    """

    @classmethod
    def execute(
        cls,
        order_id: uuid.UUID | str,
        decision: RefundDecision,
        reason: str,
        refunded_by: str = "customer",
        provider: AdminSettingsProvider | None = None,
    ) -> RefundOutcome:
        """
        Refund the order's outstanding paid amount.

        Processor, configuration, lock store and database failures are
        returned as a ``refunded=False`` outcome with an operator-facing
        error and leave the ledger untouched.

        Raises:
            PaymentNotFoundError: Order does not exist
        """
        log_context = {"order_id": str(order_id), "policy": decision.policy}

        if not decision.refundable:
            cls.get_logger().info("Decision not refundable, skipping", extra=log_context)
            return RefundOutcome(refunded=False)

        if not Order.objects.filter(pk=order_id).exists():
            raise PaymentNotFoundError(
                "Order not found",
                details={"order_id": str(order_id)},
            )

        try:
            adapter = cls.get_stripe_adapter(provider)
            with DistributedLock(
                order_lock_key("refund", order_id),
                ttl=REFUND_LOCK_TTL,
                timeout=REFUND_LOCK_TIMEOUT,
            ):
                return cls._execute_with_lock(
                    adapter, order_id, reason, refunded_by, log_context
                )
        except (ConfigurationError, LockAcquisitionError, StripeError) as e:
            cls.get_logger().error(
                "Refund failed",
                extra={
                    **log_context,
                    "error": e.message,
                    "error_code": e.error_code,
                },
            )
            return RefundOutcome(refunded=False, error=REFUND_FAILED_MESSAGE)
        except (RedisError, DatabaseError):
            # Lock store or ledger unreachable before anything was sent to Stripe
            cls.get_logger().exception("Refund aborted", extra=log_context)
            return RefundOutcome(refunded=False, error=REFUND_FAILED_MESSAGE)

    @classmethod
    def refundable_amount(cls, order: Order) -> int:
        """Succeeded charges minus what has already been refunded."""
        paid = Payment.objects.for_order(order).succeeded_total()
        return paid - order.total_refunded_cents

    # =========================================================================
    # Internals
    # =========================================================================

    @classmethod
    def _execute_with_lock(
        cls,
        adapter: StripeAdapter,
        order_id: uuid.UUID | str,
        reason: str,
        refunded_by: str,
        log_context: dict[str, Any],
    ) -> RefundOutcome:
        plan = cls._plan(order_id)
        if plan is None:
            cls.get_logger().info("Nothing to refund", extra=log_context)
            return RefundOutcome(refunded=False)
        if plan.source is None:
            cls.get_logger().warning(
                "Paid balance has no refundable charge", extra=log_context
            )
            return RefundOutcome(refunded=False, error=NO_REFUNDABLE_PAYMENT_MESSAGE)

        log_context = {
            **log_context,
            "amount_cents": plan.amount_cents,
            "payment_id": str(plan.source.pk),
            "payment_intent_id": plan.source.stripe_payment_intent_id,
        }

        intent = adapter.retrieve_payment_intent(plan.source.stripe_payment_intent_id)
        if not intent.succeeded:
            cls.get_logger().warning(
                "Payment intent not refundable",
                extra={**log_context, "intent_status": intent.status},
            )
            return RefundOutcome(refunded=False, error=REFUND_FAILED_MESSAGE)

        refund = adapter.create_refund(
            payment_intent_id=intent.id,
            amount_cents=plan.amount_cents,
            idempotency_key=IdempotencyKeyGenerator.generate(
                "refund", plan.order.pk, plan.already_refunded_cents
            ),
            metadata={
                "order_id": str(plan.order.pk),
                "cancellation_reason": reason[:500],
            },
        )
        if refund.status in REFUND_REJECTED_STATUSES:
            cls.get_logger().error(
                "Stripe rejected the refund",
                extra={
                    **log_context,
                    "stripe_refund_id": refund.id,
                    "refund_status": refund.status,
                },
            )
            return RefundOutcome(
                refunded=False,
                stripe_refund_id=refund.id,
                error=REFUND_FAILED_MESSAGE,
            )

        try:
            cls._record(plan, refund, reason, refunded_by)
        except DatabaseError:
            cls.get_logger().critical(
                "Refund issued at Stripe but not recorded",
                extra={**log_context, "stripe_refund_id": refund.id},
                exc_info=True,
            )
            return RefundOutcome(
                refunded=False,
                stripe_refund_id=refund.id,
                error=REFUND_FAILED_MESSAGE,
            )

        cls.get_logger().info(
            "Refund issued",
            extra={
                **log_context,
                "stripe_refund_id": refund.id,
                "refund_status": refund.status,
            },
        )
        return RefundOutcome(
            refunded=True,
            amount_cents=plan.amount_cents,
            stripe_refund_id=refund.id,
            status=refund.status,
        )

    @classmethod
    def _plan(cls, order_id: uuid.UUID | str) -> _RefundPlan | None:
        """Phase 1. Returns None when there is nothing left to refund."""
        with transaction.atomic():
            order = Order.objects.select_for_update().get(pk=order_id)
            amount = cls.refundable_amount(order)
            if amount <= 0:
                return None

            source = Payment.objects.for_order(order).latest_refundable()
            if source is None:
                return _RefundPlan(order, amount, None, order.total_refunded_cents)

            return _RefundPlan(
                order=order,
                amount_cents=amount,
                source=source,
                already_refunded_cents=order.total_refunded_cents,
            )

    @classmethod
    def _record(cls, plan: _RefundPlan, refund, reason: str, refunded_by: str) -> None:
        """
        Phase 3: ledger entry, audit row and refunded total in one transaction.

        The entry is SUCCEEDED once Stripe has accepted the refund; Stripe's
        own status (pending while the card network settles) stays on the
        RefundRecord, which charge.refunded keeps current.
        """
        now = timezone.now()

        with transaction.atomic():
            entry = Payment.objects.create(
                order=plan.order,
                kind=PaymentKind.REFUND,
                amount_cents=-plan.amount_cents,
                currency=refund.currency or plan.source.currency,
                status=PaymentStatus.SUCCEEDED,
                description=f"Refund for order {plan.order.short_id}",
                reverses=plan.source,
                stripe_payment_intent_id=plan.source.stripe_payment_intent_id,
                stripe_refund_id=refund.id,
                paid_at=now,
            )

            defaults = {
                "order": plan.order,
                "payment": entry,
                "amount_cents": plan.amount_cents,
                "reason": f"Customer cancellation: {reason}",
                "stripe_payment_intent_id": plan.source.stripe_payment_intent_id,
                "status": refund.status,
                "refunded_by": refunded_by,
                "source": RefundSource.CANCELLATION,
            }
            # A charge.refunded event may have recorded this refund first
            try:
                with transaction.atomic():
                    RefundRecord.objects.update_or_create(
                        stripe_refund_id=refund.id, defaults=defaults
                    )
            except IntegrityError:
                # Inserted by the webhook between our lookup and our insert
                claimed = RefundRecord.objects.filter(stripe_refund_id=refund.id).update(
                    **defaults, updated_at=now
                )
                if not claimed:
                    raise

            Order.objects.filter(pk=plan.order.pk).update(
                total_refunded_cents=F("total_refunded_cents") + plan.amount_cents,
                version=F("version") + 1,
                updated_at=now,
            )
