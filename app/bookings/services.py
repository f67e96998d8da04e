"""
Order cancellation.

CancellationService.cancel runs the whole use case:

    1. Validate input (nothing written on failure)
    2. Lock the order row, check it can still be cancelled
    3. Decide the refund policy in the business time zone
    4. Cancel the order and store the decision, in the same transaction
    5. Run the Refund Executor when the decision is refundable
    6. Email the customer and alert the operator

A refund failure never undoes the cancellation; it comes back in
``refundResult.error``. Notification failures are logged and swallowed.

Cancelling an order that is already cancelled keeps the stored decision
and runs the Refund Executor again, which is a no-op once fully refunded
and a retry after an earlier refund failure.

Usage:
    from bookings.services import CancellationService

    result = CancellationService.cancel(order_id, "Weather looks bad for Saturday")
    return Response(result.to_dict())
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.db import transaction
from django.utils import timezone

from bookings.models import Order
from bookings.states import OrderStatus
from core.exceptions import NotFoundError, ValidationError
from core.services import BaseService
from notifications.models import NotificationChannel
from notifications.services import NotificationDispatcher
from payments.refund_policy import RefundDecision, decide, get_business_timezone
from payments.services import RefundService
from toolkit.services.email import EmailService

if TYPE_CHECKING:
    from datetime import datetime
    from typing import Any

    from payments.services import RefundOutcome
    from toolkit.settings_provider import AdminSettingsProvider


MIN_REASON_LENGTH = 10

REASON_REQUIRED_MESSAGE = (
    "Order ID and cancellation reason (minimum 10 characters) are required"
)
NOT_CANCELLABLE_MESSAGE = (
    "This order cannot be cancelled. It has already been delivered or is in progress."
)
CANCELLED_MESSAGE = "Your order has been cancelled."
CUSTOMER_SUBJECT = "Your Bounce Party Club order has been cancelled"


@dataclass
class CancellationResult:
    order: Order
    decision: RefundDecision
    refund: RefundOutcome | None = None
    already_cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "message": CANCELLED_MESSAGE,
            "refundPolicy": self.decision.policy,
            "refundMessage": self.decision.message,
            "refundResult": self.refund.to_dict() if self.refund else None,
            "hoursUntilEvent": round(self.decision.hours_until_event, 1),
        }


class CancellationService(BaseService):
    """Cancels orders and applies the refund policy."""

    @classmethod
    def cancel(
        cls,
        order_id: uuid.UUID | str | None,
        reason: str | None,
        admin_override_refund: bool | None = None,
        cancelled_by: str = "customer",
        now: datetime | None = None,
        provider: AdminSettingsProvider | None = None,
    ) -> CancellationResult:
        """
        Cancel an order.

        Args:
            order_id: Order to cancel
            reason: Customer's reason, at least 10 characters once trimmed
            admin_override_refund: Operator decision that bypasses the
                time rules (True refunds in full, False refunds nothing)
            cancelled_by: "customer" or an operator identifier
            now: Cancellation time; defaults to the current time

        Raises:
            ValidationError: Missing order id, short reason, or an order
                past the cancellable statuses
            NotFoundError: Order does not exist
        """
        reason = (reason or "").strip()
        if not order_id or len(reason) < MIN_REASON_LENGTH:
            raise ValidationError(
                REASON_REQUIRED_MESSAGE,
                details={"min_reason_length": MIN_REASON_LENGTH},
            )

        now = now or timezone.now()
        log_context = {"order_id": str(order_id), "cancelled_by": cancelled_by}

        with transaction.atomic():
            order = Order.objects.select_for_update().filter(pk=order_id).first()
            if order is None:
                raise NotFoundError("Order not found", details={"order_id": str(order_id)})

            if order.status == OrderStatus.CANCELLED:
                decision = cls._stored_decision(order, now)
                already_cancelled = True
            elif not order.is_cancellable:
                raise ValidationError(
                    NOT_CANCELLABLE_MESSAGE,
                    details={"order_id": str(order.pk), "status": order.status},
                )
            else:
                decision = decide(order.event_start_at, now, admin_override_refund)
                order.cancel(reason=reason, cancelled_by=cancelled_by, decision=decision)
                order.save()
                already_cancelled = False

        cls.get_logger().info(
            "Order cancelled" if not already_cancelled else "Order already cancelled",
            extra={
                **log_context,
                "policy": decision.policy,
                "refundable": decision.refundable,
                "overridden": decision.overridden,
                "hours_until_event": round(decision.hours_until_event, 1),
            },
        )

        refund = None
        if decision.refundable:
            refund = RefundService.execute(
                order.pk,
                decision,
                order.cancellation_reason or reason,
                refunded_by=cancelled_by,
                provider=provider,
            )

        result = CancellationResult(
            order=order,
            decision=decision,
            refund=refund,
            already_cancelled=already_cancelled,
        )

        if not already_cancelled or (refund is not None and refund.refunded):
            cls._notify(result, reason, provider)

        return result

    @classmethod
    def _stored_decision(cls, order: Order, now: datetime) -> RefundDecision:
        """The decision recorded at cancellation; re-decided when none was stored."""
        if order.cancellation_metadata.get("policy"):
            return RefundDecision.from_dict(order.cancellation_metadata)
        return decide(order.event_start_at, order.cancelled_at or now)

    @classmethod
    def _notify(
        cls,
        result: CancellationResult,
        reason: str,
        provider: AdminSettingsProvider | None,
    ) -> None:
        order = result.order
        context = {
            "order": order,
            "short_id": order.short_id,
            "event_date": timezone.localtime(order.event_start_at, get_business_timezone()),
            "hours_until_event": f"{result.decision.hours_until_event:.1f}",
            "decision": result.decision,
            "reason": reason,
            "refund": result.refund,
            "refund_amount": (
                f"{result.refund.amount_cents / 100:.2f}"
                if result.refund and result.refund.refunded
                else None
            ),
        }
        notify_context = {"order_id": str(order.pk), "event_type": "order_cancelled"}

        try:
            if order.customer_email:
                NotificationDispatcher.send(
                    NotificationChannel.EMAIL,
                    order.customer_email,
                    EmailService.render("bookings/emails/order_cancelled_customer.txt", context),
                    subject=CUSTOMER_SUBJECT,
                    context=notify_context,
                    provider=provider,
                )
            NotificationDispatcher.notify_operator(
                subject=f"Order Cancelled: {order.short_id}",
                body=EmailService.render("bookings/emails/order_cancelled_admin.txt", context),
                context=notify_context,
                provider=provider,
            )
        except Exception:
            cls.get_logger().warning(
                "Cancellation notifications failed",
                extra={"order_id": str(order.pk)},
                exc_info=True,
            )
