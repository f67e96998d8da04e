"""
Payment services.

- CheckoutService: Checkout Intent Manager (pending ledger entries)
- ChargeService: off-session charges against the saved card
- ReconciliationService: push/pull reconciliation into ledger and order
- RefundService: Refund Executor for cancellations

Usage:
    from payments.services import CheckoutService

    intent = CheckoutService.create_intent(order_id=order.id, amount_cents=5000)

    from payments.services import RefundService

    outcome = RefundService.execute(order.id, decision, reason)
"""

from payments.services.base import StripeBackedService
from payments.services.charge_service import ChargeService
from payments.services.checkout_service import CheckoutIntent, CheckoutService
from payments.services.reconciliation_service import (
    ReconcileOutcome,
    ReconciliationService,
)
from payments.services.refund_service import RefundOutcome, RefundService

__all__ = [
    "ChargeService",
    "CheckoutIntent",
    "CheckoutService",
    "ReconcileOutcome",
    "ReconciliationService",
    "RefundOutcome",
    "RefundService",
    "StripeBackedService",
]
