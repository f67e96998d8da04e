"""
Payment domain models.

- Payment: ledger entry (deposit, balance or refund)
- RefundRecord: refunds/audit table
- WebhookEvent: stored Stripe push envelopes
- ReconciliationMiss: pull-path reconciliations awaiting retry
"""

from payments.models.payment import Payment
from payments.models.reconciliation_miss import ReconciliationMiss
from payments.models.refund_record import RefundRecord
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "Payment",
    "ReconciliationMiss",
    "RefundRecord",
    "WebhookEvent",
]
