"""
Status enums for payment models.
"""

from payments.state_machines.states import (
    PaymentKind,
    PaymentStatus,
    ReconciliationSource,
    RefundSource,
    WebhookEventStatus,
)

__all__ = [
    "PaymentKind",
    "PaymentStatus",
    "ReconciliationSource",
    "RefundSource",
    "WebhookEventStatus",
]
