"""
Status enums for payment models.

These are Django TextChoices for database storage and admin integration.

Ledger entry (Payment) Status:
    pending → succeeded
    pending → failed
    (refund entries are inserted as succeeded or pending and never change)

WebhookEvent Status:
    pending → processing → processed
    pending → processing → failed (can retry)
"""

from django.db import models


class PaymentKind(models.TextChoices):
    """What a ledger entry pays for. Refund entries carry negative amounts."""

    DEPOSIT = "deposit", "Deposit"
    BALANCE = "balance", "Balance"
    REFUND = "refund", "Refund"


class PaymentStatus(models.TextChoices):
    """
    Status of a ledger entry.

    Transitions out of PENDING are monotonic: once an entry is SUCCEEDED
    or FAILED it never moves again.
    """

    PENDING = "pending", "Pending"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (can retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


class RefundSource(models.TextChoices):
    """Where a RefundRecord came from."""

    CANCELLATION = "cancellation", "Cancellation"
    PROCESSOR = "processor", "Processor Event"


class ReconciliationSource(models.TextChoices):
    """Which pull ingress recorded a reconciliation miss."""

    SUCCESS_PAGE = "success_page", "Success Page"
    STATUS_POLL = "status_poll", "Payment Status Poll"
    CHECKOUT = "checkout", "Checkout Supersede"
