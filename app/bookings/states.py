"""
Order lifecycle statuses.

Order Status Flow:
    draft → pending_review → confirmed → setup_in_progress → on_the_way
        → setup_completed → pickup_in_progress → on_the_way_back → completed
    awaiting_customer_approval → pending_review / confirmed
    draft/pending_review/awaiting_customer_approval/confirmed → cancelled

Statuses from setup_in_progress onward are past fulfilment start and can
no longer be cancelled.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    """Statuses for the Order model lifecycle."""

    DRAFT = "draft", "Draft"
    PENDING_REVIEW = "pending_review", "Pending Review"
    AWAITING_CUSTOMER_APPROVAL = (
        "awaiting_customer_approval",
        "Awaiting Customer Approval",
    )
    CONFIRMED = "confirmed", "Confirmed"
    SETUP_IN_PROGRESS = "setup_in_progress", "Setup In Progress"
    ON_THE_WAY = "on_the_way", "On The Way"
    SETUP_COMPLETED = "setup_completed", "Setup Completed"
    PICKUP_IN_PROGRESS = "pickup_in_progress", "Pickup In Progress"
    ON_THE_WAY_BACK = "on_the_way_back", "On The Way Back"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    VOID = "void", "Void"


CANCELLABLE_STATUSES = [
    OrderStatus.DRAFT,
    OrderStatus.PENDING_REVIEW,
    OrderStatus.AWAITING_CUSTOMER_APPROVAL,
    OrderStatus.CONFIRMED,
]


class PaymentProgress(models.TextChoices):
    """Derived payment progress of an order."""

    PAYMENT_DUE = "payment_due", "Payment Due"
    DEPOSIT_PAID = "deposit_paid", "Deposit Paid"
    PAID_IN_FULL = "paid_in_full", "Paid In Full"
