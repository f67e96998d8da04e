"""
Order model: the financial aggregate root of a rental.

Monetary fields are integer cents. Payment fields (deposit_paid_cents,
balance_paid_cents, tip_cents, total_refunded_cents) are changed only with
conditional F() updates from the payments app, never by assigning to a
loaded instance, so concurrent reconciliation and refunds cannot lose
increments.

Usage:
    from bookings.models import Order
    from bookings.states import OrderStatus

    order = Order.objects.create(
        customer_email="pat@example.com",
        customer_name="Pat Doe",
        event_start_at=event_start,
        subtotal_cents=20000,
        deposit_due_cents=5000,
    )

    # State transitions using django-fsm
    order.submit_for_review()  # draft -> pending_review
    order.save()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from bookings.states import CANCELLABLE_STATUSES, OrderStatus, PaymentProgress
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel

if TYPE_CHECKING:
    from payments.refund_policy import RefundDecision


class Order(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A bounce-house rental order.

    Status Flow:
        DRAFT -> PENDING_REVIEW -> CONFIRMED -> ... -> COMPLETED
        DRAFT/PENDING_REVIEW/AWAITING_CUSTOMER_APPROVAL/CONFIRMED -> CANCELLED

    Invariant:
        total_refunded_cents never exceeds the sum of succeeded positive
        ledger entries. The refund executor enforces this under a row lock.
    """

    # ==========================================================================
    # Customer
    # ==========================================================================

    customer_email = models.EmailField(
        help_text="Customer email for receipts and cancellation notices",
    )

    customer_name = models.CharField(
        max_length=200,
        help_text="Customer display name",
    )

    customer_phone = models.CharField(
        max_length=32,
        blank=True,
        default="",
        help_text="Customer phone in E.164 format",
    )

    # ==========================================================================
    # Status & Schedule
    # ==========================================================================

    status = FSMField(
        default=OrderStatus.DRAFT,
        choices=OrderStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current order status (managed by FSM)",
    )

    event_start_at = models.DateTimeField(
        db_index=True,
        help_text="When the rental event starts",
    )

    event_end_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the rental event ends",
    )

    invoice_sent_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When an invoice was sent; a paid deposit then confirms the order",
    )

    # ==========================================================================
    # Pricing (cents)
    # ==========================================================================

    subtotal_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Rental subtotal in cents",
    )

    fees_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Delivery and surface fees in cents",
    )

    tax_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Sales tax in cents",
    )

    tip_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Crew gratuity collected with payments, in cents",
    )

    deposit_due_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Deposit required to hold the date, in cents",
    )

    deposit_paid_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Deposit received, in cents",
    )

    balance_due_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Remaining balance due, in cents",
    )

    balance_paid_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Balance received, in cents",
    )

    total_refunded_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Cumulative amount refunded, in cents",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_customer_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Stripe Customer ID (cus_xxx), created once per order",
    )

    stripe_payment_method_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Default payment method saved for off-session charges (pm_xxx)",
    )

    # ==========================================================================
    # Cancellation
    # ==========================================================================

    cancelled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the order was cancelled",
    )

    cancellation_reason = models.TextField(
        blank=True,
        default="",
        help_text="Reason given at cancellation",
    )

    cancelled_by = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Who cancelled: 'customer' or an operator identifier",
    )

    cancellation_policy = models.CharField(
        max_length=30,
        blank=True,
        default="",
        help_text="Refund policy applied at cancellation",
    )

    cancellation_metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Audit copy of the refund decision made at cancellation",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-event_start_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        indexes = [
            models.Index(fields=["status", "event_start_at"]),
        ]

    def __str__(self) -> str:
        return f"Order({self.short_id}, {self.status})"

    @property
    def short_id(self) -> str:
        """First eight characters of the id, upper-cased, as shown to customers."""
        return str(self.id)[:8].upper()

    @property
    def total_cents(self) -> int:
        return self.subtotal_cents + self.fees_cents + self.tax_cents

    @property
    def amount_paid_cents(self) -> int:
        return self.deposit_paid_cents + self.balance_paid_cents

    @property
    def payment_status(self) -> str:
        """Derived payment progress: payment_due, deposit_paid or paid_in_full."""
        paid = self.amount_paid_cents
        if paid <= 0:
            return PaymentProgress.PAYMENT_DUE
        if self.total_cents and paid >= self.total_cents:
            return PaymentProgress.PAID_IN_FULL
        return PaymentProgress.DEPOSIT_PAID

    @property
    def is_cancellable(self) -> bool:
        return self.status in CANCELLABLE_STATUSES

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[OrderStatus.DRAFT, OrderStatus.AWAITING_CUSTOMER_APPROVAL],
        target=OrderStatus.PENDING_REVIEW,
    )
    def submit_for_review(self):
        """
        Hand a paid order to the operator for review.

        Transition: DRAFT/AWAITING_CUSTOMER_APPROVAL -> PENDING_REVIEW
        """

    @transition(
        field=status,
        source=[
            OrderStatus.DRAFT,
            OrderStatus.PENDING_REVIEW,
            OrderStatus.AWAITING_CUSTOMER_APPROVAL,
        ],
        target=OrderStatus.CONFIRMED,
    )
    def confirm(self):
        """
        Confirm the booking.

        Transition: DRAFT/PENDING_REVIEW/AWAITING_CUSTOMER_APPROVAL -> CONFIRMED
        """

    @transition(
        field=status,
        source=CANCELLABLE_STATUSES,
        target=OrderStatus.CANCELLED,
    )
    def cancel(
        self,
        reason: str,
        cancelled_by: str,
        decision: RefundDecision,
    ):
        """
        Cancel the order and record the refund decision for audit.

        Transition: DRAFT/PENDING_REVIEW/AWAITING_CUSTOMER_APPROVAL/CONFIRMED
            -> CANCELLED
        """
        self.cancelled_at = timezone.now()
        self.cancellation_reason = reason
        self.cancelled_by = cancelled_by
        self.cancellation_policy = decision.policy
        self.cancellation_metadata = {
            **decision.to_dict(),
            "previous_status": self.status,
        }
