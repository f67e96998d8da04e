"""
Payment ledger entries.

One row per money movement intent or outcome for an order. Deposits and
balance payments are inserted PENDING by checkout and moved exactly once
to SUCCEEDED or FAILED by reconciliation. Refund rows carry negative
amounts, link back to the entry they reverse, and are never updated after
insert.

Usage:
    from payments.models import Payment
    from payments.state_machines import PaymentKind, PaymentStatus

    Payment.objects.for_order(order).succeeded_total()
"""

from __future__ import annotations

from django.db import models
from django.db.models import Q, Sum

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from payments.exceptions import InvalidStateTransitionError
from payments.state_machines import PaymentKind, PaymentStatus


class PaymentQuerySet(models.QuerySet):
    def for_order(self, order) -> PaymentQuerySet:
        return self.filter(order=order)

    def pending(self) -> PaymentQuerySet:
        return self.filter(status=PaymentStatus.PENDING)

    def succeeded_charges(self) -> PaymentQuerySet:
        """Succeeded entries that brought money in (deposits and balances)."""
        return self.filter(status=PaymentStatus.SUCCEEDED, amount_cents__gt=0).exclude(
            kind=PaymentKind.REFUND
        )

    def succeeded_total(self) -> int:
        """Sum of succeeded positive entries, in cents."""
        return self.succeeded_charges().aggregate(total=Sum("amount_cents"))["total"] or 0

    def latest_refundable(self) -> Payment | None:
        """Most recent succeeded charge that has a Stripe PaymentIntent."""
        return (
            self.succeeded_charges()
            .exclude(stripe_payment_intent_id__isnull=True)
            .exclude(stripe_payment_intent_id="")
            .order_by("-paid_at", "-created_at")
            .first()
        )


class Payment(UUIDPrimaryKeyMixin, BaseModel):
    """
    A single ledger entry.

    Invariants (enforced by the database):
        - At most one PENDING deposit and one PENDING balance per order
        - Refund amounts are negative, all other kinds positive
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    order = models.ForeignKey(
        "bookings.Order",
        on_delete=models.PROTECT,
        related_name="payments",
        help_text="Order this money movement belongs to",
    )

    reverses = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="refund_entries",
        help_text="For refund entries: the charge being reversed",
    )

    # ==========================================================================
    # Amount & Status
    # ==========================================================================

    kind = models.CharField(
        max_length=20,
        choices=PaymentKind.choices,
        help_text="deposit, balance or refund",
    )

    amount_cents = models.BigIntegerField(
        help_text="Signed amount in cents; refunds are negative",
    )

    tip_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Tip collected alongside this payment (not part of amount_cents)",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        db_index=True,
        help_text="pending until reconciled to succeeded or failed",
    )

    description = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Human-readable description shown in the admin",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_checkout_session_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Checkout Session ID (cs_xxx)",
    )

    stripe_payment_intent_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Stripe PaymentIntent ID (pi_xxx); refunds repeat the reversed intent",
    )

    stripe_refund_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Refund ID (re_xxx), refund entries only",
    )

    # ==========================================================================
    # Payment method captured at success
    # ==========================================================================

    payment_method_type = models.CharField(max_length=50, blank=True, default="")
    card_brand = models.CharField(max_length=50, blank=True, default="")
    card_last4 = models.CharField(max_length=4, blank=True, default="")

    # ==========================================================================
    # Outcome
    # ==========================================================================

    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the charge succeeded (or the refund was issued)",
    )

    failed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the entry was marked failed",
    )

    failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Processor message or 'Superseded' for replaced sessions",
    )

    objects = PaymentQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["order", "status"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "kind"],
                condition=Q(status=PaymentStatus.PENDING) & ~Q(kind=PaymentKind.REFUND),
                name="payment_one_pending_per_kind",
            ),
            models.CheckConstraint(
                condition=(
                    Q(kind=PaymentKind.REFUND, amount_cents__lt=0)
                    | (~Q(kind=PaymentKind.REFUND) & Q(amount_cents__gt=0))
                ),
                name="payment_amount_sign_matches_kind",
            ),
        ]

    def __str__(self) -> str:
        return f"Payment({self.id}, {self.kind}, {self.status}, {self.amount_cents})"

    def save(self, *args, **kwargs):
        if not self._state.adding and self.kind == PaymentKind.REFUND:
            raise InvalidStateTransitionError(
                "Refund ledger entries cannot be modified",
                details={"payment_id": str(self.pk)},
            )
        super().save(*args, **kwargs)

    @property
    def is_pending(self) -> bool:
        return self.status == PaymentStatus.PENDING

    @property
    def card_descriptor(self) -> str:
        if self.card_brand and self.card_last4:
            return f"{self.card_brand.title()} ending in {self.card_last4}"
        return self.payment_method_type
