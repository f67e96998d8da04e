"""
RefundRecord: audit row for every refund Stripe knows about.

Refunds issued by cancellation create a RefundRecord next to their ledger
entry. Refunds that only show up through a charge.refunded event (issued
from the Stripe dashboard, for example) get a RefundRecord with
source=processor and no ledger entry; they are for operator review and do
not change the ledger or the order's refunded total.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from payments.state_machines import RefundSource


class RefundRecord(UUIDPrimaryKeyMixin, BaseModel):
    order = models.ForeignKey(
        "bookings.Order",
        on_delete=models.PROTECT,
        related_name="refund_records",
        help_text="Order the refund belongs to",
    )

    payment = models.OneToOneField(
        "payments.Payment",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="refund_record",
        help_text="Refund ledger entry, when the refund was issued here",
    )

    amount_cents = models.PositiveBigIntegerField(
        help_text="Refunded amount in cents (positive)",
    )

    reason = models.TextField(
        blank=True,
        default="",
        help_text="Why the refund was issued",
    )

    stripe_refund_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Refund ID (re_xxx)",
    )

    stripe_payment_intent_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="PaymentIntent the refund was issued against",
    )

    status = models.CharField(
        max_length=30,
        help_text="Stripe refund status (succeeded, pending, failed, ...)",
    )

    refunded_by = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Who triggered the refund",
    )

    source = models.CharField(
        max_length=20,
        choices=RefundSource.choices,
        default=RefundSource.CANCELLATION,
        help_text="cancellation (issued here) or processor (seen in an event)",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Refund Record"
        verbose_name_plural = "Refund Records"

    def __str__(self) -> str:
        return f"RefundRecord({self.stripe_refund_id}, {self.amount_cents})"
