"""
ReconciliationMiss: a pull-path reconciliation that could not complete.

Recorded when the success page or the payment-status poll cannot reach
Stripe (or gets an unexpected answer). The customer still sees the success
page; retry_reconciliation_misses works through unresolved rows.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from payments.state_machines import ReconciliationSource

MAX_RECONCILIATION_ATTEMPTS = 5


class ReconciliationMissQuerySet(models.QuerySet):
    def unresolved(self):
        return self.filter(resolved_at__isnull=True)

    def retryable(self):
        return self.unresolved().filter(attempts__lt=MAX_RECONCILIATION_ATTEMPTS)


class ReconciliationMiss(UUIDPrimaryKeyMixin, BaseModel):
    order = models.ForeignKey(
        "bookings.Order",
        on_delete=models.PROTECT,
        related_name="reconciliation_misses",
        help_text="Order whose payment could not be re-verified",
    )

    stripe_checkout_session_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Checkout Session to re-fetch",
    )

    source = models.CharField(
        max_length=20,
        choices=ReconciliationSource.choices,
        help_text="Which pull ingress recorded the miss",
    )

    error_message = models.TextField(
        blank=True,
        default="",
        help_text="Last error seen",
    )

    attempts = models.PositiveSmallIntegerField(
        default=1,
        help_text="Reconciliation attempts so far, including the original",
    )

    last_attempt_at = models.DateTimeField(
        default=timezone.now,
        help_text="When reconciliation was last attempted",
    )

    resolved_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When a later attempt reconciled the session",
    )

    objects = ReconciliationMissQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Reconciliation Miss"
        verbose_name_plural = "Reconciliation Misses"
        indexes = [
            models.Index(fields=["resolved_at", "attempts"]),
        ]

    def __str__(self) -> str:
        return f"ReconciliationMiss({self.stripe_checkout_session_id}, attempts={self.attempts})"

    def record_attempt(self, error_message: str) -> None:
        """Count a failed retry. Saves."""
        self.attempts += 1
        self.error_message = error_message[:1000]
        self.last_attempt_at = timezone.now()
        self.save(update_fields=["attempts", "error_message", "last_attempt_at", "updated_at"])

    def mark_resolved(self) -> None:
        """Saves."""
        self.resolved_at = timezone.now()
        self.save(update_fields=["resolved_at", "updated_at"])
