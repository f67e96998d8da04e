"""
Stored Stripe event envelopes.

The webhook endpoint writes the envelope here, keyed by Stripe's event id,
before anything else happens; a redelivery of an id already PROCESSED is
acknowledged without running handlers again.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from payments.state_machines import WebhookEventStatus

MAX_PROCESSING_ATTEMPTS = 5


class WebhookEventQuerySet(models.QuerySet):
    def retryable(self):
        return self.filter(
            status=WebhookEventStatus.FAILED,
            retry_count__lt=MAX_PROCESSING_ATTEMPTS,
        )

    def stuck_since(self, cutoff):
        """PROCESSING rows untouched since ``cutoff`` (the worker died)."""
        return self.filter(status=WebhookEventStatus.PROCESSING, updated_at__lt=cutoff)


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    PENDING -> PROCESSING -> PROCESSED, or FAILED and back to PROCESSING
    on retry until MAX_PROCESSING_ATTEMPTS. The status helpers do not save.

    signature_verified is False when no webhook secret was configured and
    the envelope was accepted unverified.
    """

    stripe_event_id = models.CharField(max_length=255, unique=True)
    event_type = models.CharField(max_length=100, db_index=True)
    payload = models.JSONField(help_text="Full event envelope as received")
    signature_verified = models.BooleanField(default=False)

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
    )
    processed_at = models.DateTimeField(null=True, blank=True)
    error_message = models.TextField(blank=True, default="")
    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Processing attempts so far",
    )

    objects = WebhookEventQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"]),
            models.Index(fields=["status", "retry_count"]),
        ]

    def __str__(self) -> str:
        return f"{self.event_type} {self.stripe_event_id}"

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def can_retry(self) -> bool:
        return (
            self.status == WebhookEventStatus.FAILED
            and self.retry_count < MAX_PROCESSING_ATTEMPTS
        )

    def mark_processing(self) -> None:
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = ""

    def mark_failed(self, error_message: str) -> None:
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message[:1000]

    def get_object(self) -> dict:
        """``data.object`` of the envelope; {} when the payload is malformed."""
        data = self.payload.get("data") if isinstance(self.payload, dict) else None
        obj = data.get("object") if isinstance(data, dict) else None
        return obj if isinstance(obj, dict) else {}

    def get_object_id(self) -> str | None:
        return self.get_object().get("id")
